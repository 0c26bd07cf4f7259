from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime

class BorrowRecordResponse(BaseModel):
    id: str
    userId: str
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    email: Optional[str] = None
    bookId: str
    bookTitle: Optional[str] = None
    bookIsbn: Optional[str] = None
    borrowDate: datetime
    dueDate: datetime
    returnDate: Optional[datetime] = None
    isOverdue: bool

class OverdueBucketResponse(BaseModel):
    label: str
    minDays: int
    maxDays: Optional[int] = None
    count: int

class OverdueLineResponse(BaseModel):
    recordId: str
    bookTitle: str
    isbn: str
    author: str
    patronFirstName: str
    patronLastName: str
    patronEmail: str
    borrowDate: datetime
    dueDate: datetime
    daysOverdue: int

class OverdueReportResponse(BaseModel):
    generatedAt: datetime
    totalOverdue: int
    uniquePatrons: int
    buckets: List[OverdueBucketResponse]
    records: List[OverdueLineResponse]
