from .auth import UserCreate, UserLogin, UserUpdate, UserEnabledUpdate, UserResponse, Token
from .book import BookBase, BookCreate, BookUpdate, BookResponse, BookPage
from .borrow import (
    BorrowRecordResponse,
    OverdueBucketResponse,
    OverdueLineResponse,
    OverdueReportResponse,
)
from .events import BookAvailabilityEvent

__all__ = [
    "UserCreate", "UserLogin", "UserUpdate", "UserEnabledUpdate", "UserResponse", "Token",
    "BookBase", "BookCreate", "BookUpdate", "BookResponse", "BookPage",
    "BorrowRecordResponse", "OverdueBucketResponse", "OverdueLineResponse", "OverdueReportResponse",
    "BookAvailabilityEvent",
]
