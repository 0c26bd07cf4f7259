from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import date, datetime

# 10- or 13-digit ISBN, digits optionally separated by spaces or hyphens
ISBN_PATTERN = r"^(?:(?:\d[ -]?){9}[\dX]|(?:\d[ -]?){12}\d)$"

class BookBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    author: str = Field(..., min_length=1, max_length=255)
    publication_date: Optional[date] = None
    genre: Optional[str] = Field(None, max_length=100)

class BookCreate(BookBase):
    isbn: str = Field(..., pattern=ISBN_PATTERN)

class BookUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    author: Optional[str] = Field(None, min_length=1, max_length=255)
    publication_date: Optional[date] = None
    genre: Optional[str] = Field(None, max_length=100)

    @field_validator("title", "author")
    @classmethod
    def reject_null(cls, v: Optional[str]) -> str:
        # Omit a field to leave it unchanged; only genre and publication date can be cleared
        if v is None:
            raise ValueError("must not be null")
        return v

class BookResponse(BaseModel):
    id: str
    isbn: str
    title: str
    author: str
    publicationDate: Optional[date] = None
    genre: Optional[str] = None
    available: bool
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

class BookPage(BaseModel):
    items: List[BookResponse]
    total: int
    page: int
    size: int
    totalPages: int
