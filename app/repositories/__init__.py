from .pagination import Page, PageRequest
from .books import BookRepository
from .users import UserRepository
from .borrow_records import BorrowRecordRepository

__all__ = [
    "Page",
    "PageRequest",
    "BookRepository",
    "UserRepository",
    "BorrowRecordRepository",
]
