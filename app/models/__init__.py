from .user import User, Role
from .book import Book
from .borrow_record import BorrowRecord

__all__ = [
    "User",
    "Role",
    "Book",
    "BorrowRecord",
]
