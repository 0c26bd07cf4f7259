import logging
from datetime import date
from typing import Optional

from fastapi import Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.database import get_db
from app.exceptions import BadRequestError, BookNotFoundError, DuplicateIsbnError, ResourceInUseError
from app.models.book import Book
from app.repositories.books import SORTABLE_COLUMNS, BookRepository
from app.repositories.borrow_records import BorrowRecordRepository
from app.repositories.pagination import Page, PageRequest
from app.schemas.book import BookCreate, BookUpdate
from app.schemas.events import BookAvailabilityEvent
from app.services.availability import AvailabilityNotifier, get_notifier
from app.utils.timezone import now_local

logger = logging.getLogger(__name__)


def make_page_request(page: int, size: int, sort_by: str, sort_dir: str) -> PageRequest:
    if sort_by not in SORTABLE_COLUMNS:
        raise BadRequestError(
            f"Cannot sort by '{sort_by}'. Allowed: {', '.join(sorted(SORTABLE_COLUMNS))}"
        )
    if sort_dir.lower() not in ("asc", "desc"):
        raise BadRequestError("sort_dir must be 'asc' or 'desc'")
    return PageRequest(page=page, size=size, sort_by=sort_by, descending=sort_dir.lower() == "desc")


class CatalogService:
    """Book CRUD. Availability itself is owned by the circulation engine."""

    def __init__(self, db: Session, notifier: AvailabilityNotifier):
        self.db = db
        self.notifier = notifier
        self.books = BookRepository(db)
        self.records = BorrowRecordRepository(db)

    def create_book(self, data: BookCreate) -> Book:
        if self.books.exists_by_isbn(data.isbn):
            raise DuplicateIsbnError(f"A book with ISBN {data.isbn} already exists")

        book = Book(
            title=data.title,
            author=data.author,
            isbn=data.isbn,
            publication_date=data.publication_date,
            genre=data.genre,
            available=True,
        )
        try:
            self.books.save(book)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise DuplicateIsbnError(f"A book with ISBN {data.isbn} already exists") from e
        self.db.refresh(book)
        logger.info(f"Created new book with ISBN: {book.isbn}")

        try:
            self.notifier.publish(BookAvailabilityEvent.from_book(book, now_local()))
        except Exception as e:
            logger.error(f"Failed to publish availability event for new book {book.book_id}: {e}", exc_info=True)
        return book

    def get_book(self, book_id: int) -> Book:
        book = self.books.find_by_id(book_id)
        if book is None:
            raise BookNotFoundError(f"Book not found with id: {book_id}")
        return book

    def get_book_by_isbn(self, isbn: str) -> Book:
        book = self.books.find_by_isbn(isbn)
        if book is None:
            raise BookNotFoundError(f"Book not found with isbn: {isbn}")
        return book

    def list_books(self, page_request: PageRequest) -> Page[Book]:
        return self.books.search(page_request)

    def search_books(
        self,
        page_request: PageRequest,
        title: Optional[str] = None,
        author: Optional[str] = None,
        genre: Optional[str] = None,
        available: Optional[bool] = None,
        published_after: Optional[date] = None,
        published_before: Optional[date] = None,
    ) -> Page[Book]:
        if published_after and published_before and published_after > published_before:
            raise BadRequestError("published_after must not be later than published_before")
        return self.books.search(
            page_request,
            title=title,
            author=author,
            genre=genre,
            available=available,
            published_after=published_after,
            published_before=published_before,
        )

    def update_book(self, book_id: int, data: BookUpdate) -> Book:
        book = self.get_book(book_id)
        for name, value in data.model_dump(exclude_unset=True).items():
            setattr(book, name, value)
        self.books.save(book)
        self.db.commit()
        self.db.refresh(book)
        logger.info(f"Updated book with ID: {book_id}")
        return book

    def delete_book(self, book_id: int):
        book = self.get_book(book_id)
        if self.records.find_open_by_book(book_id) is not None:
            raise ResourceInUseError("Cannot delete a book that is currently on loan")
        if self.records.exists_by_book(book_id):
            raise ResourceInUseError("Cannot delete a book with borrowing history")
        self.books.delete(book)
        self.db.commit()
        logger.info(f"Deleted book with ID: {book_id}")


def get_catalog_service(
    db: Session = Depends(get_db),
    notifier: AvailabilityNotifier = Depends(get_notifier),
) -> CatalogService:
    return CatalogService(db, notifier)
