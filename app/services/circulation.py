"""Borrow/return lifecycle for books and borrow records.

Every operation receives the authenticated ``User`` explicitly. Borrow and
return each run as a single transaction: the patron (on borrow) and book
rows are read under row locks, the preconditions are checked, the record
and the book's availability flag are written and committed together, and
only then is the availability event published.
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from fastapi import Depends
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.exceptions import (
    AccountDisabledError,
    AlreadyBorrowedError,
    BookNotFoundError,
    BookUnavailableError,
    CirculationIntegrityError,
    HasOverdueBooksError,
    LibraryError,
    LoanLimitExceededError,
    NoActiveLoanError,
    NotBorrowerError,
    WriteConflictError,
)
from app.models.book import Book
from app.models.borrow_record import BorrowRecord
from app.models.user import Role, User
from app.repositories.books import BookRepository
from app.repositories.borrow_records import BorrowRecordRepository
from app.repositories.users import UserRepository
from app.schemas.events import BookAvailabilityEvent
from app.services.availability import AvailabilityNotifier, get_notifier
from app.services.reports import OverdueReport, build_overdue_report
from app.utils.timezone import ensure_aware, now_local

logger = logging.getLogger(__name__)

MAX_ACTIVE_LOANS = 5
DEFAULT_LOAN_PERIOD_DAYS = 14

Clock = Callable[[], datetime]


def can_return_for_others(role: Role) -> bool:
    """Whether a user with ``role`` may close loans they did not open."""
    if role == Role.LIBRARIAN:
        return True
    if role == Role.PATRON:
        return False
    raise ValueError(f"Unknown role: {role!r}")


def validate_record_dates(record: BorrowRecord):
    borrow_date = ensure_aware(record.borrow_date)
    due_date = ensure_aware(record.due_date)
    return_date = ensure_aware(record.return_date)

    if borrow_date is not None and due_date is not None and due_date < borrow_date:
        raise CirculationIntegrityError(
            f"Due date {due_date.isoformat()} is before borrow date {borrow_date.isoformat()}"
        )
    if borrow_date is not None and return_date is not None and return_date < borrow_date:
        raise CirculationIntegrityError(
            f"Return date {return_date.isoformat()} is before borrow date {borrow_date.isoformat()}"
        )


class CirculationService:
    def __init__(
        self,
        db: Session,
        notifier: AvailabilityNotifier,
        clock: Clock = now_local,
        max_active_loans: int = MAX_ACTIVE_LOANS,
        loan_period_days: int = DEFAULT_LOAN_PERIOD_DAYS,
        block_when_overdue: bool = True,
    ):
        self.db = db
        self.notifier = notifier
        self.clock = clock
        self.max_active_loans = max_active_loans
        self.loan_period = timedelta(days=loan_period_days)
        self.block_when_overdue = block_when_overdue
        self.books = BookRepository(db)
        self.records = BorrowRecordRepository(db)
        self.users = UserRepository(db)

    # -- transitions -------------------------------------------------------

    def borrow_book(self, user: User, book_id: int) -> BorrowRecord:
        """Open a loan of ``book_id`` for ``user``.

        Raises, in this order: AccountDisabledError, LoanLimitExceededError,
        HasOverdueBooksError (when the overdue block is on), BookNotFoundError,
        BookUnavailableError, AlreadyBorrowedError.
        """
        now = self.clock()
        try:
            book = self._check_can_borrow(user, book_id, now)
        except LibraryError:
            # Release the row lock taken while checking
            self.db.rollback()
            raise

        record = BorrowRecord(
            user_id=user.user_id,
            book_id=book.book_id,
            borrow_date=now,
            due_date=now + self.loan_period,
            return_date=None,
        )
        validate_record_dates(record)

        try:
            self.records.save(record)
            book.available = False
            self.books.save(book)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Concurrent borrow of book {book_id} lost the race: {e}")
            raise BookUnavailableError("Book is not available for borrowing") from e
        except SQLAlchemyError:
            self.db.rollback()
            raise

        self.db.refresh(record)
        logger.info(f"User {user.email} borrowed book '{book.title}' (record {record.record_id}, due {record.due_date})")
        self._publish(book, now)
        return record

    def return_book(self, user: User, book_id: int) -> BorrowRecord:
        """Close the open loan of ``book_id``.

        Raises AccountDisabledError, BookNotFoundError, NoActiveLoanError, or
        NotBorrowerError when a patron returns someone else's loan.
        """
        now = self.clock()
        try:
            book, record = self._check_can_return(user, book_id)
        except LibraryError:
            self.db.rollback()
            raise

        record.return_date = now
        validate_record_dates(record)

        try:
            self.records.save(record)
            book.available = True
            self.books.save(book)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise WriteConflictError(f"Return of book {book_id} conflicted with another update") from e
        except SQLAlchemyError:
            self.db.rollback()
            raise

        self.db.refresh(record)
        logger.info(f"Book '{book.title}' returned by {user.email} (record {record.record_id})")
        self._publish(book, now)
        return record

    # -- read views --------------------------------------------------------

    def list_user_history(self, user: User) -> List[BorrowRecord]:
        self._require_enabled(user, "Your account is disabled. Please contact an administrator.")
        return self.records.find_by_user_order_by_borrow_date_desc(user.user_id)

    def list_user_active_loans(self, user: User) -> List[BorrowRecord]:
        self._require_enabled(user, "Your account is disabled. Please contact an administrator.")
        return self.records.find_open_by_user_order_by_due_date_asc(user.user_id)

    def list_all_records(self) -> List[BorrowRecord]:
        # Caller has already checked the librarian role
        return self.records.find_all()

    def list_overdue_records(self, now: Optional[datetime] = None) -> List[BorrowRecord]:
        return self.records.find_all_open_overdue(now or self.clock())

    def generate_overdue_report(self) -> OverdueReport:
        now = self.clock()
        return build_overdue_report(self.records.find_all_open_overdue(now), now)

    # -- helpers -----------------------------------------------------------

    def _check_can_borrow(self, user: User, book_id: int, now: datetime) -> Book:
        self._require_enabled(user, "Your account is disabled. Cannot borrow books.")

        # Patron row before book row; the count below stays valid until commit
        self.users.find_by_id(user.user_id, for_update=True)

        active_loans = self.records.count_open_by_user(user.user_id)
        if active_loans >= self.max_active_loans:
            logger.warning(f"User {user.email} refused: {active_loans} active loans")
            raise LoanLimitExceededError(
                f"You have reached the maximum limit of {self.max_active_loans} active loans"
            )

        if self.block_when_overdue and self.records.has_overdue_by_user(user.user_id, now):
            logger.warning(f"User {user.email} refused: has overdue books")
            raise HasOverdueBooksError(
                "You have overdue books. Please return them before borrowing more books."
            )

        book = self._find_book_for_update(book_id)

        already_borrowed = self.records.exists_open_by_user_and_book(user.user_id, book.book_id)

        if not book.available:
            # Narrowed when the loan keeping the book out is the caller's own
            if already_borrowed:
                raise AlreadyBorrowedError("You already have an active loan for this book")
            raise BookUnavailableError("Book is not available for borrowing")

        if already_borrowed:
            raise AlreadyBorrowedError("You already have an active loan for this book")

        return book

    def _check_can_return(self, user: User, book_id: int):
        self._require_enabled(user, "Your account is disabled. Please contact an administrator.")

        book = self._find_book_for_update(book_id)

        record = self.records.find_open_by_book(book.book_id)
        if record is None:
            raise NoActiveLoanError(f"No active loan found for book with id: {book_id}")

        if record.user_id != user.user_id and not can_return_for_others(user.role):
            logger.warning(f"User {user.email} tried to return book {book_id} borrowed by user {record.user_id}")
            raise NotBorrowerError("You can only return books that you borrowed")

        return book, record

    def _require_enabled(self, user: User, message: str):
        if not user.enabled:
            logger.warning(f"Disabled account {user.email} attempted a circulation operation")
            raise AccountDisabledError(message)

    def _find_book_for_update(self, book_id: int) -> Book:
        book = self.books.find_by_id(book_id, for_update=True)
        if book is None:
            raise BookNotFoundError(f"Book not found with id: {book_id}")
        return book

    def _publish(self, book: Book, now: datetime):
        try:
            self.notifier.publish(BookAvailabilityEvent.from_book(book, now))
        except Exception as e:
            # The loan is already committed
            logger.error(f"Failed to publish availability event for book {book.book_id}: {e}", exc_info=True)


def get_circulation_service(
    db: Session = Depends(get_db),
    notifier: AvailabilityNotifier = Depends(get_notifier),
) -> CirculationService:
    return CirculationService(
        db,
        notifier,
        max_active_loans=settings.max_active_loans,
        loan_period_days=settings.loan_period_days,
        block_when_overdue=settings.block_borrowing_when_overdue,
    )
