"""
Tests for the circulation engine.

These tests verify that borrowing and returning:
1. Check preconditions in order and fail with the right error
2. Keep each book's availability flag in step with its open loan
3. Publish an availability event only after a successful commit
4. Treat overdue as a strict, derived predicate
"""

from datetime import timedelta
from unittest.mock import Mock, call

import pytest
from sqlalchemy.orm import sessionmaker

from app.exceptions import (
    AccountDisabledError,
    AlreadyBorrowedError,
    BookNotFoundError,
    BookUnavailableError,
    CirculationIntegrityError,
    HasOverdueBooksError,
    LoanLimitExceededError,
    NoActiveLoanError,
    NotBorrowerError,
)
from app.models.book import Book
from app.models.borrow_record import BorrowRecord
from app.services.circulation import CirculationService, can_return_for_others, validate_record_dates
from app.utils.timezone import ensure_aware
from conftest import START, make_book, make_open_loan, make_user


def assert_availability_matches_open_loans(db):
    for book in db.query(Book).all():
        open_loans = db.query(BorrowRecord).filter(
            BorrowRecord.book_id == book.book_id,
            BorrowRecord.return_date.is_(None),
        ).count()
        assert open_loans <= 1
        assert book.available == (open_loans == 0), f"book {book.book_id} flag out of step"


class TestBorrowBook:
    """Test suite for CirculationService.borrow_book."""

    def test_borrow_available_book(self, circulation, db_session, notifier, patron, book):
        record = circulation.borrow_book(patron, book.book_id)

        assert record.user_id == patron.user_id
        assert record.book_id == book.book_id
        assert record.return_date is None
        assert ensure_aware(record.borrow_date) == START
        assert ensure_aware(record.due_date) == START + timedelta(days=14)

        db_session.refresh(book)
        assert book.available is False

        events = notifier.history()
        assert len(events) == 1
        assert events[0].book_id == book.book_id
        assert events[0].isbn == book.isbn
        assert events[0].available is False
        assert events[0].timestamp == START
        assert_availability_matches_open_loans(db_session)

    def test_borrow_own_open_loan_again(self, circulation, patron, book):
        circulation.borrow_book(patron, book.book_id)

        with pytest.raises(AlreadyBorrowedError):
            circulation.borrow_book(patron, book.book_id)

    def test_borrow_book_held_by_someone_else(self, circulation, notifier, patron, other_patron, book):
        circulation.borrow_book(other_patron, book.book_id)

        with pytest.raises(BookUnavailableError):
            circulation.borrow_book(patron, book.book_id)
        assert len(notifier.history()) == 1

    def test_loan_limit(self, circulation, db_session, patron):
        books = [make_book(db_session, f"978000000000{i}", title=f"Book {i}") for i in range(6)]
        for book in books[:5]:
            circulation.borrow_book(patron, book.book_id)

        with pytest.raises(LoanLimitExceededError):
            circulation.borrow_book(patron, books[5].book_id)

        assert db_session.query(BorrowRecord).filter(BorrowRecord.user_id == patron.user_id).count() == 5
        db_session.refresh(books[5])
        assert books[5].available is True

    def test_configured_loan_limit(self, db_session, notifier, clock, patron):
        circulation = CirculationService(db_session, notifier, clock=clock, max_active_loans=1)
        first = make_book(db_session, "9780000000001")
        second = make_book(db_session, "9780000000002")
        circulation.borrow_book(patron, first.book_id)

        with pytest.raises(LoanLimitExceededError):
            circulation.borrow_book(patron, second.book_id)

    def test_disabled_user_cannot_borrow(self, circulation, db_session, notifier, book):
        disabled = make_user(db_session, "disabled@example.com", enabled=False)

        with pytest.raises(AccountDisabledError):
            circulation.borrow_book(disabled, book.book_id)

        db_session.refresh(book)
        assert book.available is True
        assert db_session.query(BorrowRecord).count() == 0
        assert notifier.history() == []

    def test_disabled_checked_before_missing_book(self, circulation, db_session):
        disabled = make_user(db_session, "disabled@example.com", enabled=False)

        with pytest.raises(AccountDisabledError):
            circulation.borrow_book(disabled, 9999)

    def test_missing_book(self, circulation, patron):
        with pytest.raises(BookNotFoundError):
            circulation.borrow_book(patron, 9999)

    def test_overdue_loan_blocks_new_borrowing(self, circulation, db_session, clock, patron, book):
        other_book = make_book(db_session, "9780201633610", title="Design Patterns")
        circulation.borrow_book(patron, book.book_id)

        clock.advance(days=15)
        with pytest.raises(HasOverdueBooksError):
            circulation.borrow_book(patron, other_book.book_id)

    def test_overdue_block_can_be_disabled(self, db_session, notifier, clock, patron, book):
        circulation = CirculationService(db_session, notifier, clock=clock, block_when_overdue=False)
        other_book = make_book(db_session, "9780201633610", title="Design Patterns")
        circulation.borrow_book(patron, book.book_id)

        clock.advance(days=15)
        record = circulation.borrow_book(patron, other_book.book_id)
        assert record.book_id == other_book.book_id

    def test_loan_due_exactly_now_does_not_block(self, circulation, db_session, clock, patron, book):
        other_book = make_book(db_session, "9780201633610", title="Design Patterns")
        circulation.borrow_book(patron, book.book_id)

        clock.advance(days=14)
        record = circulation.borrow_book(patron, other_book.book_id)
        assert record.return_date is None

    def test_publish_failure_keeps_the_loan(self, db_session, clock, patron, book):
        class BrokenNotifier:
            def publish(self, event):
                raise RuntimeError("subscriber exploded")

        circulation = CirculationService(db_session, BrokenNotifier(), clock=clock)
        record = circulation.borrow_book(patron, book.book_id)

        assert record.record_id is not None
        db_session.refresh(book)
        assert book.available is False

    def test_patron_row_locked_before_counting_loans(self, circulation, patron, book):
        calls = Mock()
        calls.attach_mock(Mock(wraps=circulation.users.find_by_id), "find_patron")
        calls.attach_mock(Mock(wraps=circulation.records.count_open_by_user), "count_open_loans")
        circulation.users.find_by_id = calls.find_patron
        circulation.records.count_open_by_user = calls.count_open_loans

        circulation.borrow_book(patron, book.book_id)

        assert calls.mock_calls[:2] == [
            call.find_patron(patron.user_id, for_update=True),
            call.count_open_loans(patron.user_id),
        ]

    def test_borrow_from_stale_session_loses_the_race(self, engine, db_session, notifier, clock,
                                                      patron, other_patron, book):
        stale_session = sessionmaker(bind=engine)()
        try:
            stale_circulation = CirculationService(stale_session, notifier, clock=clock)
            # Loaded before the competing borrow commits, so this session still sees it available
            assert stale_session.get(Book, book.book_id).available is True

            CirculationService(db_session, notifier, clock=clock).borrow_book(patron, book.book_id)

            with pytest.raises(BookUnavailableError):
                stale_circulation.borrow_book(other_patron, book.book_id)
        finally:
            stale_session.close()

        open_records = db_session.query(BorrowRecord).filter(BorrowRecord.return_date.is_(None)).all()
        assert [record.user_id for record in open_records] == [patron.user_id]
        assert len(notifier.history()) == 1
        assert_availability_matches_open_loans(db_session)


class TestReturnBook:
    """Test suite for CirculationService.return_book."""

    def test_round_trip(self, circulation, db_session, notifier, clock, patron, book):
        circulation.borrow_book(patron, book.book_id)
        clock.advance(days=3)
        record = circulation.return_book(patron, book.book_id)

        assert ensure_aware(record.return_date) == START + timedelta(days=3)
        assert ensure_aware(record.return_date) >= ensure_aware(record.borrow_date)

        db_session.refresh(book)
        assert book.available is True
        records = db_session.query(BorrowRecord).filter(BorrowRecord.book_id == book.book_id).all()
        assert len(records) == 1
        assert records[0].return_date is not None

        events = notifier.history()
        assert [event.available for event in events] == [False, True]
        assert_availability_matches_open_loans(db_session)

    def test_double_return(self, circulation, patron, book):
        circulation.borrow_book(patron, book.book_id)
        circulation.return_book(patron, book.book_id)

        with pytest.raises(NoActiveLoanError):
            circulation.return_book(patron, book.book_id)

    def test_return_book_never_borrowed(self, circulation, patron, book):
        with pytest.raises(NoActiveLoanError):
            circulation.return_book(patron, book.book_id)

    def test_return_missing_book(self, circulation, patron):
        with pytest.raises(BookNotFoundError):
            circulation.return_book(patron, 9999)

    def test_librarian_returns_for_patron(self, circulation, db_session, patron, librarian, book):
        circulation.borrow_book(patron, book.book_id)

        record = circulation.return_book(librarian, book.book_id)

        assert record.user_id == patron.user_id
        assert record.return_date is not None
        db_session.refresh(book)
        assert book.available is True

    def test_patron_cannot_return_for_another_patron(self, circulation, db_session, notifier, patron, other_patron, book):
        circulation.borrow_book(patron, book.book_id)

        with pytest.raises(NotBorrowerError):
            circulation.return_book(other_patron, book.book_id)

        db_session.refresh(book)
        assert book.available is False
        assert len(notifier.history()) == 1

    def test_disabled_user_cannot_return(self, circulation, db_session, patron, book):
        circulation.borrow_book(patron, book.book_id)
        patron.enabled = False
        db_session.commit()

        with pytest.raises(AccountDisabledError):
            circulation.return_book(patron, book.book_id)

    def test_book_can_be_borrowed_again_after_return(self, circulation, db_session, patron, other_patron, book):
        circulation.borrow_book(patron, book.book_id)
        circulation.return_book(patron, book.book_id)

        record = circulation.borrow_book(other_patron, book.book_id)

        assert record.user_id == other_patron.user_id
        assert db_session.query(BorrowRecord).filter(BorrowRecord.book_id == book.book_id).count() == 2
        assert_availability_matches_open_loans(db_session)


class TestReadViews:
    """Test suite for history, active loans and overdue listings."""

    def test_history_newest_first(self, circulation, db_session, clock, patron):
        first = make_book(db_session, "9780000000001", title="First")
        second = make_book(db_session, "9780000000002", title="Second")
        circulation.borrow_book(patron, first.book_id)
        clock.advance(days=1)
        circulation.borrow_book(patron, second.book_id)
        circulation.return_book(patron, first.book_id)

        history = circulation.list_user_history(patron)

        assert [record.book_id for record in history] == [second.book_id, first.book_id]

    def test_active_loans_soonest_due_first(self, db_session, notifier, clock, patron):
        long_loans = CirculationService(db_session, notifier, clock=clock, loan_period_days=21)
        short_loans = CirculationService(db_session, notifier, clock=clock, loan_period_days=7)
        first = make_book(db_session, "9780000000001", title="First")
        second = make_book(db_session, "9780000000002", title="Second")
        returned = make_book(db_session, "9780000000003", title="Returned")
        long_loans.borrow_book(patron, first.book_id)
        short_loans.borrow_book(patron, second.book_id)
        short_loans.borrow_book(patron, returned.book_id)
        short_loans.return_book(patron, returned.book_id)

        active = short_loans.list_user_active_loans(patron)

        assert [record.book_id for record in active] == [second.book_id, first.book_id]

    def test_disabled_user_cannot_read_history(self, circulation, db_session):
        disabled = make_user(db_session, "disabled@example.com", enabled=False)

        with pytest.raises(AccountDisabledError):
            circulation.list_user_history(disabled)
        with pytest.raises(AccountDisabledError):
            circulation.list_user_active_loans(disabled)

    def test_list_all_records(self, circulation, db_session, patron, other_patron):
        first = make_book(db_session, "9780000000001")
        second = make_book(db_session, "9780000000002")
        circulation.borrow_book(patron, first.book_id)
        circulation.borrow_book(other_patron, second.book_id)

        assert len(circulation.list_all_records()) == 2

    def test_overdue_boundary_is_strict(self, circulation, db_session, patron, book):
        # Due exactly at START
        record = make_open_loan(db_session, patron, book, START - timedelta(days=14))

        assert circulation.list_overdue_records(START) == []
        assert record.is_overdue(START) is False

        one_second_later = START + timedelta(seconds=1)
        overdue = circulation.list_overdue_records(one_second_later)
        assert [r.record_id for r in overdue] == [record.record_id]
        assert record.is_overdue(one_second_later) is True

    def test_returned_loans_are_never_overdue(self, circulation, clock, patron, book):
        circulation.borrow_book(patron, book.book_id)
        clock.advance(days=30)
        record = circulation.return_book(patron, book.book_id)

        assert circulation.list_overdue_records() == []
        assert record.is_overdue(clock() + timedelta(days=100)) is False


class TestRules:
    """Test suite for the role check and the date-order guard."""

    def test_can_return_for_others(self):
        from app.models.user import Role

        assert can_return_for_others(Role.LIBRARIAN) is True
        assert can_return_for_others(Role.PATRON) is False
        with pytest.raises(ValueError):
            can_return_for_others("JANITOR")

    def test_due_date_before_borrow_date_is_rejected(self):
        record = BorrowRecord(borrow_date=START, due_date=START - timedelta(days=1))

        with pytest.raises(CirculationIntegrityError):
            validate_record_dates(record)

    def test_return_before_borrow_is_rejected(self):
        record = BorrowRecord(
            borrow_date=START,
            due_date=START + timedelta(days=14),
            return_date=START - timedelta(minutes=1),
        )

        with pytest.raises(CirculationIntegrityError):
            validate_record_dates(record)
