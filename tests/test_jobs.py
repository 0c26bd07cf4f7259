"""
Tests for the overdue sweep job and start-up seeding.
"""

import logging
from datetime import timedelta
from unittest.mock import patch

from app import bootstrap
from app.jobs.overdue_sweep import process_overdue_books
from app.models.book import Book
from app.models.borrow_record import BorrowRecord
from app.models.user import Role, User
from app.services.auth import verify_password
from conftest import START, make_book, make_open_loan, make_user


class TestOverdueSweep:
    """Test suite for process_overdue_books."""

    def test_counts_and_logs_overdue_loans(self, db_session, clock, patron, book, caplog):
        make_open_loan(db_session, patron, book, START - timedelta(days=20))
        on_time = make_book(db_session, "9780201633610", title="Design Patterns")
        make_open_loan(db_session, patron, on_time, START - timedelta(days=1))

        with caplog.at_level(logging.INFO, logger="app.jobs.overdue_sweep"):
            count = process_overdue_books(db_session, clock=clock)

        assert count == 1
        assert "1 overdue loan(s)" in caplog.text
        assert "'Clean Code'" in caplog.text
        assert "6 day(s) overdue" in caplog.text

    def test_sweep_changes_nothing(self, db_session, clock, patron, book):
        make_open_loan(db_session, patron, book, START - timedelta(days=20))

        process_overdue_books(db_session, clock=clock)

        record = db_session.query(BorrowRecord).one()
        assert record.return_date is None
        db_session.refresh(book)
        assert book.available is False

    def test_nothing_overdue(self, db_session, clock):
        assert process_overdue_books(db_session, clock=clock) == 0


class TestBootstrap:
    """Test suite for start-up seeding."""

    def test_creates_admin_on_empty_database(self, db_session):
        with patch.multiple(bootstrap.settings, admin_email="admin@example.com", admin_password="admin123"):
            admin = bootstrap.create_admin(db_session)

        assert admin.role == Role.LIBRARIAN
        assert admin.enabled is True
        assert verify_password("admin123", admin.password_hash)

    def test_skips_when_users_exist(self, db_session, patron):
        with patch.multiple(bootstrap.settings, admin_email="admin@example.com", admin_password="admin123"):
            assert bootstrap.create_admin(db_session) is None

        assert db_session.query(User).count() == 1

    def test_skips_without_credentials(self, db_session):
        with patch.multiple(bootstrap.settings, admin_email=None, admin_password=None):
            assert bootstrap.create_admin(db_session) is None

        assert db_session.query(User).count() == 0

    def test_sample_data_covers_every_loan_state(self, db_session, clock):
        bootstrap.seed_sample_data(db_session, clock=clock)

        records = db_session.query(BorrowRecord).all()
        now = clock()
        open_records = [r for r in records if r.return_date is None]
        assert db_session.query(User).count() == 3
        assert db_session.query(Book).count() == 5
        assert len(records) == 5
        assert len(open_records) == 3
        assert sum(1 for r in open_records if r.is_overdue(now)) == 2

        for book in db_session.query(Book).all():
            has_open = any(r.book_id == book.book_id for r in open_records)
            assert book.available == (not has_open)

    def test_sample_loans_use_configured_loan_period(self, db_session, clock):
        with patch.object(bootstrap.settings, "loan_period_days", 7):
            bootstrap.seed_sample_data(db_session, clock=clock)

        records = db_session.query(BorrowRecord).all()
        assert len(records) == 5
        assert {r.due_date - r.borrow_date for r in records} == {timedelta(days=7)}

    def test_run_seeds_sample_data_with_fresh_admin(self, db_session):
        with patch.multiple(
            bootstrap.settings,
            admin_email="admin@example.com",
            admin_password="admin123",
            seed_sample_data=True,
        ):
            bootstrap.run(db_session)

        assert db_session.query(User).filter(User.role == Role.LIBRARIAN).count() == 1
        assert db_session.query(User).count() == 4
        assert db_session.query(BorrowRecord).count() == 5
