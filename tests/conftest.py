"""Shared fixtures: in-memory database, fixed clock, notifier and API client.

Settings are read from the environment at import time, so the required
values are set here before any ``app`` module is imported.
"""
import os

os.environ.setdefault("DB_NAME", "library_test")
os.environ.setdefault("DB_USER", "library")
os.environ.setdefault("DB_PASSWORD", "library")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LIBRARY_TIMEZONE"] = "UTC"
os.environ["MQTT_ENABLED"] = "false"

from collections.abc import Generator
from datetime import datetime, timedelta

import pytest
import pytz
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401  registers every table on Base.metadata
from app.database import Base, get_db
from app.main import app as fastapi_app
from app.models.book import Book
from app.models.borrow_record import BorrowRecord
from app.models.user import Role, User
from app.services.auth import create_access_token, get_password_hash
from app.services.availability import AvailabilityNotifier, get_notifier
from app.services.circulation import CirculationService, get_circulation_service

TEST_PASSWORD = "secret123"
# Hashed once; bcrypt is deliberately slow
TEST_PASSWORD_HASH = get_password_hash(TEST_PASSWORD)

START = datetime(2024, 3, 1, 10, 0, 0, tzinfo=pytz.UTC)


class FixedClock:
    """Clock whose time only moves when a test says so."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


# === Database ===


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine) -> Generator[Session, None, None]:
    session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = session_local()
    try:
        yield session
    finally:
        session.close()


# === Domain objects ===


def make_user(db: Session, email: str, role: Role = Role.PATRON, enabled: bool = True,
              first_name: str = "Test", last_name: str = "User") -> User:
    user = User(
        first_name=first_name,
        last_name=last_name,
        email=email,
        password_hash=TEST_PASSWORD_HASH,
        role=role,
        enabled=enabled,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_book(db: Session, isbn: str, title: str = "A Book", author: str = "An Author",
              available: bool = True, genre: str = None) -> Book:
    book = Book(isbn=isbn, title=title, author=author, available=available, genre=genre)
    db.add(book)
    db.commit()
    db.refresh(book)
    return book


def make_open_loan(db: Session, user: User, book: Book, borrow_date: datetime, loan_days: int = 14) -> BorrowRecord:
    """Insert an open loan directly, keeping the book's flag consistent."""
    record = BorrowRecord(
        user_id=user.user_id,
        book_id=book.book_id,
        borrow_date=borrow_date,
        due_date=borrow_date + timedelta(days=loan_days),
    )
    book.available = False
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(START)


@pytest.fixture
def notifier() -> AvailabilityNotifier:
    return AvailabilityNotifier(history_size=100)


@pytest.fixture
def circulation(db_session, notifier, clock) -> CirculationService:
    return CirculationService(db_session, notifier, clock=clock)


@pytest.fixture
def patron(db_session) -> User:
    return make_user(db_session, "patron@example.com", first_name="Pat", last_name="Ron")


@pytest.fixture
def other_patron(db_session) -> User:
    return make_user(db_session, "other@example.com", first_name="Otto", last_name="Other")


@pytest.fixture
def librarian(db_session) -> User:
    return make_user(db_session, "librarian@example.com", role=Role.LIBRARIAN, first_name="Libby", last_name="Rarian")


@pytest.fixture
def book(db_session) -> Book:
    return make_book(db_session, "9780132350884", title="Clean Code", author="Robert C. Martin")


# === HTTP ===


@pytest.fixture
def client(db_session, notifier, clock) -> Generator[TestClient, None, None]:
    def override_get_db():
        yield db_session

    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[get_notifier] = lambda: notifier
    fastapi_app.dependency_overrides[get_circulation_service] = (
        lambda: CirculationService(db_session, notifier, clock=clock)
    )
    # Not used as a context manager: the lifespan hook would touch the real database
    yield TestClient(fastapi_app)
    fastapi_app.dependency_overrides.clear()


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user)}"}
