"""Start-up seeding: the first librarian account and optional demo data."""
import logging
from datetime import date, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.models.book import Book
from app.models.borrow_record import BorrowRecord
from app.models.user import Role, User
from app.repositories.books import BookRepository
from app.repositories.users import UserRepository
from app.services.auth import get_password_hash
from app.utils.timezone import now_local

logger = logging.getLogger(__name__)

SAMPLE_PASSWORD = "password123"

SAMPLE_PATRONS = [
    ("Alice", "Reader", "alice@example.com"),
    ("Bob", "Borrower", "bob@example.com"),
    ("Carol", "Late", "carol@example.com"),
]

SAMPLE_BOOKS = [
    ("9780132350884", "Clean Code", "Robert C. Martin", date(2008, 8, 1), "Software"),
    ("9780201633610", "Design Patterns", "Erich Gamma", date(1994, 10, 31), "Software"),
    ("9780262033848", "Introduction to Algorithms", "Thomas H. Cormen", date(2009, 7, 31), "Computer Science"),
    ("9780141439518", "Pride and Prejudice", "Jane Austen", date(1813, 1, 28), "Fiction"),
    ("9780451524935", "Nineteen Eighty-Four", "George Orwell", date(1949, 6, 8), "Fiction"),
]


def create_admin(db: Session) -> Optional[User]:
    """Create the configured librarian when the users table is still empty."""
    users = UserRepository(db)
    if users.count() > 0:
        logger.info("Users already present, skipping admin bootstrap")
        return None
    if not settings.admin_email or not settings.admin_password:
        logger.warning("No admin_email/admin_password configured, no librarian account created")
        return None

    admin = User(
        first_name=settings.admin_first_name,
        last_name=settings.admin_last_name,
        email=settings.admin_email,
        password_hash=get_password_hash(settings.admin_password),
        role=Role.LIBRARIAN,
        enabled=True,
    )
    users.save(admin)
    db.commit()
    logger.info(f"Bootstrap librarian created: {admin.email}")
    return admin


def seed_sample_data(db: Session, clock: Callable = now_local):
    """Demo patrons, books and loans covering every loan state."""
    users = UserRepository(db)
    books = BookRepository(db)
    now = clock()
    loan_period = timedelta(days=settings.loan_period_days)

    patrons = []
    for first_name, last_name, email in SAMPLE_PATRONS:
        patron = User(
            first_name=first_name,
            last_name=last_name,
            email=email,
            password_hash=get_password_hash(SAMPLE_PASSWORD),
            role=Role.PATRON,
            enabled=True,
        )
        patrons.append(users.save(patron))

    catalog = []
    for isbn, title, author, published, genre in SAMPLE_BOOKS:
        book = Book(isbn=isbn, title=title, author=author, publication_date=published, genre=genre, available=True)
        catalog.append(books.save(book))

    alice, bob, carol = patrons

    # (patron, book, borrowed days ago, returned days ago or None)
    loans = [
        (alice, catalog[0], 3, None),     # open, not yet due
        (bob, catalog[1], 20, None),      # open, overdue
        (carol, catalog[2], 50, None),    # open, long overdue
        (alice, catalog[3], 30, 20),      # returned on time
        (bob, catalog[4], 40, 10),        # returned late
    ]
    for patron, book, borrowed_ago, returned_ago in loans:
        borrow_date = now - timedelta(days=borrowed_ago)
        record = BorrowRecord(
            user_id=patron.user_id,
            book_id=book.book_id,
            borrow_date=borrow_date,
            due_date=borrow_date + loan_period,
            return_date=None if returned_ago is None else now - timedelta(days=returned_ago),
        )
        db.add(record)
        if returned_ago is None:
            book.available = False

    db.commit()
    logger.info(f"Sample data created: {len(patrons)} patrons, {len(catalog)} books, {len(loans)} borrow records")


def run(db: Session):
    """Run start-up seeding; sample data only alongside a fresh admin."""
    admin = create_admin(db)
    if admin is not None and settings.seed_sample_data:
        seed_sample_data(db)
