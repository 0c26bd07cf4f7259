from datetime import datetime
from typing import Optional
from sqlalchemy import Column, DateTime, Integer, ForeignKey, CheckConstraint, Index, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
from app.utils.timezone import ensure_aware, now_local

class BorrowRecord(Base):
    """One loan of one book to one user.

    A record is open while ``return_date`` is NULL and closed once it is set.
    Overdue is never stored; see :meth:`is_overdue`.
    """
    __tablename__ = "borrow_records"

    record_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.user_id", ondelete="RESTRICT"), nullable=False, index=True)
    book_id = Column(Integer, ForeignKey("books.book_id", ondelete="RESTRICT"), nullable=False, index=True)
    borrow_date = Column(DateTime(timezone=True), nullable=False)
    due_date = Column(DateTime(timezone=True), nullable=False, index=True)
    return_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="borrow_records")
    book = relationship("Book", back_populates="borrow_records")

    __table_args__ = (
        CheckConstraint("due_date >= borrow_date", name="chk_borrow_due_after_borrow"),
        CheckConstraint("return_date IS NULL OR return_date >= borrow_date", name="chk_borrow_return_after_borrow"),
        # At most one open loan per book
        Index(
            "uq_borrow_records_open_book",
            "book_id",
            unique=True,
            postgresql_where=text("return_date IS NULL"),
            sqlite_where=text("return_date IS NULL"),
        ),
    )

    @property
    def is_open(self) -> bool:
        return self.return_date is None

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        """Open and strictly past its due date."""
        if not self.is_open:
            return False
        now = now or now_local()
        return now > ensure_aware(self.due_date)

    def days_overdue(self, now: Optional[datetime] = None) -> int:
        """Whole days elapsed since the due date (0 when not overdue)."""
        now = now or now_local()
        if not self.is_overdue(now):
            return 0
        return (now - ensure_aware(self.due_date)).days

    def to_dict(self, now: Optional[datetime] = None):
        return {
            "id": str(self.record_id),
            "userId": str(self.user_id),
            "firstName": self.user.first_name if self.user else None,
            "lastName": self.user.last_name if self.user else None,
            "email": self.user.email if self.user else None,
            "bookId": str(self.book_id),
            "bookTitle": self.book.title if self.book else None,
            "bookIsbn": self.book.isbn if self.book else None,
            "borrowDate": ensure_aware(self.borrow_date),
            "dueDate": ensure_aware(self.due_date),
            "returnDate": ensure_aware(self.return_date),
            "isOverdue": self.is_overdue(now),
        }
