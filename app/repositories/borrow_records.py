from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session, joinedload
from app.models.borrow_record import BorrowRecord


class BorrowRecordRepository:
    """Loan ledger over the ``borrow_records`` table.

    "Open" always means ``return_date IS NULL``; "overdue" is open with a due
    date strictly before the supplied ``now``.
    """

    def __init__(self, db: Session):
        self.db = db

    def _query(self):
        return self.db.query(BorrowRecord).options(
            joinedload(BorrowRecord.user),
            joinedload(BorrowRecord.book),
        )

    def find_open_by_book(self, book_id: int) -> Optional[BorrowRecord]:
        return self._query().filter(
            BorrowRecord.book_id == book_id,
            BorrowRecord.return_date.is_(None)
        ).first()

    def exists_open_by_user_and_book(self, user_id: int, book_id: int) -> bool:
        return self.db.query(BorrowRecord.record_id).filter(
            BorrowRecord.user_id == user_id,
            BorrowRecord.book_id == book_id,
            BorrowRecord.return_date.is_(None)
        ).first() is not None

    def count_open_by_user(self, user_id: int) -> int:
        return self.db.query(BorrowRecord).filter(
            BorrowRecord.user_id == user_id,
            BorrowRecord.return_date.is_(None)
        ).count()

    def has_overdue_by_user(self, user_id: int, now: datetime) -> bool:
        return self.db.query(BorrowRecord.record_id).filter(
            BorrowRecord.user_id == user_id,
            BorrowRecord.return_date.is_(None),
            BorrowRecord.due_date < now
        ).first() is not None

    def find_all_open_overdue(self, now: datetime) -> List[BorrowRecord]:
        return self._query().filter(
            BorrowRecord.return_date.is_(None),
            BorrowRecord.due_date < now
        ).order_by(BorrowRecord.due_date.asc(), BorrowRecord.record_id.asc()).all()

    def find_by_user_order_by_borrow_date_desc(self, user_id: int) -> List[BorrowRecord]:
        return self._query().filter(
            BorrowRecord.user_id == user_id
        ).order_by(BorrowRecord.borrow_date.desc(), BorrowRecord.record_id.desc()).all()

    def find_open_by_user_order_by_due_date_asc(self, user_id: int) -> List[BorrowRecord]:
        return self._query().filter(
            BorrowRecord.user_id == user_id,
            BorrowRecord.return_date.is_(None)
        ).order_by(BorrowRecord.due_date.asc(), BorrowRecord.record_id.asc()).all()

    def find_all(self) -> List[BorrowRecord]:
        return self._query().order_by(BorrowRecord.borrow_date.desc(), BorrowRecord.record_id.desc()).all()

    def exists_by_book(self, book_id: int) -> bool:
        return self.db.query(BorrowRecord.record_id).filter(
            BorrowRecord.book_id == book_id
        ).first() is not None

    def exists_by_user(self, user_id: int) -> bool:
        return self.db.query(BorrowRecord.record_id).filter(
            BorrowRecord.user_id == user_id
        ).first() is not None

    def save(self, record: BorrowRecord) -> BorrowRecord:
        self.db.add(record)
        self.db.flush()
        return record
