"""Nightly overdue sweep.

Logs every open loan past its due date. Meant to be run by an external
scheduler (cron, a Kubernetes CronJob) through the ``library-overdue-sweep``
console script; it never changes any data.
"""
import logging
from typing import Callable

from sqlalchemy.orm import Session

from app.config import settings
from app.database import SessionLocal
from app.services.availability import availability_notifier
from app.services.circulation import CirculationService
from app.utils.timezone import ensure_aware, now_local

logger = logging.getLogger(__name__)


def process_overdue_books(db: Session, clock: Callable = now_local) -> int:
    """Log one line per overdue loan and return how many there are."""
    now = clock()
    circulation = CirculationService(db, availability_notifier, clock=clock)
    overdue = circulation.list_overdue_records(now)

    logger.info(f"Overdue sweep at {now.isoformat()}: {len(overdue)} overdue loan(s)")
    for record in overdue:
        logger.info(
            f"Overdue: '{record.book.title}' (ISBN {record.book.isbn}) borrowed by {record.user.email}, "
            f"due {ensure_aware(record.due_date).isoformat()}, {record.days_overdue(now)} day(s) overdue"
        )
    return len(overdue)


def main():
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    db = SessionLocal()
    try:
        process_overdue_books(db)
    finally:
        db.close()


if __name__ == "__main__":
    main()
