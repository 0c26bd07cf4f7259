"""Overdue report aggregation and its text/CSV renderings."""
import csv
import io
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional

from app.utils.timezone import ensure_aware

REPORT_TITLE = "LIBRARY OVERDUE BOOKS REPORT"
NO_OVERDUE_MESSAGE = "No overdue books found"
CSV_HEADER = [
    "Book Title",
    "ISBN",
    "Patron First Name",
    "Patron Last Name",
    "Patron Email",
    "Borrow Date",
    "Due Date",
    "Days Overdue",
]
DATE_FORMAT = "%Y-%m-%d %H:%M"
GENERATED_FORMAT = "%Y-%m-%d %H:%M:%S"

# (label, lower bound inclusive, upper bound exclusive) in whole days overdue
BUCKETS = (
    ("< 7 days overdue", 0, 7),
    ("7-14 days overdue", 7, 14),
    ("14-30 days overdue", 14, 30),
    ("> 30 days overdue", 30, None),
)


@dataclass
class OverdueLine:
    record_id: int
    book_title: str
    isbn: str
    author: str
    patron_id: int
    patron_first_name: str
    patron_last_name: str
    patron_email: str
    borrow_date: datetime
    due_date: datetime
    days_overdue: int


@dataclass
class OverdueBucket:
    label: str
    min_days: int
    max_days: Optional[int]
    count: int = 0

    def contains(self, days: int) -> bool:
        return days >= self.min_days and (self.max_days is None or days < self.max_days)


@dataclass
class OverdueReport:
    generated_at: datetime
    lines: List[OverdueLine] = field(default_factory=list)
    buckets: List[OverdueBucket] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.lines)

    @property
    def unique_patrons(self) -> int:
        return len({line.patron_id for line in self.lines})


def days_overdue(due_date: datetime, now: datetime) -> int:
    """Whole days between the due date and now, rounded down."""
    return (now - ensure_aware(due_date)).days


def build_overdue_report(records: Iterable, now: datetime) -> OverdueReport:
    """Aggregate open, past-due borrow records as of ``now``."""
    buckets = [OverdueBucket(label, low, high) for label, low, high in BUCKETS]
    lines = []
    for record in records:
        if not record.is_overdue(now):
            continue
        days = days_overdue(record.due_date, now)
        lines.append(OverdueLine(
            record_id=record.record_id,
            book_title=record.book.title,
            isbn=record.book.isbn,
            author=record.book.author,
            patron_id=record.user.user_id,
            patron_first_name=record.user.first_name,
            patron_last_name=record.user.last_name,
            patron_email=record.user.email,
            borrow_date=ensure_aware(record.borrow_date),
            due_date=ensure_aware(record.due_date),
            days_overdue=days,
        ))
        for bucket in buckets:
            if bucket.contains(days):
                bucket.count += 1
                break
    return OverdueReport(generated_at=now, lines=lines, buckets=buckets)


def render_text(report: OverdueReport) -> str:
    generated = f"Generated: {report.generated_at.strftime(GENERATED_FORMAT)}"
    out = [REPORT_TITLE, "-" * 26]

    if not report.lines:
        out.extend([NO_OVERDUE_MESSAGE, "", generated])
        return "\n".join(out)

    out.append(f"Total Overdue Books: {report.total}")
    out.append(f"Unique Patrons with Overdue Books: {report.unique_patrons}")
    out.append("")
    out.append("OVERDUE BREAKDOWN:")
    for bucket in report.buckets:
        out.append(f"{bucket.label}: {bucket.count}")
    out.append("")
    out.append("DETAILED OVERDUE RECORDS:")
    out.append("-" * 23)

    for number, line in enumerate(report.lines, start=1):
        out.append(f'{number}. Book: "{line.book_title}" (ISBN: {line.isbn})')
        out.append(f"   Author: {line.author}")
        out.append(f"   Patron: {line.patron_first_name} {line.patron_last_name} ({line.patron_email})")
        out.append(f"   Borrowed: {line.borrow_date.strftime(DATE_FORMAT)}")
        out.append(f"   Due: {line.due_date.strftime(DATE_FORMAT)}")
        out.append(f"   Days Overdue: {line.days_overdue}")
        out.append("")

    out.append("")
    out.append(generated)
    return "\n".join(out)


def render_csv(report: OverdueReport) -> str:
    if not report.lines:
        return NO_OVERDUE_MESSAGE

    buffer = io.StringIO()
    # QUOTE_MINIMAL quotes fields holding a delimiter, quote or newline and doubles inner quotes
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for line in report.lines:
        writer.writerow([
            line.book_title,
            line.isbn,
            line.patron_first_name,
            line.patron_last_name,
            line.patron_email,
            line.borrow_date.strftime(DATE_FORMAT),
            line.due_date.strftime(DATE_FORMAT),
            line.days_overdue,
        ])
    return buffer.getvalue()
