import logging
from fastapi import APIRouter, Depends, status
from fastapi.responses import PlainTextResponse, Response
from typing import List
from app.models.user import User
from app.schemas.borrow import (
    BorrowRecordResponse,
    OverdueBucketResponse,
    OverdueLineResponse,
    OverdueReportResponse,
)
from app.services.auth import get_current_user, require_librarian
from app.services.circulation import CirculationService, get_circulation_service
from app.services.reports import OverdueReport, render_csv, render_text

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/borrow", tags=["Borrowing"])

def _records(records, now) -> List[BorrowRecordResponse]:
    return [BorrowRecordResponse(**record.to_dict(now)) for record in records]

def _report_response(report: OverdueReport) -> OverdueReportResponse:
    return OverdueReportResponse(
        generatedAt=report.generated_at,
        totalOverdue=report.total,
        uniquePatrons=report.unique_patrons,
        buckets=[
            OverdueBucketResponse(label=b.label, minDays=b.min_days, maxDays=b.max_days, count=b.count)
            for b in report.buckets
        ],
        records=[
            OverdueLineResponse(
                recordId=str(line.record_id),
                bookTitle=line.book_title,
                isbn=line.isbn,
                author=line.author,
                patronFirstName=line.patron_first_name,
                patronLastName=line.patron_last_name,
                patronEmail=line.patron_email,
                borrowDate=line.borrow_date,
                dueDate=line.due_date,
                daysOverdue=line.days_overdue,
            )
            for line in report.lines
        ],
    )

@router.post("/{book_id}", response_model=BorrowRecordResponse, status_code=status.HTTP_201_CREATED)
async def borrow_book(
    book_id: int,
    current_user: User = Depends(get_current_user),
    circulation: CirculationService = Depends(get_circulation_service)
):
    """Borrow a book for the authenticated user."""
    logger.info(f"Request to borrow book with ID: {book_id}")
    record = circulation.borrow_book(current_user, book_id)
    return BorrowRecordResponse(**record.to_dict(circulation.clock()))

@router.put("/return/{book_id}", response_model=BorrowRecordResponse)
async def return_book(
    book_id: int,
    current_user: User = Depends(get_current_user),
    circulation: CirculationService = Depends(get_circulation_service)
):
    """Return a borrowed book. Librarians may return any loan."""
    logger.info(f"Request to return book with ID: {book_id}")
    record = circulation.return_book(current_user, book_id)
    return BorrowRecordResponse(**record.to_dict(circulation.clock()))

@router.get("/history", response_model=List[BorrowRecordResponse])
async def get_user_borrow_history(
    current_user: User = Depends(get_current_user),
    circulation: CirculationService = Depends(get_circulation_service)
):
    """Borrowing history of the authenticated user, newest first."""
    return _records(circulation.list_user_history(current_user), circulation.clock())

@router.get("/active", response_model=List[BorrowRecordResponse])
async def get_user_active_loans(
    current_user: User = Depends(get_current_user),
    circulation: CirculationService = Depends(get_circulation_service)
):
    """Open loans of the authenticated user, soonest due first."""
    return _records(circulation.list_user_active_loans(current_user), circulation.clock())

@router.get("/history/all", response_model=List[BorrowRecordResponse])
async def get_all_borrow_records(
    librarian: User = Depends(require_librarian),
    circulation: CirculationService = Depends(get_circulation_service)
):
    """Every borrow record in the system (librarians only)."""
    logger.info("Request to get all borrowing records")
    return _records(circulation.list_all_records(), circulation.clock())

@router.get("/overdue", response_model=List[BorrowRecordResponse])
async def get_all_overdue_records(
    librarian: User = Depends(require_librarian),
    circulation: CirculationService = Depends(get_circulation_service)
):
    """Open loans past their due date (librarians only)."""
    logger.info("Request to get all overdue records")
    now = circulation.clock()
    return _records(circulation.list_overdue_records(now), now)

@router.get("/overdue/report", response_model=OverdueReportResponse)
async def get_overdue_report(
    librarian: User = Depends(require_librarian),
    circulation: CirculationService = Depends(get_circulation_service)
):
    """Aggregated overdue report (librarians only)."""
    return _report_response(circulation.generate_overdue_report())

@router.get("/overdue/report.txt", response_class=PlainTextResponse)
async def get_overdue_report_text(
    librarian: User = Depends(require_librarian),
    circulation: CirculationService = Depends(get_circulation_service)
):
    """Overdue report as plain text (librarians only)."""
    return PlainTextResponse(render_text(circulation.generate_overdue_report()))

@router.get("/overdue/download")
async def download_overdue_report(
    librarian: User = Depends(require_librarian),
    circulation: CirculationService = Depends(get_circulation_service)
):
    """Overdue report as a CSV attachment (librarians only)."""
    logger.info("Request to download overdue books report as CSV")
    report = circulation.generate_overdue_report()
    filename = f"overdue_books_{report.generated_at.strftime('%Y%m%d_%H%M%S')}.csv"
    return Response(
        content=render_csv(report).encode("utf-8"),
        media_type="text/csv",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "Cache-Control": "must-revalidate, post-check=0, pre-check=0",
        },
    )
