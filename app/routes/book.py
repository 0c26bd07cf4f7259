import logging
from datetime import date
from fastapi import APIRouter, Depends, Query, Response, status
from typing import Optional
from app.models.user import User
from app.repositories.pagination import Page
from app.schemas.book import BookCreate, BookUpdate, BookResponse, BookPage
from app.services.auth import get_current_user, require_librarian
from app.services.catalog import CatalogService, get_catalog_service, make_page_request

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/books", tags=["Books"])

def _to_page(page: Page) -> BookPage:
    return BookPage(
        items=[BookResponse(**book.to_dict()) for book in page.items],
        total=page.total,
        page=page.page,
        size=page.size,
        totalPages=page.total_pages,
    )

@router.post("", response_model=BookResponse, status_code=status.HTTP_201_CREATED)
async def create_book(
    book_data: BookCreate,
    librarian: User = Depends(require_librarian),
    catalog: CatalogService = Depends(get_catalog_service)
):
    """Add a book to the catalog (librarians only)."""
    logger.info(f"Request to create a new book with ISBN: {book_data.isbn}")
    book = catalog.create_book(book_data)
    return BookResponse(**book.to_dict())

@router.get("", response_model=BookPage)
async def get_books(
    page: int = Query(0, ge=0, description="Page number (0-based)"),
    size: int = Query(10, ge=1, le=100, description="Page size"),
    sort_by: str = Query("title", description="Field to sort by"),
    sort_dir: str = Query("asc", description="Sort direction (asc or desc)"),
    current_user: User = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog_service)
):
    """Get a page of books."""
    page_request = make_page_request(page, size, sort_by, sort_dir)
    return _to_page(catalog.list_books(page_request))

@router.get("/search", response_model=BookPage)
async def search_books(
    title: Optional[str] = Query(None, description="Title contains (case-insensitive)"),
    author: Optional[str] = Query(None, description="Author contains (case-insensitive)"),
    genre: Optional[str] = Query(None, description="Genre contains (case-insensitive)"),
    available: Optional[bool] = Query(None, description="Filter by availability"),
    published_after: Optional[date] = Query(None, description="Published on or after (YYYY-MM-DD)"),
    published_before: Optional[date] = Query(None, description="Published on or before (YYYY-MM-DD)"),
    page: int = Query(0, ge=0),
    size: int = Query(10, ge=1, le=100),
    sort_by: str = Query("title"),
    sort_dir: str = Query("asc"),
    current_user: User = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog_service)
):
    """Search books by title, author, genre, availability and publication date range."""
    logger.info(f"Request to search books with criteria: title={title}, author={author}, genre={genre}, available={available}")
    page_request = make_page_request(page, size, sort_by, sort_dir)
    result = catalog.search_books(
        page_request,
        title=title,
        author=author,
        genre=genre,
        available=available,
        published_after=published_after,
        published_before=published_before,
    )
    return _to_page(result)

@router.get("/isbn/{isbn}", response_model=BookResponse)
async def get_book_by_isbn(
    isbn: str,
    current_user: User = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog_service)
):
    """Get book details by ISBN."""
    return BookResponse(**catalog.get_book_by_isbn(isbn).to_dict())

@router.get("/{book_id}", response_model=BookResponse)
async def get_book(
    book_id: int,
    current_user: User = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog_service)
):
    """Get book details by ID."""
    return BookResponse(**catalog.get_book(book_id).to_dict())

@router.put("/{book_id}", response_model=BookResponse)
async def update_book(
    book_id: int,
    book_data: BookUpdate,
    librarian: User = Depends(require_librarian),
    catalog: CatalogService = Depends(get_catalog_service)
):
    """Edit a book's descriptive fields (librarians only)."""
    logger.info(f"Request to update book with ID: {book_id}")
    return BookResponse(**catalog.update_book(book_id, book_data).to_dict())

@router.delete("/{book_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_book(
    book_id: int,
    librarian: User = Depends(require_librarian),
    catalog: CatalogService = Depends(get_catalog_service)
):
    """Delete a book that has never been borrowed (librarians only)."""
    logger.info(f"Request to delete book with ID: {book_id}")
    catalog.delete_book(book_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
