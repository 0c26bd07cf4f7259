from datetime import date
from typing import Optional
from sqlalchemy.orm import Session
from app.models.book import Book
from app.repositories.pagination import Page, PageRequest

# Columns a caller may sort the catalog by
SORTABLE_COLUMNS = {
    "id": Book.book_id,
    "title": Book.title,
    "author": Book.author,
    "isbn": Book.isbn,
    "genre": Book.genre,
    "publication_date": Book.publication_date,
    "available": Book.available,
    "created_at": Book.created_at,
}


class BookRepository:
    """Catalog store over the ``books`` table."""

    def __init__(self, db: Session):
        self.db = db

    def find_by_id(self, book_id: int, for_update: bool = False) -> Optional[Book]:
        query = self.db.query(Book).filter(Book.book_id == book_id)
        if for_update:
            # Row lock held until commit so concurrent borrows serialize on the book
            query = query.with_for_update()
        return query.first()

    def find_by_isbn(self, isbn: str) -> Optional[Book]:
        return self.db.query(Book).filter(Book.isbn == isbn).first()

    def exists_by_isbn(self, isbn: str) -> bool:
        return self.db.query(Book.book_id).filter(Book.isbn == isbn).first() is not None

    def save(self, book: Book) -> Book:
        self.db.add(book)
        self.db.flush()
        return book

    def delete(self, book: Book) -> None:
        self.db.delete(book)
        self.db.flush()

    def search(
        self,
        page_request: PageRequest,
        title: Optional[str] = None,
        author: Optional[str] = None,
        genre: Optional[str] = None,
        available: Optional[bool] = None,
        published_after: Optional[date] = None,
        published_before: Optional[date] = None,
    ) -> Page[Book]:
        """Filter the catalog; every criterion left as None is ignored."""
        query = self.db.query(Book)

        if title:
            query = query.filter(Book.title.ilike(f"%{title}%"))
        if author:
            query = query.filter(Book.author.ilike(f"%{author}%"))
        if genre:
            query = query.filter(Book.genre.ilike(f"%{genre}%"))
        if available is not None:
            query = query.filter(Book.available == available)
        if published_after:
            query = query.filter(Book.publication_date >= published_after)
        if published_before:
            query = query.filter(Book.publication_date <= published_before)

        total = query.count()

        column = SORTABLE_COLUMNS[page_request.sort_by]
        order = column.desc() if page_request.descending else column.asc()
        books = (
            query.order_by(order, Book.book_id.asc())
            .offset(page_request.offset)
            .limit(page_request.size)
            .all()
        )
        return Page(items=books, total=total, page=page_request.page, size=page_request.size)
