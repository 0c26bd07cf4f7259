from sqlalchemy import Column, String, DateTime, Date, Integer, Boolean
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base

class Book(Base):
    __tablename__ = "books"

    book_id = Column(Integer, primary_key=True, autoincrement=True)
    isbn = Column(String(20), unique=True, nullable=False, index=True)
    title = Column(String(255), nullable=False)
    author = Column(String(255), nullable=False)
    publication_date = Column(Date, nullable=True)
    genre = Column(String(100), nullable=True)
    # False exactly while one open borrow record references the book
    available = Column(Boolean, default=True, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    borrow_records = relationship("BorrowRecord", back_populates="book")

    def to_dict(self):
        return {
            "id": str(self.book_id),
            "isbn": self.isbn,
            "title": self.title,
            "author": self.author,
            "publicationDate": self.publication_date,
            "genre": self.genre,
            "available": self.available,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
