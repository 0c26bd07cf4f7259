from datetime import datetime
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

class BookAvailabilityEvent(BaseModel):
    """Pushed to stream subscribers every time a book's availability flips."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    book_id: int
    title: str
    isbn: str
    available: bool
    timestamp: datetime

    @classmethod
    def from_book(cls, book, timestamp: datetime) -> "BookAvailabilityEvent":
        return cls(
            book_id=book.book_id,
            title=book.title,
            isbn=book.isbn,
            available=book.available,
            timestamp=timestamp,
        )

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)
