import enum
from sqlalchemy import Column, String, DateTime, Integer, Boolean, Text, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base

class Role(str, enum.Enum):
    PATRON = "PATRON"
    LIBRARIAN = "LIBRARIAN"

class User(Base):
    __tablename__ = "users"

    user_id = Column(Integer, primary_key=True, autoincrement=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(Enum(Role, name="user_role"), default=Role.PATRON, nullable=False)
    contact_details = Column(Text, nullable=True)
    enabled = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships (non-cascading, borrow history is never deleted)
    borrow_records = relationship("BorrowRecord", back_populates="user")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def is_librarian(self) -> bool:
        return self.role == Role.LIBRARIAN

    def to_dict(self):
        return {
            "id": str(self.user_id),
            "name": self.full_name,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
            "role": self.role.value if self.role else None,
            "contactDetails": self.contact_details,
            "enabled": self.enabled,
        }
