from typing import List, Optional
from sqlalchemy.orm import Session
from app.models.user import User


class UserRepository:
    """Identity store over the ``users`` table."""

    def __init__(self, db: Session):
        self.db = db

    def find_by_id(self, user_id: int, for_update: bool = False) -> Optional[User]:
        query = self.db.query(User).filter(User.user_id == user_id)
        if for_update:
            # Row lock held until commit so one patron's borrows are counted one at a time
            query = query.with_for_update()
        return query.first()

    def find_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email).first()

    def exists_by_email(self, email: str) -> bool:
        return self.db.query(User.user_id).filter(User.email == email).first() is not None

    def find_all(self) -> List[User]:
        return self.db.query(User).order_by(User.user_id).all()

    def count(self) -> int:
        return self.db.query(User).count()

    def save(self, user: User) -> User:
        self.db.add(user)
        self.db.flush()
        return user

    def delete(self, user: User) -> None:
        self.db.delete(user)
        self.db.flush()
