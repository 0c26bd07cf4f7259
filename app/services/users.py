import logging
from typing import List

from fastapi import Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.database import get_db
from app.exceptions import (
    AccountDisabledError,
    BadRequestError,
    DuplicateEmailError,
    ForbiddenError,
    ResourceInUseError,
    UnauthorizedError,
    UserNotFoundError,
)
from app.models.user import Role, User
from app.repositories.borrow_records import BorrowRecordRepository
from app.repositories.users import UserRepository
from app.schemas.auth import UserCreate, UserUpdate
from app.services.auth import get_password_hash, verify_password

logger = logging.getLogger(__name__)


class UserService:
    """Account management: registration, login checks, profile edits."""

    def __init__(self, db: Session):
        self.db = db
        self.users = UserRepository(db)
        self.records = BorrowRecordRepository(db)

    def register(self, data: UserCreate, role: Role = Role.PATRON) -> User:
        if self.users.exists_by_email(data.email):
            raise DuplicateEmailError("Email is already taken")

        user = User(
            first_name=data.first_name,
            last_name=data.last_name,
            email=data.email,
            password_hash=get_password_hash(data.password),
            role=role,
            contact_details=data.contact_details,
            enabled=True,
        )
        try:
            self.users.save(user)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise DuplicateEmailError("Email is already taken") from e
        self.db.refresh(user)
        logger.info(f"User registered successfully: {user.email}")
        return user

    def authenticate(self, email: str, password: str) -> User:
        user = self.users.find_by_email(email)
        if not user or not verify_password(password, user.password_hash):
            logger.warning(f"Failed login attempt for {email}")
            raise UnauthorizedError("Incorrect email or password")
        if not user.enabled:
            raise AccountDisabledError("Account is disabled. Please contact an administrator.")
        logger.info(f"User logged in successfully: {user.email}")
        return user

    def get_user(self, user_id: int) -> User:
        user = self.users.find_by_id(user_id)
        if user is None:
            raise UserNotFoundError(f"User not found with id: {user_id}")
        return user

    def get_user_for(self, current_user: User, user_id: int) -> User:
        user = self.get_user(user_id)
        self._check_access(current_user, user)
        return user

    def list_users(self) -> List[User]:
        return self.users.find_all()

    def update_user(self, current_user: User, user_id: int, data: UserUpdate) -> User:
        user = self.get_user_for(current_user, user_id)
        changes = data.model_dump(exclude_unset=True)

        new_email = changes.get("email")
        if new_email and new_email != user.email and self.users.exists_by_email(new_email):
            raise DuplicateEmailError("Email is already taken")

        for name, value in changes.items():
            setattr(user, name, value)
        try:
            self.users.save(user)
            self.db.commit()
        except IntegrityError as e:
            # Lost a race with another account taking the same email
            self.db.rollback()
            raise DuplicateEmailError("Email is already taken") from e
        self.db.refresh(user)
        logger.info(f"User with ID: {user_id} has been updated")
        return user

    def set_enabled(self, user_id: int, enabled: bool) -> User:
        """Enable or disable an account. Existing loans stay open either way."""
        user = self.get_user(user_id)
        user.enabled = enabled
        self.users.save(user)
        self.db.commit()
        self.db.refresh(user)
        logger.info(f"User with ID: {user_id} has been {'enabled' if enabled else 'disabled'}")
        return user

    def promote_to_librarian(self, user_id: int) -> User:
        user = self.get_user(user_id)
        if user.role == Role.LIBRARIAN:
            raise BadRequestError("User is already a librarian")
        user.role = Role.LIBRARIAN
        self.users.save(user)
        self.db.commit()
        logger.info(f"User with ID: {user_id} has been promoted to LIBRARIAN role")
        return user

    def delete_user(self, user_id: int):
        user = self.get_user(user_id)
        if user.role == Role.LIBRARIAN:
            raise ForbiddenError("Librarians cannot be deleted through this endpoint")
        if self.records.count_open_by_user(user_id) > 0:
            raise ResourceInUseError("Cannot delete a user with active loans")
        if self.records.exists_by_user(user_id):
            raise ResourceInUseError("Cannot delete a user with borrowing history")
        self.users.delete(user)
        self.db.commit()
        logger.info(f"User with ID: {user_id} has been deleted")

    def _check_access(self, current_user: User, user: User):
        if current_user.role == Role.LIBRARIAN:
            return
        if current_user.user_id != user.user_id:
            raise ForbiddenError("Access denied: You can only access your own user data")


def get_user_service(db: Session = Depends(get_db)) -> UserService:
    return UserService(db)
