import logging
from fastapi import APIRouter, Depends, Response, status
from typing import List
from app.models.user import User
from app.schemas.auth import UserResponse, UserUpdate, UserEnabledUpdate
from app.services.auth import get_current_user, require_librarian
from app.services.users import UserService, get_user_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["Users"])

@router.get("", response_model=List[UserResponse])
async def get_users(
    librarian: User = Depends(require_librarian),
    users: UserService = Depends(get_user_service)
):
    """List every account (librarians only)."""
    logger.info("Retrieving all users")
    return [UserResponse(**user.to_dict()) for user in users.list_users()]

@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    users: UserService = Depends(get_user_service)
):
    """Get a user; patrons may only read their own account."""
    logger.info(f"Retrieving user with ID: {user_id}")
    return UserResponse(**users.get_user_for(current_user, user_id).to_dict())

@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    user_data: UserUpdate,
    current_user: User = Depends(get_current_user),
    users: UserService = Depends(get_user_service)
):
    """Update profile fields; patrons may only edit their own account."""
    logger.info(f"Updating user with ID: {user_id}")
    return UserResponse(**users.update_user(current_user, user_id, user_data).to_dict())

@router.patch("/{user_id}/enabled", response_model=UserResponse)
async def set_user_enabled(
    user_id: int,
    body: UserEnabledUpdate,
    librarian: User = Depends(require_librarian),
    users: UserService = Depends(get_user_service)
):
    """Enable or disable an account (librarians only)."""
    logger.info(f"Setting enabled={body.enabled} for user with ID: {user_id}")
    return UserResponse(**users.set_enabled(user_id, body.enabled).to_dict())

@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: int,
    librarian: User = Depends(require_librarian),
    users: UserService = Depends(get_user_service)
):
    """Delete a patron with no borrowing history (librarians only)."""
    logger.info(f"Deleting user with ID: {user_id}")
    users.delete_user(user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
