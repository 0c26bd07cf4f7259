import logging
from fastapi import APIRouter, Depends, Response, status
from app.models.user import User
from app.schemas.auth import UserCreate, UserLogin, UserResponse, Token
from app.services.auth import create_access_token, get_current_user, require_librarian
from app.services.users import UserService, get_user_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])

def _token_for(user: User) -> Token:
    return Token(
        access_token=create_access_token(user),
        token_type="bearer",
        user=UserResponse(**user.to_dict())
    )

@router.post("/register", response_model=Token, status_code=status.HTTP_201_CREATED)
async def register(user_data: UserCreate, users: UserService = Depends(get_user_service)):
    """Register a new patron account."""
    logger.info(f"Received registration request for email: {user_data.email}")
    user = users.register(user_data)
    return _token_for(user)

@router.post("/login", response_model=Token)
async def login(user_data: UserLogin, users: UserService = Depends(get_user_service)):
    """Login and get access token."""
    logger.info(f"Received login request for email: {user_data.email}")
    user = users.authenticate(user_data.email, user_data.password)
    return _token_for(user)

@router.get("/me", response_model=UserResponse)
async def get_current_user_info(current_user: User = Depends(get_current_user)):
    """Get current authenticated user information."""
    return UserResponse(**current_user.to_dict())

@router.post("/promote/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def promote_to_librarian(
    user_id: int,
    librarian: User = Depends(require_librarian),
    users: UserService = Depends(get_user_service)
):
    """Promote a patron to the librarian role."""
    logger.info(f"Promoting user with ID: {user_id} to librarian role")
    users.promote_to_librarian(user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
