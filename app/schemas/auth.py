from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional

class UserCreate(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=72)  # bcrypt only uses the first 72 bytes
    contact_details: Optional[str] = Field(None, max_length=500)

class UserLogin(BaseModel):
    email: EmailStr
    password: str

class UserUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    contact_details: Optional[str] = Field(None, max_length=500)

    @field_validator("first_name", "last_name", "email")
    @classmethod
    def reject_null(cls, v: Optional[str]) -> str:
        if v is None:
            raise ValueError("must not be null")
        return v

class UserEnabledUpdate(BaseModel):
    enabled: bool

class UserResponse(BaseModel):
    id: str
    name: str
    firstName: str
    lastName: str
    email: str
    role: str
    contactDetails: Optional[str] = None
    enabled: bool

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse
