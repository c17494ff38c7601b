from datetime import datetime
from pydantic import BaseModel, EmailStr, Field, field_validator
from app.core.security import MIN_PASSWORD_LENGTH, MAX_PASSWORD_LENGTH

class UserBase(BaseModel):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()

class UserCreate(UserBase):
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_LENGTH)

class UserLogin(UserBase):
    # No length rule here: a short password is just a wrong password.
    password: str = Field(..., min_length=1, max_length=MAX_PASSWORD_LENGTH)

class UserOut(UserBase):
    id: str
    created_at: datetime
    
    class Config:
        from_attributes = True

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut
