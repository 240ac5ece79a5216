# app/schemas/auth.py
from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class LoginPayload(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=256)


class PrincipalOut(BaseModel):
    user_id: int
    email: str
    role: str
    full_name: Optional[str] = None
    painter_id: Optional[int] = None
    painter_active: bool = False


class LoginResponse(BaseModel):
    success: bool = True
    token: str
    expires_in: int
    user: PrincipalOut
