"""Schemas for registration, login and push token endpoints."""
from __future__ import annotations

from typing import Optional

from pydantic import EmailStr, Field

from app.api.schemas.base import CamelModel


class RegisterRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=256)


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=256)


class TokenResponse(CamelModel):
    token: str


class PushTokenRequest(CamelModel):
    push_token: Optional[str] = None
