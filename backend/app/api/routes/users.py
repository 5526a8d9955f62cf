"""Registration, login and push token routes."""
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.api.schemas.plan import MessageResponse
from app.api.schemas.user import LoginRequest, PushTokenRequest, RegisterRequest, TokenResponse
from app.core.security import create_access_token, get_current_user_id
from app.db.deps import get_db
from app.observability.metrics import log_metric
from app.observability.tracing import trace
from app.services.user_service import (
    InvalidCredentialsError,
    UserExistsError,
    UserNotFoundError,
    authenticate,
    register_user,
    update_push_token,
)

router = APIRouter()


@router.post("/api/users/register", response_model=TokenResponse, tags=["users"])
def register(payload: RegisterRequest, db: Session = Depends(get_db)) -> TokenResponse:
    with trace("user.register", metadata={"route": "/api/users/register"}):
        try:
            user = register_user(db, name=payload.name, email=payload.email, password=payload.password)
        except UserExistsError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    log_metric("user.register.success", 1)
    return TokenResponse(token=create_access_token(user.id))


@router.post("/api/users/login", response_model=TokenResponse, tags=["users"])
def login(payload: LoginRequest, db: Session = Depends(get_db)) -> TokenResponse:
    with trace("user.login", metadata={"route": "/api/users/login"}):
        try:
            user = authenticate(db, email=payload.email, password=payload.password)
        except InvalidCredentialsError as exc:
            log_metric("user.login.rejected", 1)
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return TokenResponse(token=create_access_token(user.id))


@router.put("/api/users/pushtoken", response_model=MessageResponse, tags=["users"])
def save_push_token(
    payload: PushTokenRequest,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> MessageResponse:
    if not payload.push_token or not payload.push_token.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Push token is required.")
    try:
        update_push_token(db, user_id, payload.push_token)
    except UserNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return MessageResponse(message="Push token saved successfully.")
