import os
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.api_response import success_response_payload
from app.core.metrics import increment_counter
from app.core.observability import log_business_event
from app.core.permissions import normalize_permissions, visible_navigation
from app.core.rate_limit import AttemptWindow, check_rate_limit, clear_attempts, record_attempt
from app.core.security import (
    create_user_token,
    get_current_user,
    get_user_role,
    hash_password,
    is_password_hashed,
    verify_password,
)
from app.db.models.user import User
from app.db.session import get_db

router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = logging.getLogger(__name__)

LOGIN_WINDOW = AttemptWindow(
    limit=int(os.getenv("LOGIN_LIMIT", "10")),
    minutes=int(os.getenv("LOGIN_WINDOW_MINUTES", "15")),
)
DEFAULT_ROLE_NAME = "User"


class LoginIn(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class ChangePasswordIn(BaseModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=4, max_length=128)


def _session_payload(db: Session, user: User) -> dict:
    role = get_user_role(db, user)
    role_name = role.name if role else DEFAULT_ROLE_NAME
    permissions = normalize_permissions(role.permissions if role else None)
    return {
        "id": user.id,
        "username": user.username,
        "full_name": user.full_name,
        "email": user.email,
        "role_id": user.role_id,
        "role": role_name,
        "permissions": permissions,
        "navigation": visible_navigation(permissions, role.name if role else None),
    }


@router.post("/login")
def login(payload: LoginIn, request: Request, db: Session = Depends(get_db)):
    increment_counter("auth_login_total")
    username = payload.username.strip()
    check_rate_limit(db, username, "login", LOGIN_WINDOW)

    user = db.query(User).filter(User.username == username).first()
    if not user or not verify_password(payload.password, user.hashed_password):
        record_attempt(db, username, "login")
        increment_counter("auth_login_result_total", result="invalid")
        log_business_event(logger, request, event="auth.login", result="invalid", username=username)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid username or password")

    if not user.is_active:
        increment_counter("auth_login_result_total", result="inactive")
        log_business_event(logger, request, event="auth.login", result="inactive", username=username)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is deactivated")

    if not is_password_hashed(user.hashed_password):
        user.hashed_password = hash_password(payload.password)
        db.commit()
    clear_attempts(db, username, "login")

    increment_counter("auth_login_result_total", result="success")
    log_business_event(logger, request, event="auth.login", result="success", username=username)
    data = _session_payload(db, user)
    data["access_token"] = create_user_token(user)
    data["token_type"] = "bearer"
    return success_response_payload(request, data=data)


@router.post("/logout")
def logout(
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    current_user.token_version = int(current_user.token_version or 0) + 1
    db.commit()
    log_business_event(logger, request, event="auth.logout", username=current_user.username)
    return success_response_payload(request, data={"message": "Logged out"})


@router.get("/me")
def me(
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return success_response_payload(request, data=_session_payload(db, current_user))


@router.post("/change-password")
def change_password(
    payload: ChangePasswordIn,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if not verify_password(payload.current_password, current_user.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Current password is incorrect")
    current_user.hashed_password = hash_password(payload.new_password)
    current_user.token_version = int(current_user.token_version or 0) + 1
    db.commit()
    log_business_event(logger, request, event="auth.change_password", username=current_user.username)
    return success_response_payload(
        request,
        data={"message": "Password changed successfully", "access_token": create_user_token(current_user)},
    )
