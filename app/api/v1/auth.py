"""Signup, JWT login, profile, password reset and auth dependencies (get_current_user, require_admin)."""

from typing import Annotated

import jwt
from fastapi import APIRouter, Depends, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.database import get_db
from app.core.exceptions import Forbidden, Unauthenticated
from app.core.security import create_access_token, decode_access_token
from app.models.user import User
from app.schemas.auth import (
    CurrentUser,
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    ProfileUpdateRequest,
    ResetPasswordRequest,
    SignupRequest,
    TokenResponse,
    UserPublic,
    UsersListResponse,
    VerifyCodeRequest,
    VerifyCodeResponse,
)
from app.services.accounts import authenticate, register_user, update_profile
from app.services.otp_delivery import CodeDeliveryChannel, get_delivery_channel
from app.services.password_reset import find_valid_code, issue_reset_code, reset_password

router = APIRouter()
security = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[Session, Depends(get_db)],
) -> CurrentUser:
    """Dependency: require valid Bearer JWT and return the current user. Raises Unauthenticated if missing or invalid."""
    if credentials is None:
        raise Unauthenticated("Not authenticated")
    try:
        payload = decode_access_token(credentials.credentials)
    except jwt.PyJWTError:
        raise Unauthenticated("Invalid or expired token")
    sub = payload.get("sub")
    if not sub:
        raise Unauthenticated("Invalid token payload")
    try:
        user_id = int(sub)
    except (TypeError, ValueError):
        raise Unauthenticated("Invalid token payload")
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise Unauthenticated("User not found")
    return CurrentUser(id=user.id, username=user.username, role=user.role)


def require_admin(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
) -> CurrentUser:
    """Dependency: require authenticated user with role 'admin'. Raises Forbidden for non-admin."""
    if not current_user.is_admin:
        raise Forbidden("Admin access required")
    return current_user


@router.post("/signup", response_model=UserPublic, status_code=status.HTTP_201_CREATED)
def signup(
    body: SignupRequest,
    db: Annotated[Session, Depends(get_db)],
) -> UserPublic:
    """Register a new account with username, 10-digit mobile, email and password."""
    user = register_user(db, body)
    return UserPublic.model_validate(user)


@router.post("/login", response_model=TokenResponse)
def login(
    body: LoginRequest,
    db: Annotated[Session, Depends(get_db)],
) -> TokenResponse:
    """
    Authenticate with email and password; returns a JWT access token and the account.
    Include the token in the Authorization header as: Bearer <access_token>
    """
    user = authenticate(db, body.email, body.password)
    token = create_access_token(sub=user.id, role=user.role)
    return TokenResponse(
        access_token=token,
        token_type="bearer",
        user=UserPublic.model_validate(user),
    )


@router.get("/me", response_model=UserPublic)
def read_me(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
) -> UserPublic:
    user = db.query(User).filter(User.id == current_user.id).first()
    return UserPublic.model_validate(user)


@router.patch("/me", response_model=UserPublic)
def update_me(
    body: ProfileUpdateRequest,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
) -> UserPublic:
    """Edit username, mobile number or profile picture of the current account."""
    user = update_profile(db, current_user.id, body)
    return UserPublic.model_validate(user)


@router.get("/users", response_model=UsersListResponse)
def list_users(
    _admin: Annotated[CurrentUser, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
) -> UsersListResponse:
    """List all users (admin only)."""
    users = db.query(User).order_by(User.id).all()
    return UsersListResponse(users=[UserPublic.model_validate(u) for u in users])


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    body: ForgotPasswordRequest,
    db: Annotated[Session, Depends(get_db)],
    channel: Annotated[CodeDeliveryChannel, Depends(get_delivery_channel)],
) -> MessageResponse:
    """Send a one-time reset code to the email of the matching account."""
    await issue_reset_code(db, body.email_or_username, channel, get_settings())
    return MessageResponse(message="Reset code sent.")


@router.post("/verify-otp", response_model=VerifyCodeResponse)
def verify_otp(
    body: VerifyCodeRequest,
    db: Annotated[Session, Depends(get_db)],
) -> VerifyCodeResponse:
    """Check a reset code without consuming it. Wrong guesses count towards the attempt limit."""
    find_valid_code(
        db, body.email_or_username, body.otp, max_attempts=get_settings().OTP_MAX_ATTEMPTS
    )
    return VerifyCodeResponse(valid=True)


@router.post("/reset-password", response_model=MessageResponse)
def post_reset_password(
    body: ResetPasswordRequest,
    db: Annotated[Session, Depends(get_db)],
) -> MessageResponse:
    """Set a new password using a valid reset code. The code cannot be used again."""
    reset_password(
        db,
        body.email_or_username,
        body.otp,
        body.new_password,
        max_attempts=get_settings().OTP_MAX_ATTEMPTS,
    )
    return MessageResponse(message="Password has been reset.")
