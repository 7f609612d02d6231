"""Request/response schemas for auth, account and password reset endpoints."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class SignupRequest(BaseModel):
    """New account details. Presence and format are checked by the accounts service."""

    username: str | None = Field(default=None, max_length=255, description="Display name")
    mobile: str | None = Field(default=None, description="10-digit mobile number")
    email: str | None = Field(default=None, max_length=320, description="Email address")
    password: str | None = Field(default=None, max_length=128, description="Password")


class LoginRequest(BaseModel):
    """Credentials for login."""

    email: str | None = Field(default=None, max_length=320, description="Email address")
    password: str | None = Field(default=None, max_length=128, description="Password")


class ProfileUpdateRequest(BaseModel):
    """Editable profile fields; omitted fields are left unchanged."""

    username: str | None = Field(default=None, max_length=255)
    mobile: str | None = None
    profile_pic: str | None = Field(default=None, max_length=2048)


class UserPublic(BaseModel):
    """Account as returned to clients (no password hash)."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    mobile: str
    role: str
    profile_pic: str
    created_at: datetime | None = None


class TokenResponse(BaseModel):
    """JWT access token returned after successful login."""

    access_token: str = Field(..., description="JWT access token")
    token_type: str = Field(default="bearer", description="Token type")
    user: UserPublic


class CurrentUser(BaseModel):
    """Authenticated user (id, username, role) for dependency injection."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class UsersListResponse(BaseModel):
    """Response for GET /users (admin only)."""

    users: list[UserPublic]


class ForgotPasswordRequest(BaseModel):
    email_or_username: str = Field(..., min_length=1, max_length=320)


class VerifyCodeRequest(BaseModel):
    email_or_username: str = Field(..., min_length=1, max_length=320)
    otp: str = Field(..., min_length=1, max_length=16)


class ResetPasswordRequest(BaseModel):
    """Code received by email plus the new password."""

    email_or_username: str = Field(..., min_length=1, max_length=320)
    otp: str = Field(..., min_length=1, max_length=16)
    new_password: str = Field(..., max_length=128)


class VerifyCodeResponse(BaseModel):
    valid: bool


class MessageResponse(BaseModel):
    message: str
