"""Account signup, login and profile edits."""

import logging
import re

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import (
    AlreadyExists,
    InvalidArgument,
    MissingField,
    NotFound,
    StorageFailure,
    Unauthenticated,
)
from app.core.security import (
    PASSWORD_MAX_LEN,
    PASSWORD_MIN_LEN,
    USERNAME_MAX_LEN,
    USERNAME_MIN_LEN,
    hash_password,
    verify_password,
)
from app.models import User
from app.schemas.auth import ProfileUpdateRequest, SignupRequest

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MOBILE_RE = re.compile(r"^[0-9]{10}$")

EMAIL_IN_USE = "Email already in use."
INVALID_CREDENTIALS = "Invalid email or password."


def normalize_email(email: str) -> str:
    return email.strip().lower()


def validate_username(username: str) -> str:
    username = username.strip()
    if not (USERNAME_MIN_LEN <= len(username) <= USERNAME_MAX_LEN):
        raise InvalidArgument("Invalid username length.")
    return username


def validate_mobile(mobile: str) -> str:
    mobile = mobile.strip()
    if not MOBILE_RE.match(mobile):
        raise InvalidArgument("Invalid mobile number format.")
    return mobile


def validate_password(password: str) -> None:
    if not (PASSWORD_MIN_LEN <= len(password) <= PASSWORD_MAX_LEN):
        raise InvalidArgument(
            f"Password must be {PASSWORD_MIN_LEN}-{PASSWORD_MAX_LEN} characters."
        )


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.query(User).filter(User.email == normalize_email(email)).first()


def find_user_by_contact(db: Session, email_or_username: str) -> User | None:
    """Resolve an account by email (case-insensitive) or, failing that, by username."""
    value = email_or_username.strip()
    if not value:
        return None
    user = get_user_by_email(db, value)
    if user is not None:
        return user
    return db.query(User).filter(User.username == value).order_by(User.id).first()


def register_user(db: Session, body: SignupRequest) -> User:
    """
    Create a `user`-role account. All fields are required; email must be unique.

    A role in the request is never honoured; admins are created from the CLI.
    """
    for field in ("username", "mobile", "email", "password"):
        value = getattr(body, field)
        if value is None or not value.strip():
            raise MissingField(field)

    username = validate_username(body.username)
    email = normalize_email(body.email)
    if not EMAIL_RE.match(email):
        raise InvalidArgument("Invalid email format.")
    mobile = validate_mobile(body.mobile)
    validate_password(body.password)

    if get_user_by_email(db, email) is not None:
        raise AlreadyExists(EMAIL_IN_USE)

    user = User(
        username=username,
        mobile=mobile,
        email=email,
        password_hash=hash_password(body.password),
        role="user",
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise AlreadyExists(EMAIL_IN_USE) from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Database error during signup")
        raise StorageFailure("Could not create the account.") from e
    db.refresh(user)
    logger.info("User registered: id=%s", user.id)
    return user


def authenticate(db: Session, email: str | None, password: str | None) -> User:
    """Return the account for these credentials or raise Unauthenticated."""
    if not email or not email.strip():
        raise MissingField("email")
    if not password:
        raise MissingField("password")
    user = get_user_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        raise Unauthenticated(INVALID_CREDENTIALS)
    return user


def update_profile(db: Session, user_id: int, changes: ProfileUpdateRequest) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise NotFound("User not found")
    if changes.username is not None:
        user.username = validate_username(changes.username)
    if changes.mobile is not None:
        user.mobile = validate_mobile(changes.mobile)
    if changes.profile_pic is not None:
        pic = changes.profile_pic.strip()
        if not pic:
            raise InvalidArgument("profile_pic must not be blank.")
        user.profile_pic = pic
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Database error while updating user id=%s", user_id)
        raise StorageFailure("Could not update the profile.") from e
    db.refresh(user)
    return user
