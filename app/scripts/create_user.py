"""
Create an account from the command line (the only way to create admins). Run from project root:
  python -m app.scripts.create_user USERNAME EMAIL MOBILE PASSWORD [role]
Example:
  python -m app.scripts.create_user curator admin@example.com 9876543210 your-secure-password admin
"""
import argparse
import sys

from app.core.database import SessionLocal
from app.core.exceptions import InvalidArgument
from app.core.security import hash_password
from app.models.user import User
from app.services.accounts import (
    EMAIL_RE,
    get_user_by_email,
    normalize_email,
    validate_mobile,
    validate_password,
    validate_username,
)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create an Artmart account.")
    parser.add_argument("username", help="Display name (1-255 chars)")
    parser.add_argument("email", help="Email address (unique, case-insensitive)")
    parser.add_argument("mobile", help="10-digit mobile number")
    parser.add_argument("password", help="Password (6-128 chars)")
    parser.add_argument("role", nargs="?", default="user", choices=["user", "admin"])
    args = parser.parse_args(argv)

    email = normalize_email(args.email)
    try:
        username = validate_username(args.username)
        mobile = validate_mobile(args.mobile)
        validate_password(args.password)
    except InvalidArgument as e:
        print(e.message, file=sys.stderr)
        return 1
    if not EMAIL_RE.match(email):
        print("Invalid email format.", file=sys.stderr)
        return 1

    db = SessionLocal()
    try:
        if get_user_by_email(db, email) is not None:
            print(f"An account for '{email}' already exists.", file=sys.stderr)
            return 1
        user = User(
            username=username,
            email=email,
            mobile=mobile,
            password_hash=hash_password(args.password),
            role=args.role,
        )
        db.add(user)
        db.commit()
        print(f"Created user '{username}' <{email}> with role '{args.role}'.")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
