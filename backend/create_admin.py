#!/usr/bin/env python3
"""Create an admin account, or reset the password of an existing one."""
import argparse
import sys

from sqlalchemy import or_

from opstracker.auth import get_password_hash
from opstracker.config import settings
from opstracker.database import SessionLocal, atomic
from opstracker.domain_errors import DomainError
from opstracker.models import User


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("username", nargs="?", default="admin")
    parser.add_argument("email", nargs="?", default="admin@example.com")
    parser.add_argument("password", nargs="?", default="admin123")
    parser.add_argument("full_name", nargs="?", default="Administrator")
    parser.add_argument(
        "--reset-password",
        action="store_true",
        help="update the password (and re-activate) when the account already exists",
    )
    return parser.parse_args(argv)


def create_admin(db, *, username: str, email: str, password: str, full_name: str, reset_password: bool = False):
    """Returns (user, created)."""
    if len(password) < settings.PASSWORD_MIN_LENGTH:
        raise ValueError(f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters")

    existing = db.query(User).filter(or_(User.username == username, User.email == email)).first()
    with atomic(db, operation="Admin account setup"):
        if existing is not None:
            if reset_password:
                existing.password_hash = get_password_hash(password)
                existing.is_active = True
            return existing, False

        user = User(
            username=username,
            email=email,
            password_hash=get_password_hash(password),
            role="admin",
            full_name=full_name,
            is_active=True,
        )
        db.add(user)
    return user, True


def main(argv=None) -> int:
    args = parse_args(argv)
    db = SessionLocal()
    try:
        user, created = create_admin(
            db,
            username=args.username,
            email=args.email,
            password=args.password,
            full_name=args.full_name,
            reset_password=args.reset_password,
        )
        if created:
            print("Admin user created successfully!")
        elif args.reset_password:
            print("Admin user already exists; password reset.")
        else:
            print("Admin user already exists!")
        print(f"Username: {user.username}")
        print(f"Email: {user.email}")
        print(f"Role: {user.role}")
        return 0
    except (ValueError, DomainError) as exc:
        print(f"Error creating admin user: {exc}", file=sys.stderr)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    raise SystemExit(main())
