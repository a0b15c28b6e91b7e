# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

Users own every customer, document and numbering sequence, so every
request must be tied to a user.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters, mixed case, digit and special char
- Session tokens managed separately (see session_service.py)
"""

import re
import secrets
import string

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User
from ..models.auth import ROLE_ADMIN, ROLE_USER
from invoicer.time_utils import utcnow


VALID_ROLES = (ROLE_USER, ROLE_ADMIN)


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt."""
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt check; malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    username: str,
    email: str,
    password: str,
    name: str | None = None,
    role: str = ROLE_USER,
    must_change_password: bool = False,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        ValueError: username/email taken or unknown role
        PasswordValidationError: weak password
    """
    if role not in VALID_ROLES:
        raise ValueError(f"Invalid role: {role}")

    existing = db.session.query(User).filter(
        db.or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise ValueError("Username or email already exists")

    user = User(
        username=username,
        email=email,
        name=name,
        role=role,
        password_hash=hash_password(password),
        must_change_password=must_change_password,
    )

    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Authenticate by username or email.

    Returns the user and stamps last_login_at on success, None otherwise.
    """
    user = db.session.query(User).filter(
        db.or_(User.username == username, User.email == username),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def generate_temporary_password(length: int = 12) -> str:
    """Random password that satisfies validate_password_strength."""
    alphabet = string.ascii_letters + string.digits
    body = "".join(secrets.choice(alphabet) for _ in range(max(length - 4, 4)))
    return (
        body
        + secrets.choice(string.ascii_uppercase)
        + secrets.choice(string.ascii_lowercase)
        + secrets.choice(string.digits)
        + secrets.choice("!@#$%^&*")
    )


def set_password(user: User, password: str, *, force_change: bool = False) -> None:
    """Admin-side reset. Caller commits and revokes sessions."""
    user.password_hash = hash_password(password)
    user.must_change_password = force_change


def change_password(user: User, old_password: str | None, new_password: str) -> None:
    """
    Self-service password change.

    The old password is not required while must_change_password is set,
    since the user only knows the temporary one an admin handed out.

    Raises:
        ValueError: old password missing or wrong
        PasswordValidationError: weak new password
    """
    if not user.must_change_password:
        if not old_password or not verify_password(old_password, user.password_hash):
            raise ValueError("Old password incorrect")

    user.password_hash = hash_password(new_password)
    user.must_change_password = False
    db.session.commit()
