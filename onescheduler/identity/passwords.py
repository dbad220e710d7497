"""bcrypt password hashing and the registration field rules."""

from __future__ import annotations

import re

import bcrypt
from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from onescheduler.exceptions import ValidationError

MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_BYTES = 72  # bcrypt ignores or rejects anything longer
DEFAULT_ROUNDS = 12

_PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d).+$")
_email_adapter: TypeAdapter[str] = TypeAdapter(EmailStr)


def hash_password(password: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """Hash a password with a fresh bcrypt salt."""
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def validate_email(email: str) -> str:
    """Return the normalized email or raise ValidationError."""
    try:
        normalized = _email_adapter.validate_python(email.strip())
    except PydanticValidationError as e:
        msg = "Please enter a valid email address"
        raise ValidationError(msg) from e
    return normalized.lower()


def validate_new_password(password: str, confirm: str | None = None) -> None:
    """Apply the registration password rules."""
    if len(password) < MIN_PASSWORD_LENGTH:
        msg = "Password must be at least 8 characters long"
        raise ValidationError(msg)
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        msg = "Password cannot be longer than 72 bytes"
        raise ValidationError(msg)
    if not _PASSWORD_RE.match(password):
        msg = (
            "Password must contain at least one lowercase letter, "
            "one uppercase letter, and one number"
        )
        raise ValidationError(msg)
    if confirm is not None and confirm != password:
        msg = "The two passwords do not match"
        raise ValidationError(msg)
