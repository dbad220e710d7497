"""Slug derivation, invite codes and school name rules."""

from __future__ import annotations

import re
import secrets
import string

from onescheduler.exceptions import InvalidInviteCodeError, ValidationError

INVITE_CODE_LENGTH = 8
INVITE_CODE_ALPHABET = string.ascii_uppercase + string.digits
NAME_MIN_LENGTH = 3
NAME_MAX_LENGTH = 50

_INVITE_CODE_RE = re.compile(r"^[A-Z0-9]{8}$")
_NAME_RE = re.compile(r"^[a-zA-Z0-9\s-]+$")


def slugify(name: str) -> str:
    """Derive a URL-safe slug: "Lincoln High" -> "lincoln-high"."""
    slug = name.lower().strip()
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"[^\w-]", "", slug, flags=re.ASCII)
    slug = re.sub(r"-{2,}", "-", slug)
    return slug.strip("-")


def generate_invite_code() -> str:
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))


def normalize_invite_code(code: str) -> str:
    """Uppercase and shape-check an invite code before it leaves the client."""
    normalized = code.strip().upper()
    if not _INVITE_CODE_RE.match(normalized):
        msg = "Invite code must be 8 uppercase letters or numbers"
        raise InvalidInviteCodeError(msg)
    return normalized


def validate_tenant_name(name: str) -> str:
    """Return the stripped name or raise ValidationError."""
    name = name.strip()
    if not name:
        msg = "Please enter your school name"
        raise ValidationError(msg)
    if len(name) < NAME_MIN_LENGTH:
        msg = f"School name must be at least {NAME_MIN_LENGTH} characters"
        raise ValidationError(msg)
    if len(name) > NAME_MAX_LENGTH:
        msg = f"School name cannot exceed {NAME_MAX_LENGTH} characters"
        raise ValidationError(msg)
    if not _NAME_RE.match(name):
        msg = "School name can only contain letters, numbers, spaces, and hyphens"
        raise ValidationError(msg)
    if not slugify(name):
        msg = "School name must contain at least one letter or number"
        raise ValidationError(msg)
    return name
