"""Small helpers shared by the access services."""

from __future__ import annotations

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Default clock."""
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def normalize_email(email: str) -> str:
    """Strip and lowercase *email*. Raises ``ValueError`` if blank."""
    normalized = (email or "").strip().lower()
    if not normalized:
        raise ValueError("email is required")
    return normalized


def normalize_name(name: str) -> str:
    """Strip *name*. Raises ``ValueError`` if blank or containing NUL."""
    normalized = (name or "").strip()
    if not normalized:
        raise ValueError("Name required")
    if "\0" in normalized:
        raise ValueError("Name contains invalid characters")
    return normalized


def escape_like(value: str) -> str:
    """Escape SQL LIKE wildcards so *value* matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
