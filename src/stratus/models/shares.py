"""ShareLink and Grant models — the two sources of delegated access.

``ShareLink`` holds at most one anonymous token link per resource;
``Grant`` holds at most one role per (resource, email).
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel


class ShareLinkBase(SQLModel):
    """Base fields for a link share. Subclass with ``table=True`` for a concrete table."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    resource_type: str = Field(index=True)
    resource_id: str = Field(index=True)
    token: str = Field(unique=True)
    role: str = Field(default="viewer")
    owner_id: str = Field(default="")
    expires_at: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )


class ShareLink(ShareLinkBase, table=True):
    """Default share link table — ``stratus_share_links``."""

    __tablename__ = "stratus_share_links"
    __table_args__ = (
        UniqueConstraint("resource_type", "resource_id", name="uq_share_link_resource"),
    )


class GrantBase(SQLModel):
    """Base fields for an email grant. Subclass with ``table=True`` for a concrete table."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    resource_type: str = Field(index=True)
    resource_id: str = Field(index=True)
    grantee_email: str = Field(index=True)
    role: str = Field(default="viewer")
    granted_by: str = Field(default="")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )


class Grant(GrantBase, table=True):
    """Default grant table — ``stratus_grants``."""

    __tablename__ = "stratus_grants"
    __table_args__ = (
        UniqueConstraint(
            "resource_type", "resource_id", "grantee_email", name="uq_grant_resource_email"
        ),
    )
