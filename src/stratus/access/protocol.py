"""Collaborator protocols — runtime-checkable interfaces.

The relational side is covered by ``ResourceStore`` and the SQLModel
tables.  Blob storage and role resolution strategies are pluggable and
described here so alternative implementations can be dropped in.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from .permissions import Role
    from .types import Principal, ResourceRef

    Clock = Callable[[], datetime]


@runtime_checkable
class BlobStore(Protocol):
    """Object storage holding file contents.

    ``remove`` must treat an already-missing object as removed so that a
    retried purge converges.
    """

    async def put(self, locator: str, data: bytes) -> None:
        """Write *data* at *locator*, replacing any existing object."""
        ...

    async def get(self, locator: str) -> bytes:
        """Read the object at *locator*. Raise if it does not exist."""
        ...

    async def remove(self, locator: str) -> None:
        """Delete the object at *locator*. Raise on failure."""
        ...


@runtime_checkable
class RoleStrategy(Protocol):
    """One source of authority consulted by ``RoleResolver``.

    Returns the role it grants, or ``None`` to defer to the next strategy.
    """

    name: str

    async def resolve(
        self,
        session: AsyncSession,
        principal: Principal | None,
        ref: ResourceRef,
        share_token: str | None,
    ) -> Role | None: ...
