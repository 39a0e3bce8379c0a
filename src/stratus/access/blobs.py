"""LocalBlobStore — file contents on local disk."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class LocalBlobStore:
    """Blob storage rooted at a host directory.

    Locators are relative POSIX paths (``"<owner>/<uuid>_<name>"``);
    anything that resolves outside the root is rejected.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).resolve()

    def _resolve(self, locator: str) -> Path:
        if not locator or "\0" in locator:
            raise ValueError(f"Invalid blob locator: {locator!r}")
        candidate = (self.root / locator.lstrip("/")).resolve()
        if candidate != self.root and self.root not in candidate.parents:
            raise PermissionError(f"Blob locator escapes storage root: {locator!r}")
        return candidate

    async def put(self, locator: str, data: bytes) -> None:
        path = self._resolve(locator)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        await asyncio.to_thread(_write)

    async def get(self, locator: str) -> bytes:
        path = self._resolve(locator)
        return await asyncio.to_thread(path.read_bytes)

    async def remove(self, locator: str) -> None:
        path = self._resolve(locator)

        def _remove() -> None:
            with contextlib.suppress(FileNotFoundError):
                path.unlink()

        await asyncio.to_thread(_remove)
        logger.debug("Removed blob %s", locator)
