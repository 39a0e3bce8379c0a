"""StratusConfig — runtime settings for the access layer."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING

from stratus.access.links import DEFAULT_PUBLIC_ORIGIN, DEFAULT_TOKEN_BYTES
from stratus.access.trash import CascadeDepth

if TYPE_CHECKING:
    from collections.abc import Mapping

ENV_PREFIX = "STRATUS_"


@dataclass
class StratusConfig:
    """Settings shared by every service the facade builds."""

    public_origin: str = DEFAULT_PUBLIC_ORIGIN
    """Origin used to render share URLs: ``<origin>/share/<type>/<id>?t=<token>``."""

    store_timeout: float | None = 10.0
    """Seconds a single operation may spend on the store. ``None`` disables the bound."""

    cascade_depth: CascadeDepth = CascadeDepth.IMMEDIATE_CHILDREN
    """How far folder trash transitions reach."""

    conceal_denials: bool = True
    """Report "no role at all" as not-found instead of forbidden."""

    token_bytes: int = DEFAULT_TOKEN_BYTES
    """Entropy of share link tokens, in bytes."""

    search_limit_max: int = 100
    """Upper bound on search page size."""

    db_schema: str | None = None
    """Optional schema qualifying upsert targets."""

    def __post_init__(self) -> None:
        self.cascade_depth = CascadeDepth(self.cascade_depth)
        self.public_origin = self.public_origin.rstrip("/")
        if self.store_timeout is not None and self.store_timeout <= 0:
            raise ValueError("store_timeout must be positive or None")
        if self.token_bytes < 16:
            raise ValueError("token_bytes must be at least 16")
        if self.search_limit_max < 1:
            raise ValueError("search_limit_max must be at least 1")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> StratusConfig:
        """Build a config from ``STRATUS_*`` variables.

        ``PUBLIC_APP_ORIGIN`` is honoured when ``STRATUS_PUBLIC_ORIGIN`` is unset.
        A ``STRATUS_STORE_TIMEOUT`` of ``0`` or ``none`` disables the timeout.
        """
        env = os.environ if environ is None else environ

        def get(name: str) -> str | None:
            value = env.get(ENV_PREFIX + name)
            return value.strip() if value is not None and value.strip() else None

        kwargs: dict[str, object] = {}
        origin = get("PUBLIC_ORIGIN") or env.get("PUBLIC_APP_ORIGIN")
        if origin:
            kwargs["public_origin"] = origin
        timeout = get("STORE_TIMEOUT")
        if timeout is not None:
            kwargs["store_timeout"] = (
                None if timeout.lower() in ("0", "none") else float(timeout)
            )
        depth = get("CASCADE_DEPTH")
        if depth is not None:
            kwargs["cascade_depth"] = CascadeDepth(depth)
        conceal = get("CONCEAL_DENIALS")
        if conceal is not None:
            kwargs["conceal_denials"] = conceal.lower() in ("1", "true", "yes", "on")
        token_bytes = get("TOKEN_BYTES")
        if token_bytes is not None:
            kwargs["token_bytes"] = int(token_bytes)
        search_max = get("SEARCH_LIMIT_MAX")
        if search_max is not None:
            kwargs["search_limit_max"] = int(search_max)
        schema = get("DB_SCHEMA")
        if schema is not None:
            kwargs["db_schema"] = schema
        return cls(**kwargs)  # type: ignore[arg-type]
