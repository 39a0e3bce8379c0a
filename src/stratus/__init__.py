"""Stratus: access control and trash lifecycle for cloud drives.

Ownership, share links and email grants resolved to one role, and
soft delete / restore / purge across a folder tree.
"""

__version__ = "0.1.0"

from stratus._stratus import Stratus
from stratus.access import (
    POLICY,
    AccessGuard,
    Action,
    BlobStore,
    CascadeDepth,
    ChildrenResult,
    ConflictError,
    ErrorKind,
    ForbiddenError,
    GrantInfo,
    LocalBlobStore,
    NotFoundError,
    PartialFailureError,
    Principal,
    PurgeFailure,
    PurgeResult,
    ResolutionError,
    ResourceInfo,
    ResourceRef,
    ResourceType,
    Role,
    RoleResolver,
    ShareLinkInfo,
    StratusError,
    TransientError,
    TrashResult,
    allows,
    file_ref,
    folder_ref,
)
from stratus.config import StratusConfig

__all__ = [
    "POLICY",
    "AccessGuard",
    "Action",
    "BlobStore",
    "CascadeDepth",
    "ChildrenResult",
    "ConflictError",
    "ErrorKind",
    "ForbiddenError",
    "GrantInfo",
    "LocalBlobStore",
    "NotFoundError",
    "PartialFailureError",
    "Principal",
    "PurgeFailure",
    "PurgeResult",
    "ResolutionError",
    "ResourceInfo",
    "ResourceRef",
    "ResourceType",
    "Role",
    "RoleResolver",
    "ShareLinkInfo",
    "Stratus",
    "StratusConfig",
    "StratusError",
    "TransientError",
    "TrashResult",
    "__version__",
    "allows",
    "file_ref",
    "folder_ref",
]
