"""SQLModel database models for Stratus."""

from stratus.models.resources import File, FileBase, Folder, FolderBase
from stratus.models.shares import Grant, GrantBase, ShareLink, ShareLinkBase

__all__ = [
    "File",
    "FileBase",
    "Folder",
    "FolderBase",
    "Grant",
    "GrantBase",
    "ShareLink",
    "ShareLinkBase",
]
