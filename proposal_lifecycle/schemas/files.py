"""Schemas for stored proposal attachments."""

from __future__ import annotations

from sqlmodel import SQLModel


class FileDescriptorRead(SQLModel):
    """Reference to a stored attachment; the bytes never live in the datastore."""

    url: str
    sha256_hash: str
    byte_size: int
