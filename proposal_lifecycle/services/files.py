"""Attachment storage collaborator: stores bytes, returns a checksummed reference."""

from __future__ import annotations

import asyncio
import hashlib
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol
from uuid import uuid4

from proposal_lifecycle.core.config import settings
from proposal_lifecycle.core.logging import get_logger

logger = get_logger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(frozen=True)
class FileDescriptor:
    url: str
    sha256_hash: str
    byte_size: int


class FileStore(Protocol):
    async def store(self, filename: str, data: bytes) -> FileDescriptor: ...


def _safe_filename(filename: str) -> str:
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", Path(filename).name).strip("._")
    return cleaned or "upload"


class LocalFileStore:
    """Write attachments under ``upload_dir`` with a unique prefix per upload."""

    def __init__(self, root: str | Path | None = None, *, url_prefix: str = "uploads") -> None:
        self.root = Path(root if root is not None else settings.upload_dir)
        self.url_prefix = url_prefix.strip("/")

    def _write(self, relative: Path, data: bytes) -> None:
        target = self.root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    async def store(self, filename: str, data: bytes) -> FileDescriptor:
        relative = Path("proposals") / f"{uuid4().hex}_{_safe_filename(filename)}"
        await asyncio.to_thread(self._write, relative, data)
        descriptor = FileDescriptor(
            url=f"{self.url_prefix}/{relative.as_posix()}",
            sha256_hash=hashlib.sha256(data).hexdigest(),
            byte_size=len(data),
        )
        logger.info(
            "files.stored",
            extra={"url": descriptor.url, "byte_size": descriptor.byte_size},
        )
        return descriptor
