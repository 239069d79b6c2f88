"""Attachment upload endpoint returning a checksummed file reference."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, Request, status

from proposal_lifecycle.api.deps import ACTOR_DEP, FILE_STORE_DEP
from proposal_lifecycle.core.auth import ActorContext, Role
from proposal_lifecycle.core.errors import ForbiddenError
from proposal_lifecycle.schemas.files import FileDescriptorRead
from proposal_lifecycle.services.files import FileStore

router = APIRouter(prefix="/files", tags=["files"])
FILENAME_QUERY = Query(min_length=1, max_length=255)
MAX_UPLOAD_BYTES = 20 * 1024 * 1024


@router.post("", response_model=FileDescriptorRead, status_code=status.HTTP_201_CREATED)
async def upload_file(
    request: Request,
    filename: str = FILENAME_QUERY,
    actor: ActorContext = ACTOR_DEP,
    store: FileStore = FILE_STORE_DEP,
) -> FileDescriptorRead:
    """Store the raw request body; attach the returned reference to a version."""
    if actor.role == Role.PUBLIC:
        raise ForbiddenError()
    data = await request.body()
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Upload is empty")
    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail="Upload exceeds 20 MiB",
        )
    descriptor = await store.store(filename, data)
    return FileDescriptorRead(
        url=descriptor.url,
        sha256_hash=descriptor.sha256_hash,
        byte_size=descriptor.byte_size,
    )
