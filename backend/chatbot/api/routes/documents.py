"""Document endpoints - upload, list, get, delete, chunks."""

import asyncio
import logging
import time
from pathlib import Path
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile

from backend.chatbot.api.deps import get_container
from backend.chatbot.container import Container
from backend.chatbot.errors import FileTooLargeError, MissingFileError, UnsupportedFileTypeError
from backend.chatbot.models.documents import (
    ChunkListResponse,
    ChunkOut,
    DeleteResponse,
    DocumentListResponse,
    DocumentOut,
    UploadResponse,
)
from backend.chatbot.services.document_service import clamp_pagination
from backend.chatbot.validation.validators import is_valid_file_extension, sanitize_filename

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/document", tags=["documents"])


def _stored_upload_path(upload_dir: str, filename: str) -> Path:
    """Timestamp-prefixed, sanitized destination inside the upload directory."""
    timestamp = int(time.time() * 1000)
    return Path(upload_dir) / f"{timestamp}_{sanitize_filename(filename)}"


def _write_upload(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


@router.post("/upload", response_model=UploadResponse)
async def upload_document(
    container: Annotated[Container, Depends(get_container)],
    document: Annotated[UploadFile | None, File()] = None,
    title: Annotated[str | None, Form()] = None,
) -> UploadResponse:
    """Store an uploaded file and start background ingestion.

    Size and extension are checked before anything is written to disk.
    """
    if document is None or not document.filename:
        raise MissingFileError("No file uploaded")

    settings = container.settings
    data = await document.read(settings.max_upload_bytes + 1)
    if len(data) > settings.max_upload_bytes:
        raise FileTooLargeError(f"File too large. Max size: {settings.max_upload_bytes // (1024 * 1024)} MB")

    if not is_valid_file_extension(document.filename, settings.allowed_extensions):
        raise UnsupportedFileTypeError(f"File type not supported: {Path(document.filename).suffix}")

    path = _stored_upload_path(settings.upload_dir, document.filename)
    await asyncio.to_thread(_write_upload, path, data)

    try:
        doc = await container.document_service.process_document(path, title or document.filename)
    except Exception:
        # Rejected uploads leave nothing behind in upload_dir
        await asyncio.to_thread(path.unlink, missing_ok=True)
        raise

    return UploadResponse(id=doc.id, title=doc.title, status=doc.status)


@router.get("/list", response_model=DocumentListResponse)
async def list_documents(
    container: Annotated[Container, Depends(get_container)],
    limit: Annotated[int | None, Query()] = None,
    offset: Annotated[int | None, Query()] = None,
) -> DocumentListResponse:
    """List documents newest first; out-of-range paging falls back to defaults."""
    limit, offset = clamp_pagination(limit, offset)
    docs = await container.document_service.list_documents(limit, offset)

    return DocumentListResponse(
        documents=[DocumentOut.from_record(doc) for doc in docs],
        limit=limit,
        offset=offset,
        count=len(docs),
    )


@router.get("/{document_id}", response_model=DocumentOut)
async def get_document(
    document_id: UUID,
    container: Annotated[Container, Depends(get_container)],
) -> DocumentOut:
    doc = await container.document_service.get_document(document_id)
    return DocumentOut.from_record(doc)


@router.delete("/{document_id}", response_model=DeleteResponse)
async def delete_document(
    document_id: UUID,
    container: Annotated[Container, Depends(get_container)],
) -> DeleteResponse:
    await container.document_service.delete_document(document_id)
    return DeleteResponse()


@router.get("/{document_id}/chunks", response_model=ChunkListResponse)
async def get_document_chunks(
    document_id: UUID,
    container: Annotated[Container, Depends(get_container)],
) -> ChunkListResponse:
    chunks = await container.document_service.get_document_chunks(document_id)
    return ChunkListResponse(
        document_id=document_id,
        chunks=[ChunkOut.from_record(chunk) for chunk in chunks],
        count=len(chunks),
    )
