"""Document upload endpoints (authenticated + authorized)."""

from __future__ import annotations

import logging
import mimetypes
import uuid
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from ..auth import PermissionChecker, get_current_user
from ..config import settings
from ..database import atomic, get_db
from ..domain_errors import ValidationError
from ..models import Document, Project, Site, User
from ..schemas import DocumentResponse
from ..security import get_or_404
from ..services.query_filters import apply_filters

router = APIRouter(prefix="/documents", tags=["documents"])
logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024  # 1MB


def _upload_dir() -> Path:
    upload_dir = Path(settings.UPLOAD_DIR)
    upload_dir.mkdir(parents=True, exist_ok=True)
    return upload_dir


def _validate_upload(file: UploadFile) -> str:
    if not file.filename:
        raise HTTPException(status_code=400, detail="Filename is required")

    if "." not in file.filename:
        raise HTTPException(status_code=400, detail="File extension is required")

    ext = file.filename.rsplit(".", 1)[-1].lower()
    if ext not in settings.allowed_extensions_list:
        raise HTTPException(
            status_code=400,
            detail=f"File type not allowed. Allowed: {settings.ALLOWED_EXTENSIONS}",
        )
    return ext


async def _stream_save_upload(*, file: UploadFile, dest_path: Path) -> int:
    """Stream UploadFile to disk with a hard size limit (avoid loading into memory)."""
    size = 0
    try:
        with dest_path.open("xb") as out:
            while True:
                chunk = await file.read(_CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > settings.MAX_UPLOAD_SIZE:
                    raise HTTPException(
                        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                        detail=f"File too large. Max size: {settings.MAX_UPLOAD_SIZE} bytes",
                    )
                out.write(chunk)
    except HTTPException:
        # Ensure partial file is removed.
        dest_path.unlink(missing_ok=True)
        raise
    except FileExistsError:
        raise HTTPException(status_code=409, detail="File collision, try again")
    except OSError:
        dest_path.unlink(missing_ok=True)
        logger.exception("Failed to save upload")
        raise HTTPException(status_code=500, detail="Failed to save file")
    finally:
        await file.close()
    return size


def _check_owner_refs(db: Session, *, site_id: Optional[int], project_id: Optional[int]) -> None:
    if site_id is not None and not db.query(Site.id).filter(Site.id == site_id).first():
        raise ValidationError.for_field("site_id", "Site not found")
    if project_id is not None and not db.query(Project.id).filter(Project.id == project_id).first():
        raise ValidationError.for_field("project_id", "Project not found")


@router.get("", response_model=list[DocumentResponse])
def get_documents(
    site_id: Optional[int] = None,
    project_id: Optional[int] = None,
    category: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = apply_filters(
        db.query(Document),
        {Document.site_id: site_id, Document.project_id: project_id, Document.category: category},
    )
    return query.order_by(Document.created_at.desc()).all()


@router.get("/{document_id}", response_model=DocumentResponse)
def get_document(
    document_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return get_or_404(db, Document, document_id, not_found="Document not found", code="DOCUMENT_NOT_FOUND")


@router.post("/upload", response_model=DocumentResponse, status_code=201)
async def upload_document(
    file: UploadFile = File(...),
    site_id: Optional[int] = Form(None),
    project_id: Optional[int] = Form(None),
    category: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Store a file on disk under a random name and register it."""
    ext = _validate_upload(file)
    _check_owner_refs(db, site_id=site_id, project_id=project_id)

    file_path = _upload_dir() / f"{uuid.uuid4()}.{ext}"
    size = await _stream_save_upload(file=file, dest_path=file_path)

    try:
        with atomic(db, operation="Document upload"):
            document = Document(
                site_id=site_id,
                project_id=project_id,
                name=file.filename,
                file_path=str(file_path),
                file_type=file.content_type,
                file_size=size,
                category=category,
                uploaded_by=current_user.id,
                description=description,
            )
            db.add(document)
    except Exception:
        file_path.unlink(missing_ok=True)
        raise
    db.refresh(document)
    logger.info("Document %s uploaded by %s (%s bytes)", document.id, current_user.username, size)
    return document


@router.get("/{document_id}/download")
def download_document(
    document_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    document = get_or_404(db, Document, document_id, not_found="Document not found", code="DOCUMENT_NOT_FOUND")
    file_path = Path(document.file_path)
    if not file_path.exists() or not file_path.is_file():
        raise HTTPException(status_code=404, detail="File not found on server")

    mime, _ = mimetypes.guess_type(document.name)
    return FileResponse(
        path=str(file_path),
        media_type=document.file_type or mime or "application/octet-stream",
        filename=document.name,
    )


@router.delete("/{document_id}")
def delete_document(
    document_id: int,
    current_user: User = Depends(PermissionChecker("canDeleteDocuments")),
    db: Session = Depends(get_db),
):
    """Delete the record, then the stored file (best-effort)."""
    document = get_or_404(db, Document, document_id, not_found="Document not found", code="DOCUMENT_NOT_FOUND")
    file_path = Path(document.file_path)
    with atomic(db, operation="Document deletion"):
        db.delete(document)

    try:
        file_path.unlink(missing_ok=True)
    except OSError:
        logger.warning("Could not remove stored file %s", file_path)
    return {"message": "Document deleted successfully"}
