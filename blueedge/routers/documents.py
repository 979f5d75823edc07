from __future__ import annotations

import io
import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile
from sqlalchemy.orm import Session

from ..config import settings
from ..dependencies.db import get_db
from ..models.chats import Chat, Message
from ..models.documents import DEFAULT_FOLDER, Document
from ..services.conversion import extract_text, file_type
from ..services.markdown import convert_to_markdown
from ..services.metadata import extract_document_metadata, extract_metadata
from ..services.metrics import record_document_uploaded

logger = logging.getLogger(__name__)

router = APIRouter()

READ_CHUNK_BYTES = 1024 * 1024


def parse_document_id(doc_id: str) -> uuid.UUID:
    try:
        return uuid.UUID(doc_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid document id") from exc


def get_document_or_404(db: Session, doc_id: str) -> Document:
    document = db.query(Document).filter(Document.id == parse_document_id(doc_id)).one_or_none()
    if document is None:
        raise HTTPException(status_code=404, detail="Document not found")
    return document


def serialize_document(document: Document) -> Dict[str, Any]:
    return {
        "id": str(document.id),
        "title": document.title,
        "content": document.content,
        "markdown": document.markdown,
        "metadata": document.metadata_ or {},
        "folder": document.folder or DEFAULT_FOLDER,
        "isEmbedded": bool(document.is_embedded),
        "createdAt": document.created_at.isoformat() if document.created_at else None,
        "updatedAt": document.updated_at.isoformat() if document.updated_at else None,
    }


def _read_upload(file: UploadFile) -> bytes:
    buffer = io.BytesIO()
    total_bytes = 0
    try:
        while True:
            chunk = file.file.read(READ_CHUNK_BYTES)
            if not chunk:
                break
            total_bytes += len(chunk)
            if total_bytes > settings.max_upload_bytes:
                raise HTTPException(status_code=400, detail="File too large.")
            buffer.write(chunk)
    finally:
        file.file.close()
    return buffer.getvalue()


@router.post("/documents/upload")
def upload_document(
    request: Request,
    file: Optional[UploadFile] = File(None),
    enrich: bool = Form(False),
    db: Session = Depends(get_db),
):
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file provided")

    filename = file.filename
    data = _read_upload(file)
    logger.info("Processing file upload: %s, size: %s bytes", filename, len(data))

    content = extract_text(filename, data)
    if not content:
        raise HTTPException(status_code=400, detail="File appears to be empty or could not be processed")

    metadata = extract_metadata(filename, content)
    if enrich:
        metadata["llm"] = extract_document_metadata(content, filename)

    document = Document(
        title=filename,
        content=content,
        markdown=convert_to_markdown(filename, content),
        metadata_=metadata,
        folder=DEFAULT_FOLDER,
    )
    db.add(document)
    db.commit()
    db.refresh(document)

    request.state.document_id = str(document.id)
    record_document_uploaded(file_type(filename))
    logger.info("Document saved with id %s (%s markdown chars)", document.id, len(document.markdown))
    return {"document": serialize_document(document)}


@router.get("/documents")
def list_documents(db: Session = Depends(get_db)):
    documents = db.query(Document).order_by(Document.created_at.desc()).all()
    return {"documents": [serialize_document(document) for document in documents]}


@router.get("/documents/{doc_id}")
def get_document(doc_id: str, db: Session = Depends(get_db)):
    return {"document": serialize_document(get_document_or_404(db, doc_id))}


@router.delete("/documents/{doc_id}")
def delete_document(doc_id: str, request: Request, db: Session = Depends(get_db)):
    document = get_document_or_404(db, doc_id)
    request.state.document_id = str(document.id)

    chat_ids = [chat_id for (chat_id,) in db.query(Chat.id).filter(Chat.document_id == document.id).all()]
    if chat_ids:
        logger.info("Deleting %s chats for document %s", len(chat_ids), document.id)
        db.query(Message).filter(Message.chat_id.in_(chat_ids)).delete(synchronize_session=False)
        db.query(Chat).filter(Chat.id.in_(chat_ids)).delete(synchronize_session=False)

    db.delete(document)
    db.commit()
    logger.info("Document %s deleted", doc_id)
    return {"success": True, "message": "Document deleted successfully"}


@router.patch("/documents/{doc_id}")
def move_document(
    doc_id: str,
    folder: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
):
    document = get_document_or_404(db, doc_id)
    document.folder = folder
    db.commit()
    return {"message": "Document folder updated successfully"}
