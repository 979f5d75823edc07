from __future__ import annotations

import logging
from typing import List

from langchain_text_splitters import RecursiveCharacterTextSplitter
from sqlalchemy.orm import Session

from ..config import settings
from ..models.chunks import Chunk
from ..models.documents import Document

logger = logging.getLogger(__name__)


def get_text_splitter() -> RecursiveCharacterTextSplitter:
    return RecursiveCharacterTextSplitter(
        chunk_size=settings.chunk_size,
        chunk_overlap=settings.chunk_overlap,
    )


def split_text(text: str) -> List[str]:
    return get_text_splitter().split_text(text or "")


def build_chunks(document: Document) -> List[Chunk]:
    pieces = split_text(document.content)
    total = len(pieces)
    return [
        Chunk(
            document_id=document.id,
            chunk_index=index,
            content=piece,
            metadata_={
                "documentId": str(document.id),
                "index": index,
                "title": document.title,
                "position": f"Chunk {index + 1} of {total}",
            },
        )
        for index, piece in enumerate(pieces)
    ]


def ensure_document_chunks(db: Session, document: Document, *, rebuild: bool = False) -> List[Chunk]:
    """Return the document's chunks, splitting it first when none exist yet."""
    if document.chunks and not rebuild:
        return list(document.chunks)

    if rebuild and document.chunks:
        document.chunks.clear()
        db.flush()

    chunks = build_chunks(document)
    document.chunks.extend(chunks)
    document.is_embedded = False
    db.flush()
    logger.info("Created %s chunks for document %s", len(chunks), document.id)
    return chunks
