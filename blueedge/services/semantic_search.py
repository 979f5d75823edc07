from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List

from sqlalchemy.orm import Session, selectinload

from ..models.chunks import Chunk
from ..models.documents import Document
from .chunking import ensure_document_chunks
from .embeddings import cosine_similarity, decode_embedding, encode_embedding, get_embedding
from .metrics import record_chunks_embedded

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 5


@dataclass
class SearchResult:
    content: str
    document_id: uuid.UUID
    document_title: str
    similarity: float
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "documentId": str(self.document_id),
            "documentTitle": self.document_title,
            "similarity": self.similarity,
            "metadata": self.metadata,
        }


def _chunk_vector(chunk: Chunk) -> List[float]:
    if chunk.embedding is None:
        vector = get_embedding(chunk.content)
        chunk.embedding = encode_embedding(vector)
        record_chunks_embedded(1)
        return vector
    return decode_embedding(chunk.embedding).tolist()


def embed_document(db: Session, document: Document) -> int:
    """Compute missing embeddings for a document's chunks; returns how many were computed."""
    computed = 0
    for chunk in ensure_document_chunks(db, document):
        if chunk.embedding is None:
            _chunk_vector(chunk)
            computed += 1
    document.is_embedded = True
    db.flush()
    return computed


def semantic_search(db: Session, query: str, limit: int = DEFAULT_LIMIT) -> List[SearchResult]:
    """Score every chunk of every document against the query. Linear scan, no index."""
    query_vector = get_embedding(query)

    documents = db.query(Document).options(selectinload(Document.chunks)).all()
    scored: List[SearchResult] = []
    for document in documents:
        for chunk in ensure_document_chunks(db, document):
            scored.append(
                SearchResult(
                    content=chunk.content,
                    document_id=document.id,
                    document_title=document.title,
                    similarity=cosine_similarity(query_vector, _chunk_vector(chunk)),
                    metadata=dict(chunk.metadata_ or {}),
                )
            )
        if all(chunk.embedding is not None for chunk in document.chunks):
            document.is_embedded = True

    db.commit()

    scored.sort(key=lambda result: result.similarity, reverse=True)
    logger.info("Semantic search scored %s chunks for query of %s chars", len(scored), len(query))
    return scored[:limit]


def process_document(db: Session, document: Document) -> int:
    ensure_document_chunks(db, document, rebuild=True)
    return embed_document(db, document)


def process_all_documents(db: Session) -> int:
    """Rebuild chunks (and embeddings) for every document; returns the document count."""
    documents = db.query(Document).all()
    logger.info("Processing %s documents for vector search", len(documents))
    for document in documents:
        logger.info("Processing document: %s (%s)", document.title, document.id)
        process_document(db, document)
    db.commit()
    return len(documents)


class UnsupportedActionError(ValueError):
    """Raised for search maintenance actions other than the known ones."""


SEARCH_ACTIONS = {"process_all": process_all_documents}


def run_search_action(db: Session, action: str) -> int:
    handler = SEARCH_ACTIONS.get(action)
    if handler is None:
        raise UnsupportedActionError(action)
    return handler(db)
