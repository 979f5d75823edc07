from __future__ import annotations

from prometheus_client import Counter


DOCUMENTS_UPLOADED_COUNTER = Counter(
    "be_documents_uploaded_total",
    "Documents uploaded per file type",
    ["file_type"],
)

CHUNKS_EMBEDDED_COUNTER = Counter(
    "be_chunks_embedded_total",
    "Chunk embeddings computed and stored",
)

RAG_QUERIES_COUNTER = Counter(
    "be_rag_queries_total",
    "Retrieval-augmented queries answered per provider",
    ["provider"],
)

TOKEN_LIMIT_RETRIES_COUNTER = Counter(
    "be_token_limit_retries_total",
    "Completions retried with a shortened prompt after a token-limit error",
)


def _file_type_label(file_type: str | None) -> str:
    return file_type or "unknown"


def record_document_uploaded(file_type: str | None) -> None:
    DOCUMENTS_UPLOADED_COUNTER.labels(file_type=_file_type_label(file_type)).inc()


def record_chunks_embedded(count: int) -> None:
    if count <= 0:
        return
    CHUNKS_EMBEDDED_COUNTER.inc(count)


def record_rag_query(provider: str) -> None:
    RAG_QUERIES_COUNTER.labels(provider=provider).inc()


def record_token_limit_retry() -> None:
    TOKEN_LIMIT_RETRIES_COUNTER.inc()
