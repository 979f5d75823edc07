from __future__ import annotations

import logging
import re
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import openai
from instructor import from_openai
from pydantic import BaseModel

from ..config import settings
from .conversion import file_type
from .markdown import title_from_filename

logger = logging.getLogger(__name__)

SUMMARY_LENGTH = 250
TOPIC_COUNT = 8
LLM_EXCERPT_CHARS = 3000

STOP_WORDS = frozenset(
    {
        "the", "and", "a", "an", "in", "on", "at", "to", "for", "of", "with", "by", "as",
        "is", "are", "was", "were", "be", "been", "being", "have", "has", "had", "do", "does",
        "did", "but", "if", "or", "because", "until", "while", "that", "which", "this",
        "these", "those", "then", "than", "when", "where", "why", "how", "all", "any", "both",
        "each", "few", "more", "most", "other", "some", "such", "no", "nor", "not", "only",
        "own", "same", "so", "too", "very", "can", "will", "just", "should", "now",
    }
)

# First match wins.
DOCUMENT_TYPE_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Policy Document", ("policy", "policies")),
    ("Analysis Report", ("report", "analysis")),
    ("Briefing Document", ("briefing", "brief")),
    ("Speech", ("speech", "address")),
    ("Meeting Minutes", ("minutes", "meeting")),
    ("Data Report", ("data", "statistics")),
)

DATE_PATTERN = re.compile(
    r"\b(\d{1,2})[/-](\d{1,2})[/-](\d{2,4})\b"
    r"|\b(January|February|March|April|May|June|July|August|September|October|November|December)"
    r"\s+(\d{1,2})(?:st|nd|rd|th)?[,\s]+(\d{4})\b",
    re.IGNORECASE,
)


def _clip(text: str) -> str:
    return text[:SUMMARY_LENGTH] + ("..." if len(text) > SUMMARY_LENGTH else "")


def build_summary(content: str) -> str:
    for paragraph in content.split("\n\n"):
        cleaned = paragraph.strip()
        if len(cleaned) >= 100:
            return _clip(cleaned)
    return _clip(content) if content else ""


def extract_topics(content: str, limit: int = TOPIC_COUNT) -> list[str]:
    words = re.split(r"\W+", content.lower())
    counts = Counter(word for word in words if len(word) > 3 and word not in STOP_WORDS)
    return [word for word, _ in counts.most_common(limit)]


def classify_document_type(content: str) -> str:
    lowered = content.lower()
    for label, keywords in DOCUMENT_TYPE_RULES:
        if any(keyword in lowered for keyword in keywords):
            return label
    return "General Document"


def find_date(content: str) -> Optional[str]:
    match = DATE_PATTERN.search(content)
    return match.group(0) if match else None


def extract_metadata(filename: str, content: str) -> Dict[str, Any]:
    """Heuristic metadata stored alongside every uploaded document."""
    return {
        "title": title_from_filename(filename),
        "fileType": file_type(filename),
        "wordCount": len(content.split()),
        "characterCount": len(content),
        "summary": build_summary(content),
        "topics": extract_topics(content),
        "documentType": classify_document_type(content),
        "date": find_date(content),
        "createdAt": datetime.now(timezone.utc).isoformat(),
    }


class DocumentMetadataLLMOut(BaseModel):
    title: str
    date: str | None = None
    author: str | None = None
    summary: str


SYSTEM = (
    "You are an archivist for a political research team. "
    "Extract key bibliographic metadata from documents into structured JSON."
)


USER_TMPL = """Document name: {filename}
Document content:
---
{excerpt}
---
Return a JSON object with keys:
- title (the document title)
- date (the document date if available; otherwise null)
- author (the document author if available; otherwise null)
- summary (2-3 sentences summarising the document content)
"""


def extract_document_metadata(content: str, filename: str) -> Dict[str, Any]:
    """LLM-backed metadata; degrades to a filename-only record on any failure."""
    try:
        client = from_openai(openai.OpenAI(api_key=settings.openai_api_key))
        result = client.chat.completions.create(
            model=settings.openai_metadata_model,
            response_model=DocumentMetadataLLMOut,
            messages=[
                {"role": "system", "content": SYSTEM},
                {
                    "role": "user",
                    "content": USER_TMPL.format(filename=filename, excerpt=content[:LLM_EXCERPT_CHARS]),
                },
            ],
            temperature=0,
        )
        return result.model_dump()
    except Exception:
        logger.exception("LLM metadata extraction failed for %s", filename)
        return {"title": filename, "summary": "No summary available"}
