from __future__ import annotations

import logging
import math
import re
import uuid
from typing import List, Optional

from sqlalchemy.orm import Session

from ..models.chats import Chat, Message
from ..models.documents import Document
from .llm import LLMConfigurationError, error_status, get_openai_chat_model

logger = logging.getLogger(__name__)

LARGE_DOCUMENT_CHARS = 30_000
CSV_SAMPLE_ROWS = 500
CSV_RELEVANT_ROWS = 200
CSV_HEAD_ROWS = 100
BEGINNING_CHARS = 5_000
ENDING_CHARS = 3_000
RELEVANT_PARAGRAPHS = 20
SAMPLE_CHARS = 4_000
MIN_CONTENT_CHARS = 100

CSV_ANALYSIS_MARKERS = ("categori", "pattern", "identif", "analyz", "analyse", "summary", "overview")
WORD_SPLIT = re.compile(r"\W+")
TABLE_SEPARATOR = re.compile(r"^\|(?:\s*:?-+:?\s*\|)+$")

CSV_SYSTEM_PROMPT = """You are BlueEdge, an advanced AI assistant for the Conservative Research Department.
Your purpose is to analyze financial and data-heavy documents and provide factual, data-driven insights.

This document is a large CSV file that has been summarized. You are seeing the headers and a sample of rows.

FORMATTING REQUIREMENTS:
- Present your analysis in clean, well-structured tables with clear headers
- DO NOT use asterisks (*) for emphasis - use bold text with markdown (** **) instead
- Use proper markdown tables with headers and aligned columns
- Use numbered lists (1. 2. 3.) instead of bullet points for sequential items
- Use headings (## and ###) to organize your response clearly
- Keep your analysis concise and focused on the most important insights

When analyzing financial data:
1. Categorize expenditures by type, department, or purpose in a clear table
2. Identify any unusual or potentially wasteful spending patterns
3. Highlight the largest expenditure categories with specific amounts
4. Note any politically sensitive spending that might require further scrutiny
5. Provide a summary table with the key findings at the end

Format your responses professionally with proper headings and tables.
If you cannot answer a question based on the sample data provided, explain what specific information is missing.
Be politically neutral in your analysis, focusing only on the facts presented in the document."""

DOCUMENT_SYSTEM_PROMPT = """You are BlueEdge, an advanced AI assistant for the Conservative Research Department.
Your purpose is to analyze political documents and provide factual, data-driven insights.

FORMATTING REQUIREMENTS:
- Present your analysis in clean, well-structured format with clear headings
- DO NOT use asterisks (*) for emphasis - use bold text with markdown (** **) instead
- Use proper markdown tables with headers and aligned columns when presenting structured data
- Use numbered lists (1. 2. 3.) instead of bullet points for sequential items
- Use headings (## and ###) to organize your response clearly
- Keep your analysis concise and focused on the most important insights

When analyzing political documents:
1. Identify the key arguments or positions presented
2. Highlight important facts, figures, and statistics with proper formatting
3. Summarize policy proposals or recommendations in a structured format
4. Note any significant omissions or potential biases in the document
5. Provide a concise summary of the most important points

Always base your analysis solely on the document content provided.
If the document doesn't contain information to answer a question, explain what specific information is missing.
Be politically neutral in your analysis, focusing only on the facts presented in the document."""

USER_TEMPLATE = (
    "I'm going to provide a political document for analysis, followed by a specific question about it.\n\n"
    "---DOCUMENT CONTENT---\n{content}\n---END DOCUMENT CONTENT---\n\n"
    "Question: {question}\n\nPlease provide a detailed analysis based on this document."
)


class DocumentNotFoundError(LookupError):
    """Raised when a chat targets a document id that does not exist."""


class DocumentChatError(Exception):
    """Provider failure while answering a question; the message is safe to show to users."""


def _keywords(message: str) -> List[str]:
    return [word for word in WORD_SPLIT.split(message.lower()) if len(word) > 3]


def _top_scoring(items: List[str], keywords: List[str], limit: int) -> List[str]:
    scored = []
    for item in items:
        lowered = item.lower()
        score = sum(1 for keyword in keywords if keyword in lowered)
        if score > 0:
            scored.append((score, item))
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [item for _, item in scored[:limit]]


def _csv_window(title: str, content: str, message: str) -> str:
    lines = [line for line in content.split("\n") if line.strip()]
    start = next((index for index, line in enumerate(lines) if line.startswith("|")), None)
    if start is None:
        headers = lines[0] if lines else ""
        rows = lines[1:]
        columns = len(headers.split(",")) if headers else 0
    else:
        headers = lines[start]
        rows = [line for line in lines[start + 1 :] if not TABLE_SEPARATOR.match(line)]
        # leading and trailing pipes
        columns = len(headers.split("|")) - 2
    total = len(rows)
    summary = (
        f"# {title}\n\n## CSV File Summary\n\n* **Total Rows**: {total}\n* **Total Columns**: {columns}\n\n"
        f"## Headers\n\n{headers}\n\n"
    )

    lowered = message.lower()
    if any(marker in lowered for marker in CSV_ANALYSIS_MARKERS):
        sample_size = min(CSV_SAMPLE_ROWS, total)
        step = max(1, math.floor(total / sample_size)) if sample_size else 1
        sampled = rows[::step][:sample_size]
        return (
            summary
            + f"## Representative Sample Data ({len(sampled)} rows from throughout the dataset)\n\n"
            + f"{headers}\n" + "\n".join(sampled) + "\n\n"
            + "## Analysis Instructions\n\n"
            + f"This is a large CSV file with {total} rows. You're seeing a representative sample from throughout "
            "the dataset. Please analyze this sample to identify patterns, categorize data, and provide "
            "comprehensive insights about the entire dataset."
        )

    relevant = _top_scoring(rows, _keywords(message), CSV_RELEVANT_ROWS)
    if relevant:
        return (
            summary
            + f"## Relevant Data Rows ({len(relevant)} rows matching your query)\n\n"
            + f"{headers}\n" + "\n".join(relevant) + "\n\n"
            + "## Query Instructions\n\n"
            + f"This is a large CSV file with {total} rows. You're seeing the {len(relevant)} most relevant rows "
            "based on the query. Please answer the specific question about this data."
        )

    return (
        summary
        + f"## Sample Data (first {CSV_HEAD_ROWS} rows)\n\n"
        + f"{headers}\n" + "\n".join(rows[:CSV_HEAD_ROWS]) + "\n\n"
        + "## Query Instructions\n\n"
        + f"This is a large CSV file with {total} rows. You're seeing the first {CSV_HEAD_ROWS} rows as a sample. "
        "Please answer the question based on this sample and indicate if more data would be needed."
    )


def _large_document_window(title: str, content: str, message: str) -> str:
    beginning = content[:BEGINNING_CHARS]
    relevant = _top_scoring(content.split("\n\n"), _keywords(message), RELEVANT_PARAGRAPHS)
    if relevant:
        sections = "\n\n".join(relevant)
        return (
            f"# {title}\n\n## DOCUMENT BEGINNING\n\n{beginning}\n\n"
            f"## RELEVANT SECTIONS\n\n{sections}\n\n"
            f"## DOCUMENT ENDING\n\n{content[-ENDING_CHARS:]}\n\n"
            "## ANALYSIS INSTRUCTIONS\n\nThis is a large document that has been strategically chunked. "
            "You're seeing the beginning, most relevant sections to the query, and the ending. "
            "Please analyze these sections to provide a comprehensive answer."
        )

    length = len(content)
    samples = [content[:SAMPLE_CHARS]]
    for fraction in (0.25, 0.5, 0.75):
        start = math.floor(length * fraction)
        samples.append(content[start : start + SAMPLE_CHARS])
    samples.append(content[max(0, length - SAMPLE_CHARS) :])
    return (
        f"# {title}\n\n## DOCUMENT SECTIONS\n\n"
        f"### Beginning\n{samples[0]}\n\n"
        f"### 25% Through Document\n{samples[1]}\n\n"
        f"### Middle of Document\n{samples[2]}\n\n"
        f"### 75% Through Document\n{samples[3]}\n\n"
        f"### End of Document\n{samples[4]}\n\n"
        "## ANALYSIS INSTRUCTIONS\n\nThis is a large document that has been sampled at strategic points. "
        "You're seeing sections from the beginning, 25%, 50%, 75%, and end of the document. "
        "Please analyze these sections to provide a comprehensive answer."
    )


def prepare_document_content(document: Document, message: str) -> str:
    """Markdown for the prompt, windowed for CSV uploads and very large documents."""
    content = document.markdown or ""
    if document.is_csv:
        content = _csv_window(document.title, content, message)
    elif len(content) > LARGE_DOCUMENT_CHARS:
        logger.info("Document %s is large (%s chars); sending a windowed extract", document.id, len(content))
        content = _large_document_window(document.title, content, message)

    if len(content) < MIN_CONTENT_CHARS and len(document.content or "") > MIN_CONTENT_CHARS:
        logger.warning("Markdown for document %s is suspiciously short; using raw content", document.id)
        title = re.sub(r"[_-]", " ", re.sub(r"\.[^/.]+$", "", document.title))
        content = f"# {title}\n\n{document.content}"
    return content


def system_prompt_for(document: Document) -> str:
    return CSV_SYSTEM_PROMPT if document.is_csv else DOCUMENT_SYSTEM_PROMPT


def provider_error_message(exc: Exception) -> str:
    if getattr(exc, "code", None) == "context_length_exceeded":
        return "The document is too large for analysis. Please try a smaller document or a more specific question."
    status = error_status(exc)
    if status == 429:
        return "Rate limit exceeded. Please try again in a few moments."
    if status == 401:
        return "Invalid API key. Please check your OpenAI API configuration."
    return f"OpenAI API error: {exc}"


def latest_chat(db: Session, document_id: uuid.UUID) -> Optional[Chat]:
    return (
        db.query(Chat)
        .filter(Chat.document_id == document_id)
        .order_by(Chat.created_at.desc())
        .first()
    )


def answer_document_question(db: Session, document_id: uuid.UUID, message: str) -> str:
    document = db.query(Document).filter(Document.id == document_id).one_or_none()
    if document is None:
        raise DocumentNotFoundError(str(document_id))

    chat = latest_chat(db, document_id)
    if chat is None:
        chat = Chat(document_id=document_id)
        db.add(chat)
        db.flush()

    db.add(Message(chat_id=chat.id, role="user", content=message))
    db.commit()

    model = get_openai_chat_model()

    content = prepare_document_content(document, message)
    logger.info("Answering question on document %s with %s chars of context", document.id, len(content))
    try:
        response = model.complete(
            system_prompt_for(document),
            USER_TEMPLATE.format(content=content, question=message),
            temperature=0.2,
            max_tokens=2000,
        )
    except LLMConfigurationError:
        raise
    except Exception as exc:
        logger.exception("Error with OpenAI API")
        raise DocumentChatError(provider_error_message(exc)) from exc

    db.add(Message(chat_id=chat.id, role="assistant", content=response))
    db.commit()
    return response
