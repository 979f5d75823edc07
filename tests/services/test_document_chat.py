from __future__ import annotations

import uuid

import pytest

from blueedge.models import Chat, Document, Message
from blueedge.services import document_chat
from blueedge.services.document_chat import (
    DocumentChatError,
    DocumentNotFoundError,
    answer_document_question,
    prepare_document_content,
    system_prompt_for,
)
from blueedge.services.markdown import csv_to_markdown


def _csv_document(rows: int) -> Document:
    raw = "department,item,amount\n" + "\n".join(
        f"{'Transport' if index % 2 else 'Education'},item {index},{index * 10}" for index in range(rows)
    )
    return Document(
        title="spend.csv",
        content=raw,
        markdown=csv_to_markdown(raw),
        metadata_={"fileType": "csv"},
    )


def test_csv_summary_counts_rows_and_columns() -> None:
    content = prepare_document_content(_csv_document(10), "what happened?")

    assert content.startswith("# spend.csv\n\n## CSV File Summary\n\n* **Total Rows**: 10\n* **Total Columns**: 3")
    assert "## Headers\n\n| department | item | amount |" in content
    assert "## Sample Data (first 100 rows)" in content


def test_csv_analysis_questions_get_representative_sample() -> None:
    content = prepare_document_content(_csv_document(1200), "Please categorize this spending")

    assert "## Representative Sample Data (500 rows from throughout the dataset)" in content
    assert "| Education | item 0 | 0 |" in content
    assert "| Education | item 1196 | 11960 |" not in content


def test_csv_keyword_questions_get_relevant_rows() -> None:
    content = prepare_document_content(_csv_document(20), "How much went on transport?")

    assert "## Relevant Data Rows (10 rows matching your query)" in content
    assert "| Education |" not in content.split("## Relevant Data Rows")[1]


def test_large_document_keeps_beginning_relevant_sections_and_ending() -> None:
    filler = "\n\n".join(f"Paragraph {index} about general matters." for index in range(1500))
    markdown = "# Speech\n\n" + filler + "\n\nThe housing target is 300,000 homes a year.\n\n" + filler
    document = Document(title="speech.txt", content=markdown, markdown=markdown, metadata_={"fileType": "txt"})

    content = prepare_document_content(document, "What is the housing target?")

    assert content.startswith("# speech.txt\n\n## DOCUMENT BEGINNING\n\n# Speech")
    assert "## RELEVANT SECTIONS\n\nThe housing target is 300,000 homes a year." in content
    assert content.index("## DOCUMENT ENDING") > content.index("## RELEVANT SECTIONS")
    assert len(content) < len(markdown)


def test_large_document_without_matches_is_sampled() -> None:
    markdown = "x" * 40_000
    document = Document(title="blob.txt", content=markdown, markdown=markdown, metadata_={"fileType": "txt"})

    content = prepare_document_content(document, "why?")

    for heading in ("### Beginning", "### 25% Through Document", "### Middle of Document", "### End of Document"):
        assert heading in content


def test_short_markdown_falls_back_to_raw_content() -> None:
    raw = "Detailed minutes of the finance committee. " * 5
    document = Document(title="finance_minutes.pdf", content=raw, markdown="# x", metadata_={"fileType": "pdf"})

    assert prepare_document_content(document, "summary") == f"# finance minutes\n\n{raw}"


def test_system_prompt_depends_on_file_type() -> None:
    assert system_prompt_for(_csv_document(1)) is document_chat.CSV_SYSTEM_PROMPT
    plain = Document(title="a.txt", content="", markdown="", metadata_={"fileType": "txt"})
    assert system_prompt_for(plain) is document_chat.DOCUMENT_SYSTEM_PROMPT


def test_answer_requires_existing_document(db) -> None:
    with pytest.raises(DocumentNotFoundError):
        answer_document_question(db, uuid.uuid4(), "hello")


def test_provider_failure_keeps_user_message(db, make_document, monkeypatch) -> None:
    document = make_document()

    class Broken:
        name = "broken"

        def complete(self, *args, **kwargs):
            raise RuntimeError("upstream exploded")

    monkeypatch.setattr(document_chat, "get_openai_chat_model", lambda: Broken())

    with pytest.raises(DocumentChatError, match="OpenAI API error: upstream exploded"):
        answer_document_question(db, document.id, "hello")

    chat = db.query(Chat).filter(Chat.document_id == document.id).one()
    assert [message.role for message in db.query(Message).filter(Message.chat_id == chat.id)] == ["user"]
