from __future__ import annotations

import uuid

import pytest

from blueedge.services import rag
from blueedge.services.extraction import CouncilTaxEntry
from blueedge.services.llm import LLMConfigurationError
from blueedge.services.semantic_search import SearchResult


class RecordingModel:
    def __init__(self, replies=None, name: str = "fake-model", valid: bool = True) -> None:
        self.name = name
        self.valid = valid
        self.replies = list(replies or ["Answer"])
        self.calls: list[dict] = []

    def complete(self, system: str, user: str, *, temperature: float, max_tokens: int) -> str:
        self.calls.append({"system": system, "user": user, "temperature": temperature, "max_tokens": max_tokens})
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply

    def is_valid_api_key(self) -> bool:
        return self.valid


class TokenLimitError(Exception):
    code = "context_length_exceeded"


def _result(content: str, title: str = "plan.txt") -> SearchResult:
    return SearchResult(
        content=content,
        document_id=uuid.uuid4(),
        document_title=title,
        similarity=0.9,
        metadata={"position": "Chunk 1 of 1"},
    )


def _unused_model():
    raise AssertionError("this provider should not be used")


@pytest.fixture()
def search_results(monkeypatch):
    results: list[SearchResult] = [_result("The housing plan commits to new homes.")]
    monkeypatch.setattr(rag, "semantic_search", lambda db, query, limit: results)
    return results


def test_keyword_helpers() -> None:
    assert rag.requires_data_analysis("Which party raised council tax?")
    assert not rag.requires_data_analysis("What does the housing plan say?")
    assert rag.is_council_tax_query("Labour council spending on services")
    assert not rag.is_council_tax_query("What does the housing plan say?")
    assert rag.estimate_token_count("abcde") == 2
    assert rag.estimate_token_count("") == 0


def test_truncate_context_shares_budget_between_excerpts() -> None:
    context = rag.build_context([_result("x" * 4000, "a.txt"), _result("y" * 4000, "b.txt")])

    assert rag.truncate_context(context, 10_000) == context

    truncated = rag.truncate_context(context, 200)
    assert truncated.count("... [truncated]") == 2
    assert "Document: a.txt (Chunk 1 of 1)\nContent: " in truncated
    assert "Document: b.txt (Chunk 1 of 1)\nContent: " in truncated
    assert len(truncated) < 1000


def test_multi_document_rag_uses_openai_for_small_context(db, search_results, monkeypatch) -> None:
    model = RecordingModel(["The plan builds homes."])
    monkeypatch.setattr(rag, "get_openai_chat_model", lambda: model)
    monkeypatch.setattr(rag, "get_gemini_chat_model", _unused_model)

    answer = rag.multi_document_rag(db, "What does the housing plan say?", limit=3)

    assert answer == "The plan builds homes."
    call = model.calls[0]
    assert call["temperature"] == 0.2 and call["max_tokens"] == 1500
    assert "This query requires data analysis" not in call["system"]
    assert "Document: plan.txt (Chunk 1 of 1)\nContent: The housing plan" in call["user"]


def test_analysis_queries_include_extracted_data(db, monkeypatch) -> None:
    monkeypatch.setattr(
        rag,
        "semantic_search",
        lambda db, query, limit: [_result("Labour councils raised council tax by 4.99% this year.")],
    )
    model = RecordingModel()
    monkeypatch.setattr(rag, "get_openai_chat_model", lambda: model)

    rag.multi_document_rag(db, "Did Labour raise council tax?")

    call = model.calls[0]
    assert "This query requires data analysis" in call["system"]
    assert "Extracted Numerical Data:\n- Value: 4.99, Document: plan.txt" in call["user"]
    assert "- political_party: Labour" in call["user"]


def test_large_context_is_truncated_before_openai(db, search_results, monkeypatch) -> None:
    search_results[:] = [_result("word " * 8000, "long.txt")]
    model = RecordingModel()
    monkeypatch.setattr(rag, "get_openai_chat_model", lambda: model)

    rag.multi_document_rag(db, "What does the housing plan say?")

    assert "... [truncated]" in model.calls[0]["user"]
    assert rag.estimate_token_count(model.calls[0]["user"]) <= rag.OPENAI_TOKEN_LIMIT


def test_token_limit_error_retries_once_with_reduced_context(db, search_results, monkeypatch) -> None:
    model = RecordingModel([TokenLimitError("too long"), "Short answer"])
    monkeypatch.setattr(rag, "get_openai_chat_model", lambda: model)

    answer = rag.multi_document_rag(db, "What does the housing plan say?")

    assert answer == "Short answer" + rag.REDUCED_CONTEXT_NOTE
    assert len(model.calls) == 2
    assert model.calls[1]["user"].endswith(rag.TRUNCATION_NOTE)


def test_second_token_limit_error_is_not_retried_again(db, search_results, monkeypatch) -> None:
    model = RecordingModel([TokenLimitError("too long"), TokenLimitError("still too long")])
    monkeypatch.setattr(rag, "get_openai_chat_model", lambda: model)

    with pytest.raises(TokenLimitError):
        rag.multi_document_rag(db, "What does the housing plan say?")
    assert len(model.calls) == 2


def test_rate_limit_returns_friendly_message(db, search_results, monkeypatch) -> None:
    model = RecordingModel([RuntimeError("Error code: 429 - rate limit reached")])
    monkeypatch.setattr(rag, "get_openai_chat_model", lambda: model)

    assert rag.multi_document_rag(db, "What does the housing plan say?") == rag.RATE_LIMIT_MESSAGE


def test_other_provider_errors_propagate(db, search_results, monkeypatch) -> None:
    model = RecordingModel([RuntimeError("connection reset")])
    monkeypatch.setattr(rag, "get_openai_chat_model", lambda: model)

    with pytest.raises(RuntimeError, match="connection reset"):
        rag.multi_document_rag(db, "What does the housing plan say?")


def test_missing_openai_key_propagates(db, search_results, monkeypatch) -> None:
    def missing():
        raise LLMConfigurationError("OpenAI API key is not configured")

    monkeypatch.setattr(rag, "get_openai_chat_model", missing)

    with pytest.raises(LLMConfigurationError):
        rag.multi_document_rag(db, "What does the housing plan say?")


def test_very_large_context_goes_to_gemini(db, search_results, monkeypatch) -> None:
    search_results[:] = [_result("x" * 400_100, "huge.txt")]
    gemini = RecordingModel(["Gemini answer"], name="gemini-test")
    monkeypatch.setattr(rag, "get_gemini_chat_model", lambda: gemini)
    monkeypatch.setattr(rag, "get_openai_chat_model", _unused_model)

    assert rag.multi_document_rag(db, "What does the housing plan say?") == "Gemini answer"
    assert gemini.calls[0]["max_tokens"] == 2048


def test_council_tax_prompt_section_orders_labour_first() -> None:
    rows = [
        CouncilTaxEntry("Surrey", "Conservative", 2050.4, 3.99),
        CouncilTaxEntry("Manchester", "Labour", 0.0, 5.0),
    ]

    section = rag.council_tax_prompt_section(rows)

    assert "Labour-controlled councils (1): Average increase 5.00%" in section
    assert section.index("Manchester | Labour | 5% | N/A") < section.index("Surrey | Conservative | 3.99% | £2050.40")
    assert rag.council_tax_prompt_section([]) == ""


def test_gemini_rag_rejects_invalid_key(db, search_results, monkeypatch) -> None:
    monkeypatch.setattr(rag, "get_gemini_chat_model", lambda: RecordingModel(valid=False))

    with pytest.raises(LLMConfigurationError, match="invalid"):
        rag.gemini_rag(db, "What does the housing plan say?")


def test_gemini_rag_standard_answer(db, search_results, monkeypatch) -> None:
    gemini = RecordingModel(["Housing answer"], name="gemini-test")
    monkeypatch.setattr(rag, "get_gemini_chat_model", lambda: gemini)

    payload = rag.gemini_rag(db, "What does the housing plan say?", limit=4)

    assert payload == {
        "response": "Housing answer",
        "model": "gemini-test",
        "success": True,
        "documentCount": 1,
        "analysisType": "standard",
    }
    assert gemini.calls[0]["temperature"] == 0.1
    assert gemini.calls[0]["max_tokens"] == 4096
    assert "Document Types Summary:\n- Unknown: 1 documents" in gemini.calls[0]["user"]


def test_gemini_rag_comprehensive_prompt(db, search_results, monkeypatch) -> None:
    search_results[:] = [_result("Average turnout was 64% in Labour wards.", "turnout.txt")]
    gemini = RecordingModel(name="gemini-test")
    monkeypatch.setattr(rag, "get_gemini_chat_model", lambda: gemini)

    payload = rag.gemini_rag(db, "What is the average turnout?")

    assert payload["analysisType"] == "comprehensive"
    user = gemini.calls[0]["user"]
    assert "IMPORTANT ANALYSIS INSTRUCTIONS" in user
    assert "- Entity: Labour, Type: political_party, Document: turnout.txt" in user


def test_gemini_rag_returns_analysis_report_for_council_tax(db, search_results, monkeypatch) -> None:
    gemini = RecordingModel(name="gemini-test")
    monkeypatch.setattr(rag, "get_gemini_chat_model", lambda: gemini)

    payload = rag.gemini_rag(db, "Did Labour or Conservative councils raise council tax more?")

    assert payload["analysisType"] == "council_tax"
    assert payload["response"].startswith("## Council Tax Increase Analysis")
    assert gemini.calls == []
