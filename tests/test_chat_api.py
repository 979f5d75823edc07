from __future__ import annotations

import uuid
from types import SimpleNamespace

from blueedge.services import document_chat
from blueedge.services.llm import LLMConfigurationError


class FakeChatModel:
    name = "fake-gpt"

    def __init__(self, reply: str = "Analysis complete.") -> None:
        self.reply = reply
        self.calls: list[dict] = []

    def complete(self, system: str, user: str, *, temperature: float, max_tokens: int) -> str:
        self.calls.append({"system": system, "user": user, "temperature": temperature, "max_tokens": max_tokens})
        return self.reply


def test_chat_stores_user_and_assistant_messages(client, make_document, monkeypatch):
    document = make_document(title="speech.txt", content="A speech about housing policy. " * 10)
    model = FakeChatModel()
    monkeypatch.setattr(document_chat, "get_openai_chat_model", lambda: model)

    response = client.post("/chat", json={"documentId": str(document.id), "message": "What is the main argument?"})

    assert response.status_code == 200
    assert response.json() == {"response": "Analysis complete."}
    assert model.calls[0]["temperature"] == 0.2
    assert model.calls[0]["max_tokens"] == 2000
    assert "Question: What is the main argument?" in model.calls[0]["user"]
    assert "When analyzing political documents" in model.calls[0]["system"]

    history = client.get("/chat", params={"documentId": str(document.id)}).json()["chats"]
    assert len(history) == 1
    assert [message["role"] for message in history[0]["messages"]] == ["user", "assistant"]


def test_chat_reuses_latest_chat(client, make_document, monkeypatch):
    document = make_document()
    monkeypatch.setattr(document_chat, "get_openai_chat_model", lambda: FakeChatModel())

    client.post("/chat", json={"documentId": str(document.id), "message": "first"})
    client.post("/chat", json={"documentId": str(document.id), "message": "second"})

    chats = client.get("/chat", params={"documentId": str(document.id)}).json()["chats"]
    assert len(chats) == 1
    assert len(chats[0]["messages"]) == 4


def test_chat_unknown_document_returns_404(client):
    response = client.post("/chat", json={"documentId": str(uuid.uuid4()), "message": "hello"})
    assert response.status_code == 404
    assert response.json()["detail"] == "Document not found"


def test_chat_requires_message(client, make_document):
    document = make_document()
    response = client.post("/chat", json={"documentId": str(document.id), "message": ""})
    assert response.status_code == 422


def test_chat_without_api_key_returns_500(client, make_document, monkeypatch):
    document = make_document()

    def missing_key():
        raise LLMConfigurationError("OpenAI API key is not configured")

    monkeypatch.setattr(document_chat, "get_openai_chat_model", missing_key)

    response = client.post("/chat", json={"documentId": str(document.id), "message": "hello"})
    assert response.status_code == 500
    assert response.json()["detail"].startswith("OpenAI API key is not configured")


def test_chat_maps_rate_limit_errors(client, make_document, monkeypatch):
    document = make_document()

    class RateLimited(Exception):
        status_code = 429

    class FailingModel(FakeChatModel):
        def complete(self, system, user, *, temperature, max_tokens):
            raise RateLimited("too many requests")

    monkeypatch.setattr(document_chat, "get_openai_chat_model", lambda: FailingModel())

    response = client.post("/chat", json={"documentId": str(document.id), "message": "hello"})
    assert response.status_code == 500
    assert response.json()["detail"] == "Rate limit exceeded. Please try again in a few moments."


def test_provider_error_messages():
    too_long = SimpleNamespace(code="context_length_exceeded")
    assert document_chat.provider_error_message(too_long).startswith("The document is too large")

    class Unauthorized(Exception):
        status_code = 401

    assert document_chat.provider_error_message(Unauthorized("bad key")) == (
        "Invalid API key. Please check your OpenAI API configuration."
    )
    assert document_chat.provider_error_message(RuntimeError("boom")) == "OpenAI API error: boom"
