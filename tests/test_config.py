from __future__ import annotations

from blueedge.config import Settings


def test_cors_origins_accept_comma_list(monkeypatch) -> None:
    monkeypatch.setenv("CORS_ALLOW_ORIGINS", "http://a.example, http://b.example,")

    settings = Settings()

    assert settings.allow_origins == ["http://a.example", "http://b.example"]


def test_cors_origins_default_when_unset(monkeypatch) -> None:
    monkeypatch.delenv("CORS_ALLOW_ORIGINS", raising=False)

    settings = Settings(_env_file=None)

    assert settings.allow_origins == ["http://localhost:3000", "http://127.0.0.1:3000"]


def test_blank_api_keys_count_as_unset(monkeypatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "  ")
    monkeypatch.setenv("GEMINI_API_KEY", "your_gemini_api_key_here")

    settings = Settings(_env_file=None)

    assert settings.openai_api_key is None
    assert settings.openai_configured is False
    assert settings.gemini_configured is False
