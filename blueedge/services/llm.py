from __future__ import annotations

import logging
from typing import Optional, Protocol

import openai
from google import genai
from google.genai import types

from ..config import settings

logger = logging.getLogger(__name__)

NO_RESPONSE = "No response generated"


class LLMError(Exception):
    """Raised when a text-generation provider fails or refuses a prompt."""


class LLMConfigurationError(LLMError):
    """Raised when a provider API key is missing or still the placeholder."""


class ChatModel(Protocol):
    name: str

    def complete(self, system: str, user: str, *, temperature: float, max_tokens: int) -> str:
        ...


def is_token_limit_error(exc: BaseException) -> bool:
    if getattr(exc, "code", None) == "context_length_exceeded":
        return True
    message = str(exc)
    return "Request too large" in message or "context_length_exceeded" in message


def error_status(exc: BaseException) -> Optional[int]:
    status = getattr(exc, "status_code", None)
    return status if isinstance(status, int) else None


class OpenAIChatModel:
    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None) -> None:
        if api_key is None:
            if not settings.openai_configured:
                raise LLMConfigurationError("OpenAI API key is not configured")
            api_key = settings.openai_api_key
        self.name = model or settings.openai_chat_model
        self._client = openai.OpenAI(api_key=api_key)

    def complete(self, system: str, user: str, *, temperature: float = 0.2, max_tokens: int = 1500) -> str:
        completion = self._client.chat.completions.create(
            model=self.name,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            temperature=temperature,
            max_tokens=max_tokens,
        )
        return completion.choices[0].message.content or NO_RESPONSE


class GeminiChatModel:
    """Gemini has no separate system turn here; the system prompt is prepended."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None) -> None:
        if api_key is None:
            if not settings.gemini_configured:
                raise LLMConfigurationError(
                    "Gemini API key is not configured. Please add GEMINI_API_KEY to your .env file."
                )
            api_key = settings.gemini_api_key
        self.name = model or settings.gemini_model
        self._client = genai.Client(api_key=api_key.strip())

    def complete(self, system: str, user: str, *, temperature: float = 0.2, max_tokens: int = 2048) -> str:
        config = types.GenerateContentConfig(
            temperature=temperature,
            max_output_tokens=max_tokens,
            top_p=0.95,
            top_k=40,
        )
        try:
            response = self._client.models.generate_content(
                model=self.name,
                config=config,
                contents=f"{system}\n\n{user}",
            )
        except Exception as exc:
            logger.exception("Gemini request failed")
            raise LLMError(f"Gemini API error: {exc}") from exc

        feedback = getattr(response, "prompt_feedback", None)
        block_reason = getattr(feedback, "block_reason", None) if feedback else None
        if block_reason:
            raise LLMError(f"Gemini blocked the request: {block_reason}")

        if not response.candidates:
            return NO_RESPONSE
        content = response.candidates[0].content
        parts = content.parts if content and content.parts else []
        return "".join(part.text or "" for part in parts)

    def is_valid_api_key(self) -> bool:
        try:
            self.complete("Hello", "Test", temperature=0.1, max_tokens=10)
            return True
        except LLMError:
            logger.warning("Gemini API key rejected", exc_info=True)
            return False


def get_openai_chat_model() -> OpenAIChatModel:
    return OpenAIChatModel()


def get_gemini_chat_model() -> GeminiChatModel:
    return GeminiChatModel()
