from __future__ import annotations

from typing import Sequence

import numpy as np
import openai

from ..config import settings
from .llm import LLMConfigurationError

EMBEDDING_DTYPE = np.float32


def get_openai_client() -> openai.OpenAI:
    if not settings.openai_configured:
        raise LLMConfigurationError("OpenAI API key is not configured")
    return openai.OpenAI(api_key=settings.openai_api_key)


def get_embedding(text: str) -> list[float]:
    response = get_openai_client().embeddings.create(
        model=settings.openai_embedding_model,
        input=text,
    )
    return list(response.data[0].embedding)


def encode_embedding(vector: Sequence[float]) -> bytes:
    return np.asarray(vector, dtype=EMBEDDING_DTYPE).tobytes()


def decode_embedding(blob: bytes) -> np.ndarray:
    return np.frombuffer(blob, dtype=EMBEDDING_DTYPE)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    vec_a = np.asarray(a, dtype=np.float64)
    vec_b = np.asarray(b, dtype=np.float64)
    denom = float(np.linalg.norm(vec_a) * np.linalg.norm(vec_b))
    if denom == 0.0:
        return 0.0
    return float(np.dot(vec_a, vec_b) / denom)
