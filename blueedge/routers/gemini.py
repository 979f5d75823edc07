from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..config import settings
from ..dependencies.db import get_db
from ..services.llm import LLMConfigurationError, LLMError
from ..services.rag import gemini_rag

logger = logging.getLogger(__name__)

router = APIRouter()


class GeminiRequest(BaseModel):
    query: str = Field(min_length=1)
    limit: Optional[int] = Field(default=None, ge=1, le=100)


@router.post("/gemini")
def gemini(payload: GeminiRequest, db: Session = Depends(get_db)):
    try:
        return gemini_rag(db, payload.query, payload.limit or 15)
    except LLMConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except LLMError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Gemini RAG failed")
        raise HTTPException(status_code=500, detail=str(exc) or "An error occurred during Gemini RAG") from exc


@router.get("/gemini/check")
def gemini_check():
    return {
        "configured": settings.gemini_configured,
        "message": "Gemini API key is configured" if settings.gemini_api_key else "Gemini API key is not configured",
    }
