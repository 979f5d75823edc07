from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..dependencies.db import get_db
from ..models.documents import Document
from ..services.data_analysis import extract_and_analyze_data
from ..services.llm import LLMConfigurationError
from ..services.rag import is_council_tax_query, multi_document_rag

logger = logging.getLogger(__name__)

router = APIRouter()


class RagRequest(BaseModel):
    query: str = Field(min_length=1)
    limit: Optional[int] = Field(default=None, ge=1, le=100)
    perform_analysis: bool = Field(default=False, alias="performAnalysis")


@router.post("/rag")
def rag(payload: RagRequest, db: Session = Depends(get_db)):
    analysis_results = None
    if payload.perform_analysis or is_council_tax_query(payload.query):
        try:
            results = extract_and_analyze_data(db.query(Document).all())
            analysis_results = [result.to_dict() for result in results]
        except Exception:
            logger.exception("Error in data analysis; continuing without it")

    try:
        response = multi_document_rag(db, payload.query, payload.limit or 10)
    except LLMConfigurationError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Multi-document RAG failed")
        raise HTTPException(status_code=500, detail=str(exc) or "An error occurred during multi-document RAG") from exc

    return {"response": response, "analysisResults": analysis_results, "success": True}
