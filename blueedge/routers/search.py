from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..dependencies.db import get_db
from ..services.llm import LLMConfigurationError
from ..services.semantic_search import UnsupportedActionError, run_search_action, semantic_search

logger = logging.getLogger(__name__)

router = APIRouter()


class SearchActionRequest(BaseModel):
    action: str


@router.get("/search")
def search(
    query: str = Query(..., min_length=1),
    limit: int = Query(default=5, ge=1, le=100),
    db: Session = Depends(get_db),
):
    try:
        results = semantic_search(db, query, limit)
    except LLMConfigurationError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Semantic search failed")
        raise HTTPException(status_code=500, detail="Failed to perform semantic search") from exc
    return {"results": [result.to_dict() for result in results]}


@router.post("/search")
def search_action(payload: SearchActionRequest, db: Session = Depends(get_db)):
    try:
        processed = run_search_action(db, payload.action)
    except UnsupportedActionError as exc:
        raise HTTPException(status_code=400, detail="Invalid action") from exc
    except LLMConfigurationError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Search action %s failed", payload.action)
        raise HTTPException(status_code=500, detail="Failed to process documents") from exc
    return {"success": True, "processed": processed, "message": f"Processed {processed} documents for vector search"}
