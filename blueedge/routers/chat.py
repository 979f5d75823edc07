from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session, selectinload

from ..dependencies.db import get_db
from ..models.chats import Chat
from ..services.document_chat import DocumentChatError, DocumentNotFoundError, answer_document_question
from ..services.llm import LLMConfigurationError
from .documents import parse_document_id

logger = logging.getLogger(__name__)

router = APIRouter()


class ChatRequest(BaseModel):
    document_id: str = Field(alias="documentId", min_length=1)
    message: str = Field(min_length=1)


def serialize_chat(chat: Chat) -> Dict[str, Any]:
    return {
        "id": str(chat.id),
        "documentId": str(chat.document_id),
        "createdAt": chat.created_at.isoformat() if chat.created_at else None,
        "messages": [
            {
                "id": str(message.id),
                "role": message.role,
                "content": message.content,
                "createdAt": message.created_at.isoformat() if message.created_at else None,
            }
            for message in chat.messages
        ],
    }


@router.post("/chat")
def chat_with_document(payload: ChatRequest, request: Request, db: Session = Depends(get_db)):
    document_id = parse_document_id(payload.document_id)
    request.state.document_id = str(document_id)
    try:
        response = answer_document_question(db, document_id, payload.message)
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Document not found") from exc
    except LLMConfigurationError as exc:
        raise HTTPException(
            status_code=500,
            detail="OpenAI API key is not configured. Please add your API key to the .env file.",
        ) from exc
    except DocumentChatError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return {"response": response}


@router.get("/chat")
def chat_history(document_id: str = Query(..., alias="documentId"), db: Session = Depends(get_db)):
    chats = (
        db.query(Chat)
        .options(selectinload(Chat.messages))
        .filter(Chat.document_id == parse_document_id(document_id))
        .order_by(Chat.created_at.desc())
        .all()
    )
    return {"chats": [serialize_chat(chat) for chat in chats]}
