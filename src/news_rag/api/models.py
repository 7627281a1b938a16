"""
API Models

Pydantic request/response models for the session, chat and health endpoints.
Field names on the wire are camelCase (``sessionId``) to stay compatible
with the existing web client.

Presence and emptiness of chat fields are checked by the orchestrator, not
here, so that every path reports the same InvalidRequest error.
"""

from __future__ import annotations

from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field


class TurnOut(BaseModel):
    """
    One turn of a conversation history.
    """
    role: Literal["user", "assistant"]
    content: str


class SessionCreated(BaseModel):
    session_id: str = Field(..., alias="sessionId")

    model_config = ConfigDict(populate_by_name=True)


class ChatRequest(BaseModel):
    """
    Chat request payload.
    """
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    message: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ChatResponse(BaseModel):
    """
    Reply plus the full post-persistence history.
    """
    reply: str
    history: List[TurnOut]


class SessionDeleted(BaseModel):
    deleted: bool = True


class HealthStatus(BaseModel):
    status: Literal["ok", "starting", "failed"]
    corpus_ready: bool
    corpus_size: int
