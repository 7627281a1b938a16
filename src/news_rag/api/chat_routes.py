"""
Chat Routes

HTTP surface over the ChatOrchestrator:

- POST   /session               allocate a session id
- POST   /chat                  ask a question within a session
- GET    /history/{session_id}  full turn log, possibly empty
- DELETE /session/{session_id}  drop a session (404 if nothing existed)

Core errors raised here are rendered by the handlers registered in main.py
(400 invalid_request, 404 not_found, 503 not_ready, generic 500).
"""

from typing import Annotated, List

from fastapi import APIRouter, Depends, status

from .dependencies import get_orchestrator
from .models import (
    ChatRequest,
    ChatResponse,
    SessionCreated,
    SessionDeleted,
    TurnOut,
)
from ..chat.orchestrator import ChatOrchestrator
from ..sessions.models import Turn

router = APIRouter(tags=["chat"])

Orchestrator = Annotated[ChatOrchestrator, Depends(get_orchestrator)]


def _to_wire(history: List[Turn]) -> List[TurnOut]:
    return [TurnOut(role=t.role, content=t.content) for t in history]


@router.post(
    "/session",
    response_model=SessionCreated,
    response_model_by_alias=True,
    summary="Create a chat session",
)
async def create_session(orchestrator: Orchestrator) -> SessionCreated:
    return SessionCreated(session_id=await orchestrator.create_session())


@router.post(
    "/chat",
    response_model=ChatResponse,
    summary="Ask a question about the news corpus",
    status_code=status.HTTP_200_OK,
)
async def chat(req: ChatRequest, orchestrator: Orchestrator) -> ChatResponse:
    """
    Retrieve relevant articles, generate a reply, append the user/assistant
    pair to the session and return the reply with the complete history.
    """
    result = await orchestrator.chat(req.session_id, req.message)
    return ChatResponse(reply=result.reply, history=_to_wire(result.history))


@router.get(
    "/history/{session_id}",
    response_model=List[TurnOut],
    summary="Fetch a session's history",
)
async def get_history(session_id: str, orchestrator: Orchestrator) -> List[TurnOut]:
    return _to_wire(await orchestrator.history(session_id))


@router.delete(
    "/session/{session_id}",
    response_model=SessionDeleted,
    summary="Delete a session",
)
async def delete_session(session_id: str, orchestrator: Orchestrator) -> SessionDeleted:
    await orchestrator.delete_session(session_id)
    return SessionDeleted()
