"""
Chat Orchestrator: Retrieval-Augmented Conversation Lifecycle

One chat call walks through:

    validate -> retrieve -> assemble -> generate -> post-process
             -> persist (append_pair, which returns the full history)

Failure semantics
-----------------
- Validation happens before any side effect (InvalidRequestError).
- NotReadyError from the index or a capability propagates unchanged so the
  caller can retry; nothing is persisted.
- Any other failure is logged with full detail and re-raised as a generic
  InternalError that carries no internals.
- Persistence is the last step of all and is a single atomic append that
  also reports the resulting history, so a failed call leaves the session
  exactly as it was and a successful write is never followed by a failure.
- No automatic retries.

The orchestrator holds no mutable state of its own and is shared by all
concurrent requests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from .context import ContextAssembler, build_prompt
from ..core.errors import (
    InternalError,
    InvalidRequestError,
    NewsRagError,
    NotFoundError,
    NotReadyError,
    GenerationFailure,
)
from ..corpus.index import CorpusIndex
from ..llm.client import GenerationEngine
from ..llm.postprocess import clean_reply
from ..sessions.models import Turn
from ..sessions.store import SessionStore

logger = logging.getLogger("newsrag.chat")

MAX_SESSION_ID_LENGTH = 128


@dataclass(frozen=True)
class ChatResult:
    reply: str
    history: List[Turn]


def _require_text(value: Optional[str], field: str) -> str:
    if value is None or not isinstance(value, str) or not value.strip():
        raise InvalidRequestError(f"{field} is required and must be non-empty")
    return value.strip()


class ChatOrchestrator:
    """
    Composes corpus retrieval, context assembly, generation and the session
    log into the request lifecycle.
    """

    def __init__(
        self,
        index: CorpusIndex,
        generator: GenerationEngine,
        sessions: SessionStore,
        assembler: Optional[ContextAssembler] = None,
        top_k: int = 3,
        max_sentences_per_article: int = 3,
        max_new_tokens: int = 256,
    ) -> None:
        self.index = index
        self.generator = generator
        self.sessions = sessions
        self.assembler = assembler or ContextAssembler()
        self.top_k = top_k
        self.max_sentences_per_article = max_sentences_per_article
        self.max_new_tokens = max_new_tokens

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    async def chat(self, session_id: Optional[str], message: Optional[str]) -> ChatResult:
        """
        Answer ``message`` within ``session_id`` and return the full history.

        Raises
        ------
        InvalidRequestError
            Missing or empty session id or message.

        NotReadyError
            Index still building, or a capability warming up.

        InternalError
            Anything else; details are logged, not returned.
        """
        session_id = _require_text(session_id, "sessionId")
        message = _require_text(message, "message")
        if len(session_id) > MAX_SESSION_ID_LENGTH:
            raise InvalidRequestError("sessionId is too long")

        stage = "retrieving"
        try:
            hits = await self.index.query(message, self.top_k)
            logger.debug("Session %s: retrieved %d hits", session_id, len(hits))

            stage = "assembling"
            context = self.assembler.build(hits, self.max_sentences_per_article)
            prompt = build_prompt(context, message)

            stage = "generating"
            raw_reply = await self.generator.generate(prompt, self.max_new_tokens)

            stage = "post-processing"
            reply = clean_reply(raw_reply or "")
            if not reply:
                raise GenerationFailure("Generation returned an empty reply")

            stage = "persisting"
            history = await self.sessions.append_pair(
                session_id,
                Turn.user(message),
                Turn.assistant(reply),
            )
        except NotReadyError:
            logger.info("Session %s: not ready while %s", session_id, stage)
            raise
        except Exception as exc:
            logger.error(
                "Session %s: chat failed while %s (%s)",
                session_id,
                stage,
                type(exc).__name__,
                exc_info=exc,
            )
            raise InternalError("Chat request failed") from exc

        logger.info("Session %s: chat completed, %d turns", session_id, len(history))
        return ChatResult(reply=reply, history=history)

    # ------------------------------------------------------------------
    # Session operations
    # ------------------------------------------------------------------

    async def create_session(self) -> str:
        return self.sessions.create()

    async def history(self, session_id: str) -> List[Turn]:
        try:
            return await self.sessions.get_history(session_id)
        except NewsRagError as exc:
            logger.error("Session %s: history read failed", session_id, exc_info=exc)
            raise InternalError("History lookup failed") from exc

    async def delete_session(self, session_id: str) -> None:
        """
        Raises
        ------
        NotFoundError
            If no record existed for the session.
        """
        try:
            existed = await self.sessions.delete(session_id)
        except NewsRagError as exc:
            logger.error("Session %s: delete failed", session_id, exc_info=exc)
            raise InternalError("Session delete failed") from exc

        if not existed:
            raise NotFoundError("Session not found")
        logger.info("Session %s deleted", session_id)
