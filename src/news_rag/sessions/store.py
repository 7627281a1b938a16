"""
Session Store

The canonical ordered turn log for each chat session, kept in a backing store
with an inactivity TTL.

Design choices
--------------
- Session ids are random uuid4 hex strings; nothing is written until the
  first append (lazy creation).
- Turns are stored as JSON records in an append-only list.
- append_pair() writes both turns and refreshes the expiry through ONE atomic
  backend operation, so a session never holds an orphaned user turn and
  concurrent pairs never interleave. The same operation returns the
  resulting history, so the write and the read that reports it cannot diverge. No client-side locking is involved;
  ordering is the backend's job.
- Expiry is delegated to the backend's own TTL mechanism; there is no reaper.
- A record of the wrong shape (left by an incompatible writer) is handled by
  an explicit policy: "reset" empties it and logs a warning, "fail" raises
  StoreFailure.
"""

from __future__ import annotations

import logging
import uuid
from typing import List, Literal, Sequence

from pydantic import ValidationError

from .backends import SessionBackend, SessionShapeError
from .models import Turn
from ..core.errors import StoreFailure

logger = logging.getLogger("newsrag.sessions")

ShapePolicy = Literal["reset", "fail"]


class SessionStore:
    """
    Append-only, TTL-bound turn log per session.
    """

    def __init__(
        self,
        backend: SessionBackend,
        ttl_seconds: int = 3600,
        key_prefix: str = "session:",
        shape_policy: ShapePolicy = "reset",
    ) -> None:
        """
        Parameters
        ----------
        backend : SessionBackend
            Backing store providing atomic append-with-expiry.

        ttl_seconds : int
            Inactivity window refreshed by every append.

        key_prefix : str
            Prefix joined to the session id to form the backend key.

        shape_policy : "reset" | "fail"
            What to do when a session's record is not a turn list.
        """
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if shape_policy not in ("reset", "fail"):
            raise ValueError(f"Unknown shape policy: {shape_policy!r}")

        self._backend = backend
        self._ttl_seconds = ttl_seconds
        self._key_prefix = key_prefix
        self._shape_policy = shape_policy

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    def _key(self, session_id: str) -> str:
        return f"{self._key_prefix}{session_id}"

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    def create(self) -> str:
        """
        Allocate a new, globally unique session id. Writes nothing.
        """
        return uuid.uuid4().hex

    async def append(self, session_id: str, turn: Turn) -> List[Turn]:
        """
        Append one turn and refresh the session's expiry.

        Returns the session's history including the new turn.
        """
        return await self._append(session_id, [turn])

    async def append_pair(self, session_id: str, user_turn: Turn, bot_turn: Turn) -> List[Turn]:
        """
        Append a user turn and its reply, and refresh the expiry, as one
        indivisible operation.

        Either both turns are stored and the expiry refreshed, or nothing
        changes. The returned history is read inside the same operation, so a
        caller never has to re-read the session after a successful write.

        Returns
        -------
        list of Turn
            The whole history, oldest first, ending with the two new turns.

        Raises
        ------
        StoreFailure
            If the backend operation fails, or the record has the wrong
            shape under the "fail" policy, or an existing turn record is
            unreadable (nothing is written in that case).
        """
        if user_turn.role != "user" or bot_turn.role != "assistant":
            raise ValueError("append_pair expects a user turn followed by an assistant turn")
        return await self._append(session_id, [user_turn, bot_turn])

    async def get_history(self, session_id: str) -> List[Turn]:
        """
        Return the session's turns, oldest first.

        An absent or expired session yields an empty list.
        """
        key = self._key(session_id)
        try:
            records = await self._backend.read(key)
        except SessionShapeError as exc:
            if self._shape_policy == "fail":
                raise StoreFailure(str(exc)) from exc
            logger.warning(
                "Session %s holds %s instead of a turn list; treating history as empty",
                session_id,
                exc.found,
            )
            return []

        return self._parse(session_id, records)

    async def delete(self, session_id: str) -> bool:
        """
        Remove all state for the session.

        Returns
        -------
        bool
            True if a record existed. Deleting twice is not an error.
        """
        return await self._backend.delete(self._key(session_id))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _parse(self, session_id: str, records: Sequence[str]) -> List[Turn]:
        try:
            return [Turn.model_validate_json(record) for record in records]
        except ValidationError as exc:
            raise StoreFailure(
                f"Session {session_id} contains an unreadable turn record"
            ) from exc

    async def _append(self, session_id: str, turns: Sequence[Turn]) -> List[Turn]:
        key = self._key(session_id)
        records = [turn.model_dump_json() for turn in turns]

        try:
            result = await self._backend.append(
                key,
                records,
                self._ttl_seconds,
                reset_on_mismatch=self._shape_policy == "reset",
                check=lambda existing: self._parse(session_id, existing),
            )
        except SessionShapeError as exc:
            logger.error(
                "Refusing to append to session %s: record holds %s",
                session_id,
                exc.found,
            )
            raise StoreFailure(str(exc)) from exc

        if result.reset_from is not None:
            logger.warning(
                "Session %s held %s instead of a turn list; reset it before appending",
                session_id,
                result.reset_from,
            )
        return self._parse(session_id, result.records)
