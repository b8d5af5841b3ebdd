"""Session progress stores.

Progress is stored whole-value per session id, in the persisted layout::

    {"questionnaire": {"questionnaireId": ..., "answers": [{"questionCode": ..., "value": ...}]}}

Every stored value carries an integer ``version``. Writers pass the version
they read as ``expected_version`` (0 when the session did not exist) and a
mismatch raises :class:`~question_flow.errors.SessionConflictError`, so two
requests racing on one session cannot silently overwrite each other.
"""
from __future__ import annotations

import copy
import json
import os
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from loguru import logger
from pydantic import ValidationError

from .errors import SessionConflictError, SessionStoreError
from .models import SessionState
from .neo import Neo4jClient

SESSION_STORE = os.getenv("SESSION_STORE", "memory")


@dataclass(frozen=True)
class StoredSession:
    state: SessionState
    version: int


class SessionStore(ABC):
    """Key/value contract the engine relies on."""

    @abstractmethod
    def get(self, session_id: str) -> Optional[StoredSession]:
        """Return the stored progress or None when the session has none."""

    @abstractmethod
    def set(self, session_id: str, state: SessionState, expected_version: Optional[int] = None) -> int:
        """Replace the stored progress; return the new version.

        ``expected_version=None`` writes unconditionally.
        """

    @abstractmethod
    def delete(self, session_id: str, expected_version: Optional[int] = None) -> None:
        """Drop the stored progress (no-op when absent)."""


def _parse_state(session_id: str, raw: Any) -> SessionState:
    try:
        return SessionState.model_validate(raw)
    except ValidationError as exc:
        raise SessionStoreError(f"Stored progress for session {session_id} is unreadable: {exc}") from exc


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------


class InMemorySessionStore(SessionStore):
    """Process-local store; values are deep-copied in and out."""

    def __init__(self) -> None:
        self._sessions: Dict[str, Tuple[Dict[str, Any], int]] = {}
        self._lock = threading.RLock()

    def _check_version(self, session_id: str, expected_version: Optional[int]) -> int:
        current = self._sessions.get(session_id)
        current_version = current[1] if current else 0
        if expected_version is not None and expected_version != current_version:
            raise SessionConflictError(
                f"Session {session_id} is at version {current_version}, expected {expected_version}"
            )
        return current_version

    def get(self, session_id: str) -> Optional[StoredSession]:
        with self._lock:
            current = self._sessions.get(session_id)
            if current is None:
                return None
            raw, version = current
            raw = copy.deepcopy(raw)
        return StoredSession(state=_parse_state(session_id, raw), version=version)

    def set(self, session_id: str, state: SessionState, expected_version: Optional[int] = None) -> int:
        raw = state.model_dump(mode="json")
        with self._lock:
            version = self._check_version(session_id, expected_version) + 1
            self._sessions[session_id] = (raw, version)
        logger.debug("Session {} saved at version {}", session_id, version)
        return version

    def delete(self, session_id: str, expected_version: Optional[int] = None) -> None:
        with self._lock:
            self._check_version(session_id, expected_version)
            self._sessions.pop(session_id, None)
        logger.debug("Session {} cleared", session_id)


# ---------------------------------------------------------------------------
# Neo4j store
# ---------------------------------------------------------------------------

_GET_SESSION = """
MATCH (s:QuestionnaireSession {sessionId: $sessionId})
WHERE s.state IS NOT NULL
RETURN s.state AS state, s.version AS version
"""

# The lockedAt write takes the node lock before the version is compared
_SET_SESSION = """
MERGE (s:QuestionnaireSession {sessionId: $sessionId})
ON CREATE SET s.version = 0
SET s.lockedAt = timestamp()
WITH s, coalesce(s.version, 0) AS current
WHERE $expected IS NULL OR current = $expected
SET s.state = $state, s.version = current + 1, s.updatedAt = datetime()
RETURN s.version AS version
"""

_DELETE_SESSION = """
OPTIONAL MATCH (s:QuestionnaireSession {sessionId: $sessionId})
WITH s, coalesce(s.version, 0) AS current
WHERE $expected IS NULL OR current = $expected
FOREACH (doomed IN CASE WHEN s IS NULL THEN [] ELSE [1] END | DETACH DELETE s)
RETURN current
"""


class Neo4jSessionStore(SessionStore):
    """Stores progress as a JSON string on ``(:QuestionnaireSession)`` nodes."""

    def __init__(self, client: Any = None) -> None:
        self._client = client or Neo4jClient()

    def get(self, session_id: str) -> Optional[StoredSession]:
        rows = self._client.run_read(_GET_SESSION, {"sessionId": session_id})
        if not rows:
            return None
        row = rows[0]
        try:
            raw = json.loads(row["state"])
        except (TypeError, ValueError) as exc:
            raise SessionStoreError(f"Stored progress for session {session_id} is not JSON") from exc
        return StoredSession(state=_parse_state(session_id, raw), version=int(row["version"] or 0))

    def set(self, session_id: str, state: SessionState, expected_version: Optional[int] = None) -> int:
        rows = self._client.run_write(
            _SET_SESSION,
            {
                "sessionId": session_id,
                "state": json.dumps(state.model_dump(mode="json")),
                "expected": expected_version,
            },
        )
        if not rows:
            raise SessionConflictError(f"Session {session_id} changed since version {expected_version}")
        return int(rows[0]["version"])

    def delete(self, session_id: str, expected_version: Optional[int] = None) -> None:
        rows = self._client.run_write(_DELETE_SESSION, {"sessionId": session_id, "expected": expected_version})
        if not rows:
            raise SessionConflictError(f"Session {session_id} changed since version {expected_version}")

    def close(self) -> None:
        self._client.close()


def create_store(kind: Optional[str] = None) -> SessionStore:
    """Build the store selected by *kind* (defaults to ``SESSION_STORE``)."""
    kind = (kind or SESSION_STORE).strip().lower()
    if kind == "memory":
        return InMemorySessionStore()
    if kind == "neo4j":
        return Neo4jSessionStore()
    raise SessionStoreError(f"Unknown session store {kind!r}; expected 'memory' or 'neo4j'")
