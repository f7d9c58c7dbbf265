"""
Session record persistence.
The engine only sees the SessionStore interface; an in-memory store ships
for single-process deployments and tests.
"""
import uuid
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from threading import RLock
from typing import Any, Dict, List, Optional, Sequence

from prepwise.models.schemas import (
    FeedbackReport,
    Question,
    SessionConfig,
    SessionRecord,
    SessionStatus,
    UserResponse,
)
from prepwise.utils.errors import PersistenceError

logger = logging.getLogger(__name__)


class SessionStore(ABC):
    """Persistence collaborator for session records."""

    @abstractmethod
    def create_session_record(
        self,
        session_config: SessionConfig,
        questions: Sequence[Question],
        user_id: Optional[str] = None,
    ) -> str:
        """Persist a new session and return its id."""

    @abstractmethod
    def read_session_record(self, session_id: str) -> Optional[SessionRecord]:
        """Return the record, or None if it does not exist."""

    @abstractmethod
    def write_session_results(
        self,
        session_id: str,
        report: FeedbackReport,
        user_responses: Sequence[UserResponse] = (),
    ) -> None:
        """Attach the final report and mark the session completed."""

    @abstractmethod
    def list_session_records(self, user_id: Optional[str] = None) -> List[SessionRecord]:
        """All records for a user, newest first."""

    def get_stats(self) -> Dict[str, Any]:
        return {}


class InMemorySessionStore(SessionStore):
    """
    Thread-safe in-memory store.
    Records are copied on the way in and out so callers never share state.
    """

    def __init__(self):
        self._records: Dict[str, SessionRecord] = {}
        self._lock = RLock()

    def create_session_record(
        self,
        session_config: SessionConfig,
        questions: Sequence[Question],
        user_id: Optional[str] = None,
    ) -> str:
        session_id = f"session-{uuid.uuid4().hex[:12]}"
        record = SessionRecord(
            id=session_id,
            user_id=user_id,
            config=session_config,
            questions=list(questions),
        )
        with self._lock:
            self._records[session_id] = record
        logger.info(f"Created session {session_id} with {len(questions)} questions")
        return session_id

    def read_session_record(self, session_id: str) -> Optional[SessionRecord]:
        with self._lock:
            record = self._records.get(session_id)
        return record.model_copy(deep=True) if record else None

    def write_session_results(
        self,
        session_id: str,
        report: FeedbackReport,
        user_responses: Sequence[UserResponse] = (),
    ) -> None:
        with self._lock:
            record = self._records.get(session_id)
            if record is None:
                raise PersistenceError(
                    f"Cannot write results for unknown session {session_id}",
                    session_id=session_id,
                    operation="write_session_results",
                )
            self._records[session_id] = record.model_copy(update={
                "status": SessionStatus.COMPLETED,
                "completed_at": datetime.now(),
                "report": report,
                "user_responses": list(user_responses),
            })
        logger.info(f"Stored results for session {session_id} (score={report.score})")

    def list_session_records(self, user_id: Optional[str] = None) -> List[SessionRecord]:
        with self._lock:
            records = [
                r.model_copy(deep=True) for r in self._records.values()
                if user_id is None or r.user_id == user_id
            ]
        return sorted(records, key=lambda r: r.created_at, reverse=True)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def get_stats(self) -> Dict[str, Any]:
        """Counts by status, for the health endpoint."""
        with self._lock:
            records = list(self._records.values())
        return {
            "total_sessions": len(records),
            "completed_sessions": sum(1 for r in records if r.status == SessionStatus.COMPLETED),
        }


# Global instance
session_store = InMemorySessionStore()
