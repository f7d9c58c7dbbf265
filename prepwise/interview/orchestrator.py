"""
Session orchestration.
Wires user intent (start, stop, mute) and provider callbacks to call
sessions, and connects finished sessions to the session store.
"""
import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from threading import RLock
from typing import Any, Callable, Dict, List, Optional, Union

from prepwise.interview.feedback import FeedbackGenerator
from prepwise.interview.questions import QuestionBank
from prepwise.interview.state import CallSession
from prepwise.memory.session_store import SessionStore, session_store
from prepwise.models.schemas import (
    CallState,
    FeedbackReport,
    SessionConfig,
    SessionRecord,
    SessionStatus,
    TranscriptEntry,
    User,
    UserResponse,
    VoiceEvent,
)
from prepwise.utils.config import config
from prepwise.utils.errors import (
    InvalidTransitionError,
    PersistenceError,
    SessionNotFoundError,
)
from prepwise.voice.provider import HttpVoiceProvider, VoiceCallProvider

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[str], VoiceCallProvider]


class SessionOrchestrator:
    """
    Top-level controller for interview sessions.
    Owns one CallSession per session id for the lifetime of the process.
    """

    def __init__(
        self,
        store: Optional[SessionStore] = None,
        provider_factory: Optional[ProviderFactory] = None,
        feedback_generator: Optional[FeedbackGenerator] = None,
        executor: Optional[Executor] = None,
    ):
        self.store = store or session_store
        self.provider_factory = provider_factory or HttpVoiceProvider
        self.feedback_generator = feedback_generator or FeedbackGenerator()
        self.executor = executor or ThreadPoolExecutor(
            max_workers=config.feedback.worker_threads,
            thread_name_prefix="feedback",
        )
        self._calls: Dict[str, CallSession] = {}
        self._lock = RLock()

    # ========================================
    # Session lifecycle
    # ========================================

    def start_session(
        self,
        session_config: Union[SessionConfig, Dict[str, Any]],
        user: Optional[User] = None,
    ) -> str:
        """
        Validate the configuration, select questions and persist the session.

        Args:
            session_config: A SessionConfig or raw input to validate
            user: Owner of the session, if known

        Returns:
            The new session id

        Raises:
            ConfigurationError: if the configuration is invalid
            PersistenceError: if the record could not be created
        """
        if not isinstance(session_config, SessionConfig):
            session_config = SessionConfig.from_input(session_config)

        questions = QuestionBank.select(session_config)
        try:
            session_id = self.store.create_session_record(
                session_config, questions, user.id if user else None
            )
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(
                f"Failed to create session record: {e}", operation="create_session_record"
            ) from e

        logger.info(
            f"Session {session_id} started: type={session_config.type.value}, "
            f"questions={len(questions)}"
        )
        return session_id

    def begin_call(
        self,
        session_id: str,
        user: Optional[User] = None,
        user_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Connect the voice call for a session.

        Calling again while CONNECTING/ACTIVE is a no-op. After a provider
        error the retry gets a fresh call session.

        Raises:
            SessionNotFoundError: unknown session
            InvalidTransitionError: the session already finished
            ProviderConnectionError: the provider could not connect
        """
        record = self._record(session_id, user)
        if record.status == SessionStatus.COMPLETED:
            raise InvalidTransitionError("begin call", CallState.FINISHED.value, session_id)

        with self._lock:
            call = self._calls.get(session_id)
            if call is not None and call.state in (CallState.CONNECTING, CallState.ACTIVE):
                return call.get_status()
            if call is not None and call.state == CallState.FINISHED:
                raise InvalidTransitionError("begin call", CallState.FINISHED.value, session_id)
            if call is None or call.last_error is not None:
                call = self._new_call(record)
                self._calls[session_id] = call

        name = user_name or (user.name if user else None) or config.sessions.default_user_name
        call.start(name)
        return call.get_status()

    def end_call(self, session_id: str, user: Optional[User] = None) -> Dict[str, Any]:
        """User disconnect. Idempotent once FINISHED."""
        self._record(session_id, user)
        call = self._require_call(session_id, "end call")
        call.disconnect()
        return call.get_status()

    def mute(self, session_id: str, user: Optional[User] = None) -> bool:
        self._record(session_id, user)
        return self._require_call(session_id, "mute").mute()

    def unmute(self, session_id: str, user: Optional[User] = None) -> bool:
        self._record(session_id, user)
        return self._require_call(session_id, "unmute").unmute()

    def handle_provider_event(self, session_id: str, event: VoiceEvent) -> Dict[str, Any]:
        """
        Feed a provider callback to the session's call.

        Events whose attempt id does not match the current call come from
        an earlier call of the same session and are dropped.

        Raises:
            SessionNotFoundError: no call exists for this session
        """
        with self._lock:
            call = self._calls.get(session_id)
        if call is None:
            logger.warning(f"Provider event {event.type} for unknown call {session_id}")
            raise SessionNotFoundError(session_id)
        if event.attempt_id != call.attempt_id:
            logger.info(
                f"Session {session_id}: dropping {event.type} from stale call attempt "
                f"{event.attempt_id} (current {call.attempt_id})"
            )
            return {**call.get_status(), "ignored": True}
        call.handle_event(event)
        return {**call.get_status(), "ignored": False}

    # ========================================
    # Queries
    # ========================================

    def get_transcript(self, session_id: str, user: Optional[User] = None) -> List[TranscriptEntry]:
        self._record(session_id, user)
        call = self.get_call(session_id)
        return call.transcript if call else []

    def get_report(self, session_id: str, user: Optional[User] = None) -> Optional[FeedbackReport]:
        """The session's report, or None while it is pending."""
        record = self._record(session_id, user)
        call = self.get_call(session_id)
        if call is not None and call.report is not None:
            return call.report
        return record.report

    def get_status(self, session_id: str, user: Optional[User] = None) -> Dict[str, Any]:
        record = self._record(session_id, user)
        call = self.get_call(session_id)
        if call is not None:
            status = call.get_status()
        else:
            finished = record.status == SessionStatus.COMPLETED
            status = {
                "session_id": session_id,
                "call_state": (CallState.FINISHED if finished else CallState.INACTIVE).value,
                "interview_type": record.config.type.value,
                "total_questions": len(record.questions),
                "report_ready": record.report is not None,
                "results_persisted": finished,
            }
        status["status"] = record.status.value
        return status

    def repeat_last_question(self, session_id: str, user: Optional[User] = None) -> Optional[str]:
        """Last assistant utterance, only while the call is live."""
        self._record(session_id, user)
        call = self.get_call(session_id)
        if call is None or call.state != CallState.ACTIVE:
            return None
        return call.last_assistant_message()

    def retry_persist(self, session_id: str, user: Optional[User] = None) -> bool:
        """Re-write a generated report whose first write failed."""
        self._record(session_id, user)
        call = self._require_call(session_id, "store results")
        return call.retry_persist()

    def list_sessions(self, user: Optional[User] = None) -> List[SessionRecord]:
        return self.store.list_session_records(user.id if user else None)

    def get_call(self, session_id: str) -> Optional[CallSession]:
        with self._lock:
            return self._calls.get(session_id)

    @property
    def active_call_count(self) -> int:
        with self._lock:
            return sum(
                1 for c in self._calls.values()
                if c.state in (CallState.CONNECTING, CallState.ACTIVE)
            )

    def shutdown(self) -> None:
        self.executor.shutdown(wait=False)

    # ========================================
    # Internals
    # ========================================

    def _record(self, session_id: str, user: Optional[User]) -> SessionRecord:
        record = self.store.read_session_record(session_id)
        if record is None:
            raise SessionNotFoundError(session_id)
        if user is not None and record.user_id is not None and record.user_id != user.id:
            # Do not reveal other users' sessions
            raise SessionNotFoundError(session_id)
        return record

    def _require_call(self, session_id: str, action: str) -> CallSession:
        call = self.get_call(session_id)
        if call is None:
            raise InvalidTransitionError(action, CallState.INACTIVE.value, session_id)
        return call

    def _new_call(self, record: SessionRecord) -> CallSession:
        return CallSession(
            session_id=record.id,
            interview_type=record.config.type,
            questions=record.questions,
            provider=self.provider_factory(record.id),
            feedback_generator=self.feedback_generator,
            results_sink=self._results_sink(record.id),
            executor=self.executor,
            session_config=record.config,
        )

    def _results_sink(self, session_id: str) -> Callable[[FeedbackReport, List[UserResponse]], None]:
        def write(report: FeedbackReport, user_responses: List[UserResponse]) -> None:
            try:
                self.store.write_session_results(session_id, report, user_responses)
            except PersistenceError:
                raise
            except Exception as e:
                raise PersistenceError(
                    f"Failed to store results: {e}",
                    session_id=session_id,
                    operation="write_session_results",
                ) from e
        return write
