"""
Call session state machine.
Reconciles voice provider callbacks and user actions for one session,
accumulates the transcript, and triggers feedback generation exactly once.
"""
import logging
import threading
import uuid
from concurrent.futures import Executor, Future
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from prepwise.interview.agents import build_agent_config, build_variables
from prepwise.interview.feedback import FeedbackGenerator, pair_responses
from prepwise.models.schemas import (
    CallState,
    FeedbackReport,
    InterviewType,
    Question,
    SessionConfig,
    TranscriptEntry,
    TranscriptRole,
    UserResponse,
    VoiceEvent,
)
from prepwise.utils.errors import (
    InvalidTransitionError,
    PersistenceError,
    ProviderConnectionError,
)
from prepwise.voice.provider import VoiceCallProvider

logger = logging.getLogger(__name__)

# (session, change) where change is "state", "transcript", "speaking" or "report"
Listener = Callable[["CallSession", str], None]
ResultsSink = Callable[[FeedbackReport, List[UserResponse]], None]


class CallSession:
    """
    Lifecycle of a single voice call.

    INACTIVE -> CONNECTING -> ACTIVE -> FINISHED. An error event drops a
    live call back to INACTIVE; FINISHED is terminal. All transitions happen
    under one lock; provider calls, feedback generation and listener
    callbacks run outside it.
    """

    def __init__(
        self,
        session_id: str,
        interview_type: InterviewType,
        questions: Sequence[Question],
        provider: VoiceCallProvider,
        feedback_generator: Optional[FeedbackGenerator] = None,
        results_sink: Optional[ResultsSink] = None,
        executor: Optional[Executor] = None,
        session_config: Optional[SessionConfig] = None,
        attempt_id: Optional[str] = None,
    ):
        """
        Args:
            session_id: Id of the owning session record
            interview_type: Selects the agent profile and report metrics
            questions: The session's question set, embedded in the agent prompt
            provider: Voice provider control surface for this call
            feedback_generator: Report generator (defaults to the global LLM client)
            results_sink: Called once with the final report
            executor: Runs report generation; None runs it inline
            session_config: Original configuration, for agent variables
            attempt_id: Tags provider events for this call (generated if omitted)
        """
        self.session_id = session_id
        self.attempt_id = attempt_id or uuid.uuid4().hex[:12]
        self.interview_type = InterviewType(interview_type)
        self.questions = tuple(questions)
        self.session_config = session_config
        self.provider = provider
        self.feedback_generator = feedback_generator or FeedbackGenerator()
        self.results_sink = results_sink
        self.executor = executor

        self._lock = threading.Lock()
        self._persist_lock = threading.Lock()
        self._listeners: List[Listener] = []

        self._state = CallState.INACTIVE
        self._transcript: List[TranscriptEntry] = []
        self._feedback_started = False
        self._provider_stopped = False

        self.call_id: Optional[str] = None
        self.start_time: Optional[datetime] = None
        self.end_time: Optional[datetime] = None
        self.last_error: Optional[str] = None

        # UI indicators
        self.is_speaking = False
        self.is_muted = False
        self.last_message = ""
        self.partial_transcript = ""
        self.is_generating_feedback = False

        # Results
        self.user_responses: List[UserResponse] = []
        self.persisted = False
        self.persist_error: Optional[PersistenceError] = None
        self._report: Optional[FeedbackReport] = None
        self._report_future: Optional[Future] = None

    # ========================================
    # Read access
    # ========================================

    @property
    def state(self) -> CallState:
        return self._state

    @property
    def transcript(self) -> List[TranscriptEntry]:
        with self._lock:
            return list(self._transcript)

    @property
    def report(self) -> Optional[FeedbackReport]:
        return self._report

    @property
    def feedback_started(self) -> bool:
        return self._feedback_started

    def last_assistant_message(self) -> Optional[str]:
        """The most recent thing the AI counterpart said, for 'repeat question'."""
        with self._lock:
            for entry in reversed(self._transcript):
                if entry.role == TranscriptRole.ASSISTANT:
                    return entry.content
        return None

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, change: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(self, change)
            except Exception:
                logger.exception(f"Listener failed on '{change}' for session {self.session_id}")

    # ========================================
    # User actions
    # ========================================

    def start(self, user_name: str) -> Optional[str]:
        """
        INACTIVE -> CONNECTING, then ask the provider to connect.

        The connect request is made without holding the lock, so provider
        events (or a user disconnect) can be processed while it is in flight.

        Returns:
            Provider call id, or None if the call finished before connect failed

        Raises:
            InvalidTransitionError: if the call is not INACTIVE
            ProviderConnectionError: if the provider could not connect
        """
        with self._lock:
            if self._state != CallState.INACTIVE:
                raise InvalidTransitionError("start call", self._state.value, self.session_id)
            self._state = CallState.CONNECTING
            self._transcript = []
            self.last_message = ""
            self.last_error = None
        logger.info(f"Session {self.session_id}: INACTIVE -> CONNECTING")
        self._notify("state")

        agent_config = build_agent_config(self.interview_type, self.questions)
        variables = build_variables(user_name, self.session_config)

        try:
            call_id = self.provider.connect(agent_config, variables, attempt_id=self.attempt_id)
        except ProviderConnectionError as e:
            if not self._fail(e.message):
                return self._connect_abandoned(e)
            raise
        except Exception as e:
            error = ProviderConnectionError(f"Voice provider connect failed: {e}", operation="connect")
            if not self._fail(error.message):
                return self._connect_abandoned(error)
            raise error from e

        with self._lock:
            self.call_id = call_id
            orphaned = self._state in (CallState.FINISHED, CallState.INACTIVE) and not self._provider_stopped
            state = self._state

        if orphaned:
            # Hung up or failed while we were connecting; close the call we just opened
            logger.info(f"Session {self.session_id}: {state.value} during connect, stopping call {call_id}")
            self._stop_provider()
        return call_id

    def disconnect(self) -> bool:
        """
        User hang-up. Valid from CONNECTING or ACTIVE.

        Returns:
            True if this call caused the FINISHED transition
        """
        return self._finish("disconnect", stop_provider=True)

    def mute(self) -> bool:
        return self._set_muted(True)

    def unmute(self) -> bool:
        return self._set_muted(False)

    def toggle_mute(self) -> bool:
        return self._set_muted(not self.is_muted)

    def _set_muted(self, muted: bool) -> bool:
        with self._lock:
            if self._state != CallState.ACTIVE or self.is_muted == muted:
                return False
        if muted:
            self.provider.mute()
        else:
            self.provider.unmute()
        with self._lock:
            self.is_muted = muted
        return True

    # ========================================
    # Provider events
    # ========================================

    def handle_event(self, event: VoiceEvent) -> None:
        """Dispatch a provider callback."""
        if event.type == "call-start":
            self.on_call_start()
        elif event.type == "call-end":
            self.on_call_end()
        elif event.type == "message":
            self.on_message(event)
        elif event.type == "speech-start":
            self.on_speech(True)
        elif event.type == "speech-end":
            self.on_speech(False)
        elif event.type == "error":
            self.on_error(event.error or "Voice provider error")
        else:
            logger.debug(f"Session {self.session_id}: ignoring unknown event {event.type}")

    def on_call_start(self) -> bool:
        with self._lock:
            if self._state != CallState.CONNECTING:
                logger.info(f"Session {self.session_id}: call-start ignored in {self._state.value}")
                return False
            self._state = CallState.ACTIVE
            self.start_time = datetime.now()
        logger.info(f"Session {self.session_id}: CONNECTING -> ACTIVE")
        self._notify("state")
        return True

    def on_call_end(self) -> bool:
        return self._finish("call-end", stop_provider=False)

    def on_message(self, event: VoiceEvent) -> bool:
        """
        Append final transcripts while ACTIVE. Partials only feed the live indicator.

        Returns:
            True if a transcript entry was appended
        """
        with self._lock:
            if self._state != CallState.ACTIVE:
                return False
            if event.message_type != "transcript":
                return False
            if not event.is_final_transcript:
                self.partial_transcript = event.transcript or ""
                return False
            if event.role is None or event.transcript is None:
                logger.warning(f"Session {self.session_id}: final transcript without role/text dropped")
                return False
            entry = TranscriptEntry(role=event.role, content=event.transcript)
            self._transcript.append(entry)
            self.last_message = entry.content
            self.partial_transcript = ""
        self._notify("transcript")
        return True

    def on_speech(self, speaking: bool) -> None:
        with self._lock:
            if self._state != CallState.ACTIVE or self.is_speaking == speaking:
                return
            self.is_speaking = speaking
        self._notify("speaking")

    def on_error(self, message: str) -> None:
        logger.error(f"Session {self.session_id}: voice provider error: {message}")
        self._fail(message)

    # ========================================
    # Transitions
    # ========================================

    def _fail(self, message: str) -> bool:
        """Drop a live call to INACTIVE. Returns False once FINISHED."""
        with self._lock:
            if self._state == CallState.FINISHED:
                logger.info(f"Session {self.session_id}: error after FINISHED ignored")
                return False
            previous = self._state
            self._state = CallState.INACTIVE
            self.last_error = message
            self.is_speaking = False
            self.is_muted = False
        if previous != CallState.INACTIVE:
            logger.info(f"Session {self.session_id}: {previous.value} -> INACTIVE")
        self._notify("state")
        return True

    def _connect_abandoned(self, error: ProviderConnectionError) -> None:
        # The user hung up while connecting; nothing is left to report the failure to
        logger.info(f"Session {self.session_id}: connect failed after call finished: {error.message}")
        return None

    def _finish(self, reason: str, stop_provider: bool) -> bool:
        with self._lock:
            if self._state not in (CallState.CONNECTING, CallState.ACTIVE):
                logger.debug(f"Session {self.session_id}: {reason} ignored in {self._state.value}")
                return False
            previous = self._state
            self._state = CallState.FINISHED
            self.end_time = datetime.now()
            self.is_speaking = False
            snapshot = tuple(self._transcript)
            fire = not self._feedback_started
            self._feedback_started = True
            if fire:
                self.is_generating_feedback = True

        logger.info(f"Session {self.session_id}: {previous.value} -> FINISHED ({reason})")
        if stop_provider:
            self._stop_provider()
        self._notify("state")

        if fire:
            self._submit_feedback(snapshot)
        return True

    def _stop_provider(self) -> None:
        try:
            self.provider.disconnect()
        except ProviderConnectionError as e:
            logger.warning(f"Session {self.session_id}: provider stop failed: {e.message}")
            return
        with self._lock:
            self._provider_stopped = True

    # ========================================
    # Feedback
    # ========================================

    def _submit_feedback(self, snapshot: Sequence[TranscriptEntry]) -> None:
        self.user_responses = pair_responses(snapshot, self.questions)
        logger.info(
            f"Session {self.session_id}: generating feedback from "
            f"{len(snapshot)} transcript entries ({len(self.user_responses)} user responses)"
        )
        if self.executor is None:
            self._generate_and_store(list(self.user_responses))
        else:
            self._report_future = self.executor.submit(self._generate_and_store, list(self.user_responses))

    def _generate_and_store(self, user_responses: List[UserResponse]) -> FeedbackReport:
        try:
            report = self.feedback_generator.generate(self.interview_type, self.questions, user_responses)
        except Exception:
            logger.exception(f"Session {self.session_id}: feedback generator raised, using fallback")
            report = FeedbackGenerator.fallback_report(self.interview_type)

        with self._lock:
            self._report = report
            self.is_generating_feedback = False
        logger.info(f"Session {self.session_id}: feedback ready (score={report.score}, source={report.source.value})")
        self._notify("report")
        self._persist(report)
        return report

    def _persist(self, report: FeedbackReport) -> bool:
        with self._persist_lock:
            if self.persisted:
                return True
            if self.results_sink is None:
                return False
            try:
                self.results_sink(report, list(self.user_responses))
            except PersistenceError as e:
                self.persist_error = e
                logger.error(f"Session {self.session_id}: failed to store results: {e.message}")
                return False
            self.persisted = True
            self.persist_error = None
            return True

    def retry_persist(self) -> bool:
        """
        Write the already-generated report again after a persistence failure.

        Raises:
            InvalidTransitionError: if no report exists yet
        """
        if self._report is None:
            raise InvalidTransitionError("store results", self._state.value, self.session_id)
        return self._persist(self._report)

    def wait_for_report(self, timeout: Optional[float] = None) -> Optional[FeedbackReport]:
        """Block until report generation completes (if it has started)."""
        if self._report_future is not None:
            self._report_future.result(timeout=timeout)
        return self._report

    # ========================================
    # Serialization
    # ========================================

    def get_status(self) -> Dict[str, Any]:
        """Snapshot of UI-facing state."""
        with self._lock:
            duration = None
            if self.start_time:
                end = self.end_time or datetime.now()
                duration = round((end - self.start_time).total_seconds() / 60, 1)
            return {
                "session_id": self.session_id,
                "attempt_id": self.attempt_id,
                "call_state": self._state.value,
                "interview_type": self.interview_type.value,
                "total_questions": len(self.questions),
                "transcript_length": len(self._transcript),
                "last_message": self.last_message,
                "partial_transcript": self.partial_transcript,
                "is_speaking": self.is_speaking,
                "is_muted": self.is_muted,
                "is_generating_feedback": self.is_generating_feedback,
                "report_ready": self._report is not None,
                "results_persisted": self.persisted,
                "last_error": self.last_error,
                "duration_minutes": duration,
            }
