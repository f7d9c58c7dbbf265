import pytest

from conftest import FakeVoiceProvider, event, final_transcript
from prepwise.interview.feedback import FeedbackGenerator
from prepwise.interview.orchestrator import SessionOrchestrator
from prepwise.memory.session_store import InMemorySessionStore
from prepwise.models.schemas import CallState, ReportSource, SessionStatus, User
from prepwise.utils.errors import (
    ConfigurationError,
    InvalidTransitionError,
    PersistenceError,
    ProviderConnectionError,
    SessionNotFoundError,
)

ADA = User(id="user-ada", name="Ada")
BOB = User(id="user-bob", name="Bob")


def new_session(orchestrator, **overrides):
    data = {"type": "job", "subType": "behavioral", "questionCount": 4}
    data.update(overrides)
    return orchestrator.start_session(data, ADA)


def deliver(orchestrator, session_id, voice_event):
    """Send an event tagged with the current call attempt, as the provider does."""
    attempt_id = orchestrator.get_call(session_id).attempt_id
    return orchestrator.handle_provider_event(
        session_id, voice_event.model_copy(update={"attempt_id": attempt_id})
    )


def run_interview(orchestrator, session_id, answers=("I led the migration.",)):
    orchestrator.begin_call(session_id, ADA)
    deliver(orchestrator, session_id, event("call-start"))
    for answer in answers:
        deliver(orchestrator, session_id, final_transcript("assistant", "Next question."))
        deliver(orchestrator, session_id, final_transcript("user", answer))


def test_start_session_persists_selected_questions(orchestrator, store):
    session_id = new_session(orchestrator)
    record = store.read_session_record(session_id)

    assert record.user_id == ADA.id
    assert [q.id for q in record.questions] == ["q1", "q2", "q3", "q4"]
    assert orchestrator.get_status(session_id, ADA)["call_state"] == "INACTIVE"


def test_invalid_config_is_rejected(orchestrator, store):
    with pytest.raises(ConfigurationError):
        new_session(orchestrator, questionCount=50)
    assert store.list_session_records() == []


def test_full_interview_completes_session(orchestrator, store, providers):
    session_id = new_session(orchestrator)
    run_interview(orchestrator, session_id, answers=("First", "Second"))
    deliver(orchestrator, session_id, event("call-end"))

    record = store.read_session_record(session_id)
    assert record.status == SessionStatus.COMPLETED
    assert record.report.source == ReportSource.AI
    assert [(r.question_id, r.response) for r in record.user_responses] == [("q1", "First"), ("q2", "Second")]
    assert orchestrator.get_report(session_id, ADA) == record.report
    assert providers[session_id].variables["username"] == "Ada"


def test_begin_call_uses_explicit_display_name(orchestrator, providers):
    session_id = new_session(orchestrator)
    orchestrator.begin_call(session_id, ADA, user_name="Ada L.")
    assert providers[session_id].variables["username"] == "Ada L."


def test_begin_call_is_idempotent_while_live(orchestrator, providers):
    session_id = new_session(orchestrator)
    orchestrator.begin_call(session_id, ADA)
    status = orchestrator.begin_call(session_id, ADA)

    assert status["call_state"] == "CONNECTING"
    assert providers[session_id].calls == ["connect"]


def test_begin_call_after_completion_is_rejected(orchestrator):
    session_id = new_session(orchestrator)
    run_interview(orchestrator, session_id)
    orchestrator.end_call(session_id, ADA)

    with pytest.raises(InvalidTransitionError):
        orchestrator.begin_call(session_id, ADA)


def test_retry_after_provider_error_gets_fresh_call(orchestrator):
    session_id = new_session(orchestrator)
    orchestrator.begin_call(session_id, ADA)
    first = orchestrator.get_call(session_id)
    deliver(orchestrator, session_id, event("error", error="ice failed"))
    assert first.state == CallState.INACTIVE

    orchestrator.begin_call(session_id, ADA)
    second = orchestrator.get_call(session_id)
    assert second is not first
    assert second.state == CallState.CONNECTING


def test_late_call_end_from_failed_call_does_not_finish_retry(orchestrator, store, providers):
    session_id = new_session(orchestrator, type="sales", subType=None)
    orchestrator.begin_call(session_id, ADA)
    first = orchestrator.get_call(session_id)
    deliver(orchestrator, session_id, event("error", error="ice failed"))

    orchestrator.begin_call(session_id, ADA)
    second = orchestrator.get_call(session_id)
    assert providers[session_id].attempt_ids == [second.attempt_id]
    assert second.attempt_id != first.attempt_id

    result = orchestrator.handle_provider_event(
        session_id, event("call-end", attempt_id=first.attempt_id)
    )

    assert result["ignored"] is True
    assert second.state == CallState.CONNECTING
    assert second.report is None
    assert store.read_session_record(session_id).status == SessionStatus.SCHEDULED

    deliver(orchestrator, session_id, event("call-end"))
    assert second.state == CallState.FINISHED
    assert store.read_session_record(session_id).status == SessionStatus.COMPLETED


def test_events_without_attempt_are_dropped(orchestrator):
    session_id = new_session(orchestrator)
    orchestrator.begin_call(session_id, ADA)

    result = orchestrator.handle_provider_event(session_id, event("call-start"))

    assert result["ignored"] is True
    assert orchestrator.get_call(session_id).state == CallState.CONNECTING


def test_matching_event_is_not_ignored(orchestrator):
    session_id = new_session(orchestrator)
    orchestrator.begin_call(session_id, ADA)

    result = deliver(orchestrator, session_id, event("call-start"))

    assert result["ignored"] is False
    assert result["call_state"] == "ACTIVE"


def test_connect_failure_propagates(store, good_llm):
    orchestrator = SessionOrchestrator(
        store=store,
        provider_factory=lambda session_id: FakeVoiceProvider(fail_connect=True),
        feedback_generator=FeedbackGenerator(llm=good_llm),
    )
    session_id = new_session(orchestrator)
    with pytest.raises(ProviderConnectionError):
        orchestrator.begin_call(session_id, ADA)
    assert orchestrator.get_status(session_id, ADA)["last_error"] == "gateway unavailable"
    orchestrator.shutdown()


def test_end_call_while_connecting_produces_report(orchestrator, good_llm):
    session_id = new_session(orchestrator)
    orchestrator.begin_call(session_id, ADA)
    status = orchestrator.end_call(session_id, ADA)

    assert status["call_state"] == "FINISHED"
    assert good_llm.call_count == 1
    assert orchestrator.get_report(session_id, ADA) is not None


def test_actions_without_call_are_invalid(orchestrator):
    session_id = new_session(orchestrator)
    with pytest.raises(InvalidTransitionError):
        orchestrator.end_call(session_id, ADA)
    with pytest.raises(InvalidTransitionError):
        orchestrator.mute(session_id, ADA)


def test_mute_and_unmute(orchestrator, providers):
    session_id = new_session(orchestrator)
    run_interview(orchestrator, session_id, answers=())

    assert orchestrator.mute(session_id, ADA) is True
    assert orchestrator.get_status(session_id, ADA)["is_muted"] is True
    assert orchestrator.unmute(session_id, ADA) is True
    assert providers[session_id].calls[-2:] == ["mute", "unmute"]


def test_other_users_cannot_see_session(orchestrator):
    session_id = new_session(orchestrator)
    with pytest.raises(SessionNotFoundError):
        orchestrator.get_status(session_id, BOB)
    assert orchestrator.list_sessions(BOB) == []
    assert [r.id for r in orchestrator.list_sessions(ADA)] == [session_id]


def test_unknown_session(orchestrator):
    with pytest.raises(SessionNotFoundError):
        orchestrator.get_status("session-missing")
    with pytest.raises(SessionNotFoundError):
        orchestrator.handle_provider_event("session-missing", event("call-start"))


def test_repeat_last_question_only_while_active(orchestrator):
    session_id = new_session(orchestrator)
    assert orchestrator.repeat_last_question(session_id, ADA) is None

    run_interview(orchestrator, session_id, answers=("Answer",))
    assert orchestrator.repeat_last_question(session_id, ADA) == "Next question."

    orchestrator.end_call(session_id, ADA)
    assert orchestrator.repeat_last_question(session_id, ADA) is None


def test_transcript_query(orchestrator):
    session_id = new_session(orchestrator)
    assert orchestrator.get_transcript(session_id, ADA) == []
    run_interview(orchestrator, session_id, answers=("Answer",))
    assert [e.content for e in orchestrator.get_transcript(session_id, ADA)] == ["Next question.", "Answer"]


def test_persistence_failure_keeps_report_and_can_retry(good_llm, providers):
    class FlakyStore(InMemorySessionStore):
        failures = 1

        def write_session_results(self, session_id, report, user_responses=()):
            if self.failures:
                self.failures -= 1
                raise PersistenceError("database unavailable", session_id=session_id)
            super().write_session_results(session_id, report, user_responses)

    store = FlakyStore()
    orchestrator = SessionOrchestrator(
        store=store,
        provider_factory=lambda session_id: FakeVoiceProvider(),
        feedback_generator=FeedbackGenerator(llm=good_llm),
        executor=None,
    )
    session_id = new_session(orchestrator)
    run_interview(orchestrator, session_id)
    orchestrator.end_call(session_id, ADA)

    assert orchestrator.get_call(session_id).wait_for_report(timeout=5) is not None
    assert orchestrator.get_report(session_id, ADA) is not None
    assert store.read_session_record(session_id).status == SessionStatus.SCHEDULED
    assert orchestrator.get_status(session_id, ADA)["results_persisted"] is False

    assert orchestrator.retry_persist(session_id, ADA) is True
    assert store.read_session_record(session_id).status == SessionStatus.COMPLETED
    assert good_llm.call_count == 1
    orchestrator.shutdown()


def test_active_call_count(orchestrator):
    first = new_session(orchestrator)
    second = new_session(orchestrator)
    orchestrator.begin_call(first, ADA)
    orchestrator.begin_call(second, ADA)
    assert orchestrator.active_call_count == 2

    orchestrator.end_call(first, ADA)
    assert orchestrator.active_call_count == 1
