"""Shared fakes and fixtures."""
import json
from concurrent.futures import Executor, Future
from typing import Any, Dict, List, Optional

import pytest

from prepwise.interview.feedback import FeedbackGenerator
from prepwise.interview.orchestrator import SessionOrchestrator
from prepwise.interview.questions import QuestionBank
from prepwise.interview.state import CallSession
from prepwise.memory.session_store import InMemorySessionStore
from prepwise.models.schemas import InterviewType, SessionConfig, VoiceEvent
from prepwise.utils.errors import GenerationDegraded, ProviderConnectionError


class FakeVoiceProvider:
    """Records control calls. Stopping fails until connect has returned."""

    def __init__(self, call_id: str = "call-1", fail_connect: bool = False, on_connect=None):
        self.call_id = call_id
        self.fail_connect = fail_connect
        self.on_connect = on_connect
        self.calls: List[str] = []
        self.connected = False
        self.agent_config: Optional[Dict[str, Any]] = None
        self.variables: Optional[Dict[str, str]] = None
        self.attempt_ids: List[Optional[str]] = []

    def connect(self, agent_config, variables, attempt_id=None):
        self.calls.append("connect")
        self.agent_config = agent_config
        self.variables = variables
        self.attempt_ids.append(attempt_id)
        if self.on_connect is not None:
            self.on_connect()
        if self.fail_connect:
            raise ProviderConnectionError("gateway unavailable", operation="connect")
        self.connected = True
        return self.call_id

    def disconnect(self):
        self.calls.append("disconnect")
        if not self.connected:
            raise ProviderConnectionError("Cannot disconnect: no call in progress", operation="disconnect")

    def mute(self):
        self.calls.append("mute")

    def unmute(self):
        self.calls.append("unmute")


class FakeLLM:
    """Returns canned text, or raises, and counts completions."""

    def __init__(self, text: Optional[str] = None, error: Optional[Exception] = None):
        self.text = text
        self.error = error
        self.prompts: List[str] = []

    @property
    def call_count(self) -> int:
        return len(self.prompts)

    def complete(self, prompt, max_tokens=1200, temperature=None, stop_sequences=None):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        if self.text is None:
            raise GenerationDegraded("LLM returned an empty completion")
        return self.text


class SyncExecutor(Executor):
    """Runs submitted work immediately on the calling thread."""

    def __init__(self):
        self.submitted = 0

    def submit(self, fn, *args, **kwargs):
        self.submitted += 1
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


def job_report_payload(**overrides) -> Dict[str, Any]:
    payload = {
        "score": 82,
        "confidenceScore": 78,
        "enthusiasmScore": 17,
        "communicationScore": 16,
        "selfAwarenessScore": 15,
        "successRate": 85,
        "feedback": {
            "strengths": ["Structured answers", "Good examples", "Calm delivery"],
            "improvements": ["Quantify impact", "Shorter intros", "Ask more questions"],
        },
        "metrics": {
            "technicalKnowledge": 16,
            "problemSolving": 17,
            "culturalFit": 15,
            "leadershipPotential": 13,
            "adaptability": 18,
        },
        "tips": ["Tip one", "Tip two", "Tip three", "Tip four", "Tip five"],
        "summary": "A solid interview with clear, structured answers.",
    }
    payload.update(overrides)
    return payload


def event(event_type: str, **fields) -> VoiceEvent:
    return VoiceEvent(type=event_type, **fields)


def final_transcript(role: str, text: str) -> VoiceEvent:
    return VoiceEvent(
        type="message",
        message_type="transcript",
        transcript_type="final",
        role=role,
        transcript=text,
    )


@pytest.fixture
def job_config():
    return SessionConfig(type="job", sub_type="technical", technologies=["React"], question_count=5)


@pytest.fixture
def provider():
    return FakeVoiceProvider()


@pytest.fixture
def good_llm():
    return FakeLLM(text=json.dumps(job_report_payload()))


@pytest.fixture
def sink_calls():
    return []


@pytest.fixture
def make_call(job_config, provider, good_llm, sink_calls):
    def factory(**kwargs):
        params = dict(
            session_id="session-test",
            interview_type=InterviewType.JOB,
            questions=QuestionBank.select(job_config),
            provider=provider,
            feedback_generator=FeedbackGenerator(llm=good_llm),
            results_sink=lambda report, responses: sink_calls.append((report, responses)),
            executor=SyncExecutor(),
            session_config=job_config,
        )
        params.update(kwargs)
        return CallSession(**params)
    return factory


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def providers():
    """Provider instances created by the orchestrator, keyed by session id."""
    return {}


@pytest.fixture
def orchestrator(store, providers, good_llm):
    def provider_factory(session_id):
        providers[session_id] = FakeVoiceProvider(call_id=f"call-{session_id}")
        return providers[session_id]

    orch = SessionOrchestrator(
        store=store,
        provider_factory=provider_factory,
        feedback_generator=FeedbackGenerator(llm=good_llm),
        executor=SyncExecutor(),
    )
    yield orch
    orch.shutdown()
