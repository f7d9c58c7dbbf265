"""
PrepWise Interview API - FastAPI Backend

Simulated spoken interviews (job, sales pitch, English practice) with:
- Deterministic question selection
- Voice call lifecycle driven by provider webhooks
- Always-available scored feedback reports
"""
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Body, Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from prepwise import __version__
from prepwise.deps import get_orchestrator, require_user, reset_orchestrator
from prepwise.interview.orchestrator import SessionOrchestrator
from prepwise.llm.client import llm_client
from prepwise.models.schemas import User, VoiceEvent
from prepwise.utils.config import configure_logging
from prepwise.utils.errors import InterviewSystemError

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    reset_orchestrator()


# ================================================================
# FastAPI App Initialization
# ================================================================

app = FastAPI(
    title="PrepWise Interview API",
    description="Simulated voice interviews with AI feedback reports",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(InterviewSystemError)
async def interview_error_handler(request: Request, exc: InterviewSystemError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


class BeginCallRequest(BaseModel):
    user_name: Optional[str] = None


def _dump(model: BaseModel) -> Dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


# ================================================================
# API Endpoints
# ================================================================
# Session endpoints are sync so they run in the worker pool; a slow
# provider connect must not block webhook delivery.

@app.get("/")
def root(orchestrator: SessionOrchestrator = Depends(get_orchestrator)):
    """Health check endpoint."""
    return {
        "status": "running",
        "version": __version__,
        "service": "PrepWise Interview API",
        "active_calls": orchestrator.active_call_count,
        "session_stats": orchestrator.store.get_stats(),
    }


@app.get("/health/llm")
def llm_health():
    """Whether the feedback LLM server is reachable."""
    return {"llm_available": llm_client.health_check()}


@app.post("/sessions", status_code=201)
def create_session(
    payload: Dict[str, Any] = Body(...),
    user: User = Depends(require_user),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    """
    Create a session from a configuration and select its questions.

    Returns:
        Session id and the selected questions
    """
    session_id = orchestrator.start_session(payload, user)
    record = orchestrator.store.read_session_record(session_id)
    return {
        "session_id": session_id,
        "status": record.status.value,
        "questions": [_dump(q) for q in record.questions],
    }


@app.get("/sessions")
def list_sessions(
    user: User = Depends(require_user),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    """All sessions for the current user, newest first."""
    return [
        {
            "session_id": r.id,
            "type": r.config.type.value,
            "status": r.status.value,
            "created_at": r.created_at.isoformat(),
            "completed_at": r.completed_at.isoformat() if r.completed_at else None,
            "score": r.report.score if r.report else None,
        }
        for r in orchestrator.list_sessions(user)
    ]


@app.get("/sessions/{session_id}")
def get_session_status(
    session_id: str,
    user: User = Depends(require_user),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    """Call state and UI indicators for a session."""
    return orchestrator.get_status(session_id, user)


@app.post("/sessions/{session_id}/call")
def begin_call(
    session_id: str,
    request: Optional[BeginCallRequest] = None,
    user: User = Depends(require_user),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    """Connect the voice call."""
    user_name = request.user_name if request else None
    return orchestrator.begin_call(session_id, user, user_name=user_name)


@app.post("/sessions/{session_id}/end")
def end_call(
    session_id: str,
    user: User = Depends(require_user),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    """Leave the interview. Feedback generation starts in the background."""
    return orchestrator.end_call(session_id, user)


@app.post("/sessions/{session_id}/mute")
def mute(
    session_id: str,
    user: User = Depends(require_user),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    return {"changed": orchestrator.mute(session_id, user), **orchestrator.get_status(session_id, user)}


@app.post("/sessions/{session_id}/unmute")
def unmute(
    session_id: str,
    user: User = Depends(require_user),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    return {"changed": orchestrator.unmute(session_id, user), **orchestrator.get_status(session_id, user)}


@app.post("/sessions/{session_id}/events")
def provider_event(
    session_id: str,
    event: VoiceEvent,
    attempt: Optional[str] = Query(default=None),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    """
    Webhook for voice provider callbacks.

    The call attempt comes from the `attempt` query parameter the webhook
    URL was registered with, or from the event body.
    """
    if attempt:
        event = event.model_copy(update={"attempt_id": attempt})
    return orchestrator.handle_provider_event(session_id, event)


@app.get("/sessions/{session_id}/transcript")
def get_transcript(
    session_id: str,
    user: User = Depends(require_user),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    return [_dump(entry) for entry in orchestrator.get_transcript(session_id, user)]


@app.get("/sessions/{session_id}/repeat")
def repeat_last_question(
    session_id: str,
    user: User = Depends(require_user),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    """Text of the interviewer's last utterance while the call is live."""
    return {"message": orchestrator.repeat_last_question(session_id, user)}


@app.get("/sessions/{session_id}/report")
def get_report(
    session_id: str,
    user: User = Depends(require_user),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    """
    The feedback report.

    Returns 202 with status "pending" until generation completes.
    """
    report = orchestrator.get_report(session_id, user)
    if report is None:
        return JSONResponse(status_code=202, content={"session_id": session_id, "status": "pending"})
    return _dump(report)


@app.post("/sessions/{session_id}/report/persist")
def persist_report(
    session_id: str,
    user: User = Depends(require_user),
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
):
    """Retry storing a report whose first write failed."""
    return {"persisted": orchestrator.retry_persist(session_id, user)}


# ================================================================
# Main Entry Point
# ================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
