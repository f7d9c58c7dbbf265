"""
FastAPI dependencies: current identity and the shared orchestrator.
"""
from typing import Optional

from fastapi import Header, HTTPException

from prepwise.interview.orchestrator import SessionOrchestrator
from prepwise.models.schemas import User

_orchestrator: Optional[SessionOrchestrator] = None


def get_orchestrator() -> SessionOrchestrator:
    """Lazily create the process-wide orchestrator."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = SessionOrchestrator()
    return _orchestrator


def reset_orchestrator() -> None:
    global _orchestrator
    if _orchestrator is not None:
        _orchestrator.shutdown()
    _orchestrator = None


def get_current_identity(
    x_user_id: Optional[str] = Header(default=None),
    x_user_name: Optional[str] = Header(default=None),
) -> Optional[User]:
    """Identity is asserted by the upstream auth proxy via headers."""
    if not x_user_id or not x_user_id.strip():
        return None
    return User(id=x_user_id.strip(), name=(x_user_name or "Candidate").strip() or "Candidate")


def require_user(
    x_user_id: Optional[str] = Header(default=None),
    x_user_name: Optional[str] = Header(default=None),
) -> User:
    user = get_current_identity(x_user_id, x_user_name)
    if user is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user
