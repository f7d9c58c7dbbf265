"""
Pydantic models shared across the interview engine and the HTTP API.
Field names are snake_case in Python and camelCase on the wire.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    computed_field,
    field_validator,
)
from pydantic.alias_generators import to_camel

from prepwise.utils.errors import ConfigurationError


class CamelModel(BaseModel):
    """Base model serialising to camelCase while accepting either spelling."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ================================================================
# Enumerations
# ================================================================

class InterviewType(str, Enum):
    JOB = "job"
    SALES = "sales"
    ENGLISH = "english"


class JobSubType(str, Enum):
    TECHNICAL = "technical"
    BEHAVIORAL = "behavioral"
    MIXED = "mixed"


class EnglishLevel(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class CallState(str, Enum):
    INACTIVE = "INACTIVE"
    CONNECTING = "CONNECTING"
    ACTIVE = "ACTIVE"
    FINISHED = "FINISHED"


class TranscriptRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class SessionStatus(str, Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"


class ReportSource(str, Enum):
    AI = "ai"
    FALLBACK = "fallback"


# ================================================================
# Session configuration
# ================================================================

class SessionConfig(CamelModel):
    """Immutable description of the interview the user asked for."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    type: InterviewType
    sub_type: Optional[JobSubType] = None
    technologies: FrozenSet[str] = frozenset()
    level: Optional[EnglishLevel] = None
    question_count: int = Field(ge=3, le=20)
    difficulty: Difficulty = Difficulty.MEDIUM
    project_details: Optional[str] = None

    @field_validator("technologies", mode="before")
    @classmethod
    def normalise_technologies(cls, value: Any) -> Any:
        if value is None:
            return frozenset()
        if isinstance(value, str):
            value = [value]
        return frozenset(str(t).strip().lower() for t in value if str(t).strip())

    @field_validator("sub_type", "level", mode="before")
    @classmethod
    def blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @classmethod
    def from_input(cls, data: Dict[str, Any]) -> "SessionConfig":
        """
        Validate raw user input into a SessionConfig.

        Raises:
            ConfigurationError: if any field is missing or out of bounds
        """
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(p) for p in first.get("loc", ()))
            raise ConfigurationError(
                f"Invalid session configuration: {first.get('msg', 'invalid value')}",
                field=field or None,
                value=first.get("input") if isinstance(first.get("input"), (str, int, float)) else None,
            ) from e


# ================================================================
# Questions and transcript
# ================================================================

class Question(CamelModel):
    """A single interview question. Never mutated once selected."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    text: str
    category: str


class TranscriptEntry(CamelModel):
    """One finalised spoken turn."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    role: TranscriptRole
    content: str


class UserResponse(CamelModel):
    """A user turn paired with the question it answers."""
    question_id: str
    response: str


# ================================================================
# Feedback report
# ================================================================

class FeedbackSection(CamelModel):
    strengths: List[str] = Field(min_length=1, max_length=7)
    improvements: List[str] = Field(min_length=1, max_length=7)


class FeedbackReport(CamelModel):
    """Schema-valid scoring artifact produced once per completed session."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    score: int = Field(ge=0, le=100)
    confidence_score: int = Field(ge=0, le=100)
    enthusiasm_score: int = Field(ge=0, le=20)
    communication_score: int = Field(ge=0, le=20)
    self_awareness_score: int = Field(ge=0, le=20)
    success_rate: int = Field(ge=0, le=100)
    feedback: FeedbackSection
    metrics: Dict[str, int]
    tips: List[str] = Field(min_length=1, max_length=7)
    summary: str
    source: ReportSource = ReportSource.AI

    @field_validator("metrics")
    @classmethod
    def metrics_in_range(cls, value: Dict[str, int]) -> Dict[str, int]:
        for key, score in value.items():
            if not 0 <= score <= 20:
                raise ValueError(f"metric {key} out of range: {score}")
        return value

    @computed_field
    @property
    def success_label(self) -> str:
        if self.success_rate >= 80:
            return "Excellent"
        if self.success_rate >= 60:
            return "Promising"
        return "Needs Work"


# ================================================================
# Persistence and identity views
# ================================================================

class User(CamelModel):
    id: str
    name: str = "Candidate"


class SessionRecord(CamelModel):
    """Persisted view of a session as seen through the store."""
    id: str
    user_id: Optional[str] = None
    config: SessionConfig
    questions: List[Question]
    status: SessionStatus = SessionStatus.SCHEDULED
    created_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    report: Optional[FeedbackReport] = None
    user_responses: List[UserResponse] = Field(default_factory=list)


# ================================================================
# Voice provider events
# ================================================================

class VoiceEvent(CamelModel):
    """
    A callback from the voice provider.

    `type` is one of call-start, call-end, message, speech-start,
    speech-end, error. Message events carry the transcript fields.
    """
    type: str
    message_type: Optional[str] = Field(default=None, alias="messageType")
    transcript_type: Optional[str] = None
    role: Optional[TranscriptRole] = None
    transcript: Optional[str] = None
    error: Optional[str] = None
    # Echoed back from the connect request; identifies the call attempt
    attempt_id: Optional[str] = None

    @property
    def is_final_transcript(self) -> bool:
        return self.message_type == "transcript" and self.transcript_type == "final"
