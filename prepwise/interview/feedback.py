"""
Feedback report generation.

Turns a finished session (questions + user turns) into a schema-valid
FeedbackReport. The text-generation provider is best-effort: every
failure degrades to a static, type-specific report.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from prepwise.llm.prompts import Prompts, metric_keys
from prepwise.models.schemas import (
    FeedbackReport,
    FeedbackSection,
    InterviewType,
    Question,
    ReportSource,
    TranscriptEntry,
    TranscriptRole,
    UserResponse,
)
from prepwise.utils.cleaning import ResponseCleaner
from prepwise.utils.config import config
from prepwise.utils.errors import ConfigurationError, GenerationDegraded

logger = logging.getLogger(__name__)

NO_RESPONSE = "No response provided"


# ================================================================
# Fallback report content
# ================================================================

FALLBACK_SCORES = {
    "score": 75,
    "confidence_score": 70,
    "enthusiasm_score": 15,
    "communication_score": 16,
    "self_awareness_score": 14,
    "success_rate": 72,
}

FALLBACK_METRICS: Dict[InterviewType, Dict[str, int]] = {
    InterviewType.JOB: {
        "technicalKnowledge": 15,
        "problemSolving": 16,
        "culturalFit": 17,
        "leadershipPotential": 14,
        "adaptability": 16,
    },
    InterviewType.SALES: {
        "productKnowledge": 16,
        "objectionHandling": 14,
        "closingAbility": 15,
        "relationshipBuilding": 17,
        "valuePropositionClarity": 15,
    },
    InterviewType.ENGLISH: {
        "grammarAccuracy": 15,
        "vocabularyRange": 16,
        "pronunciation": 14,
        "fluency": 15,
        "comprehension": 18,
    },
}

FALLBACK_TEXT: Dict[InterviewType, Dict[str, Any]] = {
    InterviewType.JOB: {
        "strengths": [
            "Good communication skills",
            "Clear and concise answers",
            "Demonstrated relevant experience",
            "Showed enthusiasm for the role",
        ],
        "improvements": [
            "Could provide more specific examples",
            "Consider structuring answers using the STAR method",
            "Prepare more questions to ask the interviewer",
            "Work on conciseness in responses",
        ],
        "tips": [
            "Practice the STAR method (Situation, Task, Action, Result) for behavioral questions",
            "Research the company more thoroughly before your next interview",
            "Prepare 3-5 concrete examples of past achievements that highlight your skills",
            "Work on explaining technical concepts in simpler terms",
            "Prepare thoughtful questions to ask the interviewer at the end",
        ],
        "summary": (
            "Overall, you demonstrated good communication skills and relevant experience. "
            "Your enthusiasm for the role was evident, but you could improve by providing more "
            "specific examples and structuring your answers more effectively. With some practice "
            "on the STAR method and more thorough preparation, you should see significant "
            "improvement in your interview performance."
        ),
    },
    InterviewType.SALES: {
        "strengths": [
            "Clear description of your services",
            "Friendly and professional tone",
            "Showed enthusiasm for the client's project",
            "Answered pricing questions directly",
        ],
        "improvements": [
            "Ask more discovery questions before pitching",
            "Handle objections with concrete evidence",
            "Make the value proposition more specific to the client",
            "Close with a clear next step",
        ],
        "tips": [
            "Practice handling common objections more effectively",
            "Work on your closing techniques to secure next steps",
            "Develop a stronger value proposition that focuses on client benefits",
            "Ask more discovery questions to understand client needs",
            "Prepare case studies and success stories to share with potential clients",
        ],
        "summary": (
            "Your sales call showed good product knowledge and enthusiasm. You could improve by "
            "asking more discovery questions to understand client needs better and handling "
            "objections more effectively. Work on developing a stronger value proposition and "
            "closing techniques to increase your success rate."
        ),
    },
    InterviewType.ENGLISH: {
        "strengths": [
            "Good range of everyday vocabulary",
            "Understood the questions well",
            "Kept the conversation going",
            "Willing to attempt longer answers",
        ],
        "improvements": [
            "Work on verb tense consistency",
            "Reduce pauses and filler words",
            "Practice pronunciation of difficult sounds",
            "Use more linking words between ideas",
        ],
        "tips": [
            "Practice speaking with native speakers regularly",
            "Focus on improving your pronunciation of specific sounds",
            "Expand your vocabulary by reading and listening to English content",
            "Practice speaking at a natural pace rather than rushing",
            "Record yourself speaking and review for areas of improvement",
        ],
        "summary": (
            "Your English speaking skills show good vocabulary and comprehension. You could "
            "improve your fluency and pronunciation with regular practice. Focus on speaking at "
            "a natural pace and expanding your vocabulary through reading and listening to "
            "English content."
        ),
    },
}

# (report field, payload key, upper bound)
SCORE_FIELDS = (
    ("score", "score", 100),
    ("confidence_score", "confidenceScore", 100),
    ("enthusiasm_score", "enthusiasmScore", 20),
    ("communication_score", "communicationScore", 20),
    ("self_awareness_score", "selfAwarenessScore", 20),
    ("success_rate", "successRate", 100),
)

MIN_FEEDBACK_ITEMS = 3
MIN_TIPS = 5
MAX_LIST_ITEMS = 7


def resolve_interview_type(interview_type: Any) -> InterviewType:
    """
    Raises:
        ConfigurationError: if the value is not a recognised interview type
    """
    try:
        return InterviewType(interview_type)
    except ValueError:
        raise ConfigurationError(
            f"Unrecognised interview type: {interview_type}",
            field="type",
            value=str(interview_type),
        )


def pair_responses(transcript: Sequence[TranscriptEntry], questions: Sequence[Question]) -> List[UserResponse]:
    """
    Index-align user turns with questions.

    The i-th user entry answers question i. Surplus user turns get the
    synthetic id "q{i}" and match no question.
    """
    user_turns = [entry for entry in transcript if entry.role == TranscriptRole.USER]
    return [
        UserResponse(
            question_id=questions[i].id if i < len(questions) else f"q{i}",
            response=entry.content,
        )
        for i, entry in enumerate(user_turns)
    ]


def _clamp(value: Any, upper: int, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        number = int(round(float(value)))
    except (TypeError, ValueError, OverflowError):
        return default
    return max(0, min(upper, number))


def _string_list(value: Any, defaults: Sequence[str], min_items: int) -> List[str]:
    items: List[str] = []
    if isinstance(value, list):
        items = [str(v).strip() for v in value if isinstance(v, (str, int, float)) and str(v).strip()]
    for default in defaults:
        if len(items) >= min_items:
            break
        if default not in items:
            items.append(default)
    return items[:MAX_LIST_ITEMS]


class FeedbackGenerator:
    """
    Generates the end-of-session report.
    Pipeline: prompt -> direct JSON parse -> embedded object parse -> fallback.
    """

    def __init__(self, llm=None):
        if llm is None:
            from prepwise.llm.client import llm_client
            llm = llm_client
        self.llm = llm

    # ========================================
    # Public API
    # ========================================

    def generate(
        self,
        interview_type: Any,
        questions: Sequence[Question],
        user_responses: Sequence[UserResponse],
    ) -> FeedbackReport:
        """
        Produce a feedback report. Never fails on upstream problems.

        Args:
            interview_type: job, sales or english
            questions: The session's question set
            user_responses: Pairs produced by pair_responses

        Returns:
            A schema-valid FeedbackReport (source=fallback if the AI path failed)

        Raises:
            ConfigurationError: only for an unrecognised interview type
        """
        resolved = resolve_interview_type(interview_type)
        prompt = Prompts.feedback_report(resolved, self.build_qa_pairs(questions, user_responses))

        try:
            text = self.llm.complete(
                prompt,
                max_tokens=config.feedback.max_tokens,
                temperature=config.feedback.temperature,
            )
        except Exception as e:
            logger.warning(f"Feedback generation failed for {resolved.value}, using fallback: {e}")
            return self.fallback_report(resolved)

        try:
            payload = self.parse_response(text)
            return self.normalize(resolved, payload)
        except GenerationDegraded as e:
            logger.warning(f"{e.message}; using fallback for {resolved.value}")
            return self.fallback_report(resolved)
        except Exception:
            logger.exception(f"Unusable completion for {resolved.value}, using fallback")
            return self.fallback_report(resolved)

    @staticmethod
    def build_qa_pairs(
        questions: Sequence[Question],
        user_responses: Sequence[UserResponse],
    ) -> List[Dict[str, str]]:
        by_id = {}
        for r in user_responses:
            by_id.setdefault(r.question_id, r.response)
        return [
            {"question": q.text, "response": by_id.get(q.id, NO_RESPONSE)}
            for q in questions
        ]

    @staticmethod
    def parse_response(text: Any) -> Dict[str, Any]:
        """
        Parse the completion as JSON, then as an embedded object.

        Raises:
            GenerationDegraded: if neither attempt yields a JSON object
        """
        if not isinstance(text, str):
            raise GenerationDegraded(f"Completion was {type(text).__name__}, not text")

        parsed = ResponseCleaner.parse_json_object(text)
        if parsed is not None:
            return parsed

        logger.info("Completion is not bare JSON, extracting embedded object")
        parsed = ResponseCleaner.extract_json_object(text)
        if parsed is not None:
            return parsed

        raise GenerationDegraded("Completion did not contain a JSON object", raw_output=text)

    # ========================================
    # Normalisation
    # ========================================

    def normalize(self, interview_type: InterviewType, payload: Dict[str, Any]) -> FeedbackReport:
        """
        Coerce a parsed AI payload into range, filling gaps from the fallback.

        Raises:
            GenerationDegraded: if the result still fails schema validation
        """
        defaults = FALLBACK_TEXT[interview_type]
        default_metrics = FALLBACK_METRICS[interview_type]

        scores = {
            field: _clamp(payload.get(key), upper, FALLBACK_SCORES[field])
            for field, key, upper in SCORE_FIELDS
        }

        raw_metrics = payload.get("metrics")
        if not isinstance(raw_metrics, dict):
            raw_metrics = {}
        metrics = {
            key: _clamp(raw_metrics.get(key), 20, default_metrics[key])
            for key in metric_keys(interview_type)
        }

        section = payload.get("feedback")
        if not isinstance(section, dict):
            section = {}
        strengths = section.get("strengths", payload.get("strengths"))
        improvements = section.get("improvements", payload.get("improvements"))

        summary = payload.get("summary")
        if not isinstance(summary, str) or not summary.strip():
            summary = defaults["summary"]

        try:
            return FeedbackReport(
                **scores,
                feedback=FeedbackSection(
                    strengths=_string_list(strengths, defaults["strengths"], MIN_FEEDBACK_ITEMS),
                    improvements=_string_list(improvements, defaults["improvements"], MIN_FEEDBACK_ITEMS),
                ),
                metrics=metrics,
                tips=_string_list(payload.get("tips"), defaults["tips"], MIN_TIPS),
                summary=summary.strip(),
                source=ReportSource.AI,
            )
        except ValidationError as e:
            raise GenerationDegraded(f"Normalised report failed validation: {e}")

    @staticmethod
    def fallback_report(interview_type: Any) -> FeedbackReport:
        """Static mid-range report for the given type."""
        resolved = resolve_interview_type(interview_type)
        text = FALLBACK_TEXT[resolved]
        return FeedbackReport(
            **FALLBACK_SCORES,
            feedback=FeedbackSection(
                strengths=list(text["strengths"]),
                improvements=list(text["improvements"]),
            ),
            metrics=dict(FALLBACK_METRICS[resolved]),
            tips=list(text["tips"]),
            summary=text["summary"],
            source=ReportSource.FALLBACK,
        )


def generate_feedback(
    interview_type: Any,
    questions: Sequence[Question],
    user_responses: Sequence[UserResponse],
    llm=None,
) -> FeedbackReport:
    """Convenience wrapper around FeedbackGenerator.generate."""
    return FeedbackGenerator(llm=llm).generate(interview_type, questions, user_responses)
