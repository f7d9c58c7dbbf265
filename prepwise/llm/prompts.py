"""
Prompt templates for the feedback report generator.
Each prompt is designed to:
1. Ask for exactly one JSON object
2. Spell out every field and its range
3. Keep the metrics specific to the interview type
"""
import json
from typing import Dict, List, Tuple

from prepwise.models.schemas import InterviewType


# (json key, human label) per interview type; each scored 0-20
METRIC_DEFINITIONS: Dict[InterviewType, Tuple[Tuple[str, str], ...]] = {
    InterviewType.JOB: (
        ("technicalKnowledge", "Technical knowledge"),
        ("problemSolving", "Problem-solving ability"),
        ("culturalFit", "Cultural fit"),
        ("leadershipPotential", "Leadership potential"),
        ("adaptability", "Adaptability"),
    ),
    InterviewType.SALES: (
        ("productKnowledge", "Product knowledge"),
        ("objectionHandling", "Objection handling"),
        ("closingAbility", "Closing ability"),
        ("relationshipBuilding", "Relationship building"),
        ("valuePropositionClarity", "Value proposition clarity"),
    ),
    InterviewType.ENGLISH: (
        ("grammarAccuracy", "Grammar accuracy"),
        ("vocabularyRange", "Vocabulary range"),
        ("pronunciation", "Pronunciation"),
        ("fluency", "Fluency"),
        ("comprehension", "Comprehension"),
    ),
}

_SESSION_NAMES = {
    InterviewType.JOB: ("job interview", "job interview performance"),
    InterviewType.SALES: ("sales call", "sales call performance"),
    InterviewType.ENGLISH: ("English practice", "English speaking skills"),
}


def metric_keys(interview_type: InterviewType) -> List[str]:
    return [key for key, _ in METRIC_DEFINITIONS[interview_type]]


class Prompts:
    """Collection of feedback prompts."""

    @staticmethod
    def type_specific_section(interview_type: InterviewType) -> str:
        """Extra evaluation criteria for one interview type."""
        session_name, tips_topic = _SESSION_NAMES[interview_type]
        lines = [
            f"{i}. {label} (scale 0-20)"
            for i, (_, label) in enumerate(METRIC_DEFINITIONS[interview_type], start=1)
        ]
        criteria = "\n".join(lines)
        return f"""For this {session_name}, also evaluate:
{criteria}

Include these metrics in your JSON response under a "metrics" object.

Also provide 5-7 specific tips for improving {tips_topic}."""

    @staticmethod
    def feedback_report(interview_type: InterviewType, qa_pairs: List[Dict[str, str]]) -> str:
        """
        Prompt for the end-of-session scoring report.

        Args:
            interview_type: The session's interview type
            qa_pairs: [{"question": ..., "response": ...}] in question order

        Returns:
            Prompt text requesting a single JSON object
        """
        metrics_shape = ",\n".join(
            f'    "{key}": <0-20>' for key in metric_keys(interview_type)
        )
        return f"""You are an expert interview coach analyzing a {interview_type.value} interview.

Please analyze the following interview questions and responses:
{json.dumps(qa_pairs, indent=2)}

Based on these responses, provide a comprehensive evaluation with the following:

1. An overall score from 0-100
2. A confidence score from 0-100
3. An enthusiasm score from 0-20
4. A communication score from 0-20
5. A self-awareness score from 0-20
6. A success rate (likelihood of passing similar interviews) from 0-100
7. 3-5 key strengths demonstrated in the responses
8. 3-5 areas for improvement
9. A brief summary paragraph of the overall performance

{Prompts.type_specific_section(interview_type)}

Respond with ONLY this JSON:

{{
  "score": <0-100>,
  "confidenceScore": <0-100>,
  "enthusiasmScore": <0-20>,
  "communicationScore": <0-20>,
  "selfAwarenessScore": <0-20>,
  "successRate": <0-100>,
  "feedback": {{
    "strengths": ["<strength>", "..."],
    "improvements": ["<improvement>", "..."]
  }},
  "metrics": {{
{metrics_shape}
  }},
  "tips": ["<tip>", "..."],
  "summary": "<a paragraph summarizing the performance>"
}}"""
