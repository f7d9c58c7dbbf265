"""
Voice agent profiles for the three interview types.

The profiles are templates: the system prompt carries a single
{{questions}} placeholder that is filled on a fresh copy per session.
"""
import copy
import logging
from typing import Any, Dict, Optional, Sequence

from prepwise.interview.questions import format_questions
from prepwise.models.schemas import InterviewType, Question, SessionConfig

logger = logging.getLogger(__name__)

QUESTIONS_PLACEHOLDER = "{{questions}}"

_TRANSCRIBER = {
    "provider": "deepgram",
    "model": "nova-2",
    "language": "en",
}


JOB_INTERVIEWER: Dict[str, Any] = {
    "name": "Job Interviewer",
    "firstMessage": (
        "Hello! Thank you for joining this job interview today. "
        "I'm excited to learn more about your experience and skills."
    ),
    "transcriber": dict(_TRANSCRIBER),
    "voice": {
        "provider": "11labs",
        "voiceId": "sarah",
        "stability": 0.4,
        "similarityBoost": 0.8,
        "speed": 0.9,
        "style": 0.5,
        "useSpeakerBoost": True,
    },
    "model": {
        "provider": "openai",
        "model": "gpt-4",
        "messages": [
            {
                "role": "system",
                "content": """You are a professional job interviewer conducting a real-time voice interview with a candidate. Your goal is to assess their qualifications, motivation, and fit for the role.

Interview Guidelines:
Follow the structured question flow:
{{questions}}

Engage naturally and react appropriately:
- Listen actively and acknowledge answers before moving forward.
- Ask brief follow-up questions if a response is vague or needs more detail.
- Keep the conversation flowing while staying in control.

Be professional, yet warm and welcoming:
- Use official yet friendly language.
- Keep responses concise, like in a real voice interview.

Answer the candidate's questions professionally. If unsure, redirect them to HR.

Conclude the interview properly:
- Thank the candidate for their time.
- Tell them the company will reach out soon with feedback.
- End on a polite and positive note.

This is a voice conversation, so keep your responses short. Don't ramble.""",
            }
        ],
    },
}


SALES_CALL_AGENT: Dict[str, Any] = {
    "name": "Potential Client",
    "firstMessage": (
        "Hi there! I received your information about your services and I'm interested "
        "in learning more. Can you tell me a bit about what you offer?"
    ),
    "transcriber": dict(_TRANSCRIBER),
    "voice": {
        "provider": "11labs",
        "voiceId": "flq6f7yk4E4fJM5XTYuZ",
        "stability": 0.5,
        "similarityBoost": 0.7,
        "speed": 1.0,
        "style": 0.4,
        "useSpeakerBoost": True,
    },
    "model": {
        "provider": "openai",
        "model": "gpt-4",
        "messages": [
            {
                "role": "system",
                "content": """You are a potential client on a sales call with a freelancer or service provider. Your goal is to evaluate their pitch, ask relevant questions, and decide if their services meet your needs.

Guidelines for the Sales Call:
Follow the structured question flow:
{{questions}}

Behave like a realistic potential client:
- Ask about pricing, timelines, and deliverables.
- Express realistic concerns about value and ROI.
- Occasionally challenge claims to test their knowledge and confidence.
- Show interest but not immediate commitment.

Ask follow-up questions when answers are vague, and ask for examples or case studies when relevant.

Conclude the call professionally:
- Give realistic feedback on their pitch.
- Be honest about your level of interest.
- Explain next steps and end on a professional note.

This is a voice conversation, so keep responses conversational and concise. Be neither unreasonably difficult nor too easy to convince.""",
            }
        ],
    },
}


ENGLISH_PRACTICE_AGENT: Dict[str, Any] = {
    "name": "English Conversation Partner",
    "firstMessage": (
        "Hello! It's great to meet you. I'm here to help you practice your English "
        "speaking skills. How are you doing today?"
    ),
    "transcriber": dict(_TRANSCRIBER),
    "voice": {
        "provider": "11labs",
        "voiceId": "sarah",
        "stability": 0.6,
        "similarityBoost": 0.7,
        "speed": 0.9,
        "style": 0.3,
        "useSpeakerBoost": True,
    },
    "model": {
        "provider": "openai",
        "model": "gpt-4",
        "messages": [
            {
                "role": "system",
                "content": """You are a friendly English conversation partner helping someone practice their English speaking skills. Have a natural conversation while gently helping them improve.

Conversation Guidelines:
Follow the structured conversation flow:
{{questions}}

Adapt to the learner's level:
- Beginners: simple vocabulary, short sentences, speak clearly and slightly slower.
- Intermediate: everyday vocabulary with some challenging words.
- Advanced: natural speech with idioms and nuanced vocabulary.

Be supportive and encouraging:
- Acknowledge good vocabulary, grammar, or pronunciation.
- Gently correct major errors by modeling the correct form.
- Focus on communication rather than perfect grammar.

End the conversation positively: summarize what you discussed, compliment specific aspects of their English, and encourage continued practice.

Keep your responses conversational and adapt to their level in real time.""",
            }
        ],
    },
}


AGENT_PROFILES: Dict[InterviewType, Dict[str, Any]] = {
    InterviewType.JOB: JOB_INTERVIEWER,
    InterviewType.SALES: SALES_CALL_AGENT,
    InterviewType.ENGLISH: ENGLISH_PRACTICE_AGENT,
}


def build_agent_config(interview_type: Any, questions: Sequence[Question]) -> Dict[str, Any]:
    """
    Render a session-specific agent config from the shared template.

    Args:
        interview_type: The session's interview type (unknown values use the job interviewer)
        questions: The session's selected questions

    Returns:
        A deep copy of the template with the question list substituted into
        every system message
    """
    try:
        template = AGENT_PROFILES[InterviewType(interview_type)]
    except ValueError:
        logger.warning(f"No agent profile for {interview_type}, using job interviewer")
        template = JOB_INTERVIEWER

    agent = copy.deepcopy(template)
    rendered = format_questions(questions)
    for message in agent.get("model", {}).get("messages", []):
        if message.get("role") == "system":
            message["content"] = message["content"].replace(QUESTIONS_PLACEHOLDER, rendered)
    return agent


def build_variables(user_name: str, session_config: Optional[SessionConfig] = None) -> Dict[str, str]:
    """Template variables passed alongside the agent config on connect."""
    variables = {"username": user_name}
    if session_config is not None:
        variables["interviewType"] = InterviewType(session_config.type).value
        variables["difficulty"] = session_config.difficulty.value
        if session_config.project_details:
            variables["projectDetails"] = session_config.project_details
    return variables
