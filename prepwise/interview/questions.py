"""
Question bank and deterministic question selection.
Maps a session configuration onto a bounded, ordered question set.
"""
from typing import Dict, List, Sequence, Tuple

from prepwise.models.schemas import (
    EnglishLevel,
    InterviewType,
    JobSubType,
    Question,
    SessionConfig,
)
from prepwise.utils.config import config
from prepwise.utils.errors import ConfigurationError


def _questions(category: str, *entries: Tuple[str, str]) -> Tuple[Question, ...]:
    return tuple(Question(id=qid, text=text, category=category) for qid, text in entries)


# Opening and closing framing shared by every job interview
BASE_QUESTIONS: Tuple[Question, ...] = (
    Question(id="q1", text="Tell me about yourself and your background.", category="introduction"),
    Question(id="q2", text="Why are you interested in this position?", category="motivation"),
    Question(id="q3", text="What are your strengths and weaknesses?", category="self-assessment"),
    Question(
        id="q4",
        text="Describe a challenging situation you faced and how you resolved it.",
        category="behavioral",
    ),
    Question(id="q5", text="Do you have any questions for me?", category="closing"),
)


class QuestionBank:
    """
    Fixed question pools and the rules for combining them.
    """

    JOB_EXTENSIONS: Dict[JobSubType, Tuple[Question, ...]] = {
        JobSubType.TECHNICAL: _questions(
            "technical",
            ("tech-q1", "Explain how you would implement a caching system."),
            ("tech-q2", "What's your approach to testing code?"),
            ("tech-q3", "Describe a complex technical problem you solved recently."),
            ("tech-q4", "How do you stay updated with the latest technologies?"),
            ("tech-q5", "Explain the concept of asynchronous programming."),
            ("tech-q6", "What design patterns are you familiar with?"),
            ("tech-q7", "How would you optimize a slow-performing application?"),
        ),
        JobSubType.BEHAVIORAL: _questions(
            "behavioral",
            ("beh-q1", "Tell me about a time you had a conflict with a team member."),
            ("beh-q2", "How do you handle tight deadlines?"),
            ("beh-q3", "Describe a situation where you had to learn something new quickly."),
            ("beh-q4", "Tell me about a time you failed and what you learned from it."),
            ("beh-q5", "How do you prioritize your work?"),
            ("beh-q6", "Describe a time when you went above and beyond for a project."),
            ("beh-q7", "How do you handle criticism?"),
        ),
        JobSubType.MIXED: (
            Question(id="mix-q1", text="Tell me about a time you had a conflict with a team member.", category="behavioral"),
            Question(id="mix-q2", text="What's your approach to testing code?", category="technical"),
            Question(id="mix-q3", text="How do you handle tight deadlines?", category="behavioral"),
            Question(id="mix-q4", text="Explain how you would implement a caching system.", category="technical"),
            Question(
                id="mix-q5",
                text="Describe a situation where you had to learn something new quickly.",
                category="behavioral",
            ),
        ),
    }

    # Evaluated in this order; only the first match is appended
    TECHNOLOGY_PRIORITY: Tuple[str, ...] = ("react", "node")

    TECHNOLOGY_QUESTIONS: Dict[str, Tuple[Question, ...]] = {
        "react": _questions(
            "technical-react",
            ("react-q1", "Explain the virtual DOM in React."),
            ("react-q2", "What are React hooks and why were they introduced?"),
            ("react-q3", "How do you manage state in a React application?"),
        ),
        "node": _questions(
            "technical-node",
            ("node-q1", "How does the event loop work in Node.js?"),
            ("node-q2", "What are streams in Node.js?"),
            ("node-q3", "How would you handle authentication in a Node.js application?"),
        ),
    }

    SALES_QUESTIONS: Tuple[Question, ...] = (
        Question(id="sales-q1", text="Tell me about your freelance services.", category="sales-intro"),
        Question(id="sales-q2", text="How do you typically approach new clients?", category="sales-approach"),
        Question(id="sales-q3", text="What makes your services different from others?", category="sales-value"),
        Question(id="sales-q4", text="How do you handle objections about pricing?", category="sales-objection"),
        Question(
            id="sales-q5",
            text="Can you walk me through your process for delivering projects?",
            category="sales-process",
        ),
        Question(id="sales-q6", text="How do you ensure client satisfaction?", category="sales-satisfaction"),
        Question(
            id="sales-q7",
            text="Tell me about a challenging client situation and how you resolved it.",
            category="sales-challenge",
        ),
        Question(id="sales-q8", text="How do you follow up with potential clients?", category="sales-followup"),
        Question(
            id="sales-q9",
            text="What questions do you ask to understand a client's needs?",
            category="sales-discovery",
        ),
        Question(id="sales-q10", text="How do you handle scope creep in projects?", category="sales-scope"),
    )

    ENGLISH_QUESTIONS: Dict[EnglishLevel, Tuple[Question, ...]] = {
        EnglishLevel.BEGINNER: _questions(
            "english-conversation",
            ("eng-beg-q1", "Tell me about your hometown."),
            ("eng-beg-q2", "What do you enjoy doing in your free time?"),
            ("eng-beg-q3", "Describe your family."),
            ("eng-beg-q4", "What is your favorite food?"),
            ("eng-beg-q5", "Tell me about your daily routine."),
            ("eng-beg-q6", "What kind of movies do you like?"),
            ("eng-beg-q7", "Describe your best friend."),
        ),
        EnglishLevel.INTERMEDIATE: _questions(
            "english-conversation",
            ("eng-int-q1", "Tell me about a memorable trip you took."),
            ("eng-int-q2", "What are your plans for the future?"),
            ("eng-int-q3", "Describe a challenge you've overcome."),
            ("eng-int-q4", "What changes would you like to see in your city?"),
            ("eng-int-q5", "Discuss a book or movie that influenced you."),
            ("eng-int-q6", "What are the advantages and disadvantages of social media?"),
            ("eng-int-q7", "How has technology changed education?"),
        ),
        EnglishLevel.ADVANCED: _questions(
            "english-conversation",
            ("eng-adv-q1", "Discuss the impact of artificial intelligence on society."),
            ("eng-adv-q2", "What measures should be taken to address climate change?"),
            ("eng-adv-q3", "Analyze the pros and cons of remote work."),
            ("eng-adv-q4", "How does globalization affect local cultures?"),
            ("eng-adv-q5", "Discuss the ethical implications of genetic engineering."),
            ("eng-adv-q6", "What role should government play in healthcare?"),
            ("eng-adv-q7", "Analyze the future of transportation in urban areas."),
        ),
    }

    @classmethod
    def technology_group(cls, technologies) -> Tuple[Question, ...]:
        """Return the question group for the highest-priority technology present, if any."""
        present = {str(t).lower() for t in technologies or ()}
        for tech in cls.TECHNOLOGY_PRIORITY:
            if tech in present:
                return cls.TECHNOLOGY_QUESTIONS[tech]
        return ()

    @classmethod
    def job_pool(cls, sub_type, technologies) -> Tuple[Question, ...]:
        """Base questions followed by the sub-type extension (mixed when unset)."""
        try:
            key = JobSubType(sub_type) if sub_type is not None else JobSubType.MIXED
        except ValueError:
            key = JobSubType.MIXED

        pool = BASE_QUESTIONS + cls.JOB_EXTENSIONS[key]
        if key == JobSubType.TECHNICAL:
            pool = pool + cls.technology_group(technologies)
        return pool

    @classmethod
    def english_pool(cls, level) -> Tuple[Question, ...]:
        try:
            key = EnglishLevel(level) if level is not None else None
        except ValueError:
            key = None
        if key is None:
            key = EnglishLevel(config.sessions.default_english_level)
        return cls.ENGLISH_QUESTIONS[key]

    @classmethod
    def pool(cls, session_config: SessionConfig) -> Tuple[Question, ...]:
        """
        Full ordered pool for a configuration, before truncation.

        Raises:
            ConfigurationError: if the interview type is not recognised
        """
        try:
            interview_type = InterviewType(session_config.type)
        except ValueError:
            raise ConfigurationError(
                f"Unrecognised interview type: {session_config.type}",
                field="type",
                value=str(session_config.type),
            )

        if interview_type == InterviewType.JOB:
            return cls.job_pool(session_config.sub_type, session_config.technologies)
        if interview_type == InterviewType.SALES:
            return cls.SALES_QUESTIONS
        return cls.english_pool(session_config.level)

    @classmethod
    def select(cls, session_config: SessionConfig) -> List[Question]:
        """
        Select the ordered question set for a session.

        Truncation keeps the prefix so the opening questions always survive.

        Args:
            session_config: The validated session configuration

        Returns:
            Up to `question_count` questions, deterministic for equal input
        """
        count = max(0, int(session_config.question_count))
        return list(cls.pool(session_config)[:count])


def select_questions(session_config: SessionConfig) -> List[Question]:
    """Module-level shortcut for QuestionBank.select."""
    return QuestionBank.select(session_config)


def pool_size(session_config: SessionConfig) -> int:
    return len(QuestionBank.pool(session_config))


def format_questions(questions: Sequence[Question]) -> str:
    """Render questions as the bullet list embedded in the voice agent prompt."""
    return "\n".join(f"- {q.text}" for q in questions)
