# Interview module
from .questions import QuestionBank, select_questions
from .state import CallSession
from .feedback import FeedbackGenerator
from .agents import build_agent_config
