"""Session services for the RetrievalChat client."""

from .answer_settings import (
    AnswerSettings,
    ConversationStyle,
    GenerationOptions,
    SearchIndex,
)
from .chat_client import (
    Approach,
    AskResponse,
    ChatClient,
    ChatError,
    ChatRequest,
    ChatServiceError,
    ChatTransportError,
    ChatTurnPayload,
    ParsedAnswer,
    parse_answer,
)
from .examples import EXAMPLE_PROMPTS, ExamplePrompt
from .focus import AnalysisPanelTab, FocusState
from .session_controller import (
    EmptyQuestionError,
    RequestState,
    SessionController,
    SessionError,
    SessionSnapshot,
    SubmissionOutcome,
)
from .turn_history import Turn, TurnHistory

__all__ = [
    "AnalysisPanelTab",
    "AnswerSettings",
    "Approach",
    "AskResponse",
    "ChatClient",
    "ChatError",
    "ChatRequest",
    "ChatServiceError",
    "ChatTransportError",
    "ChatTurnPayload",
    "ConversationStyle",
    "EXAMPLE_PROMPTS",
    "EmptyQuestionError",
    "ExamplePrompt",
    "FocusState",
    "GenerationOptions",
    "ParsedAnswer",
    "RequestState",
    "SearchIndex",
    "SessionController",
    "SessionError",
    "SessionSnapshot",
    "SubmissionOutcome",
    "Turn",
    "TurnHistory",
    "parse_answer",
]
