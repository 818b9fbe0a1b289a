"""
Agent package - the session engine that drives one model conversation.

Modules:
- events: outward event types, ToolAnswer, ToolCallRequest, SessionOutcome
- stream: StreamReducer folding raw stream events into content blocks
- transcript: append-only conversation history
- approval: single-slot approval rendezvous
- prompts: system prompt
- session: Session, the top-level loop
"""

from .approval import ApprovalError, ApprovalGate
from .events import (
    AgentEvent,
    Done,
    Error,
    OutcomeState,
    SessionCancelled,
    SessionOutcome,
    StreamProtocolError,
    TextDelta,
    ThinkingDelta,
    ToolAnswer,
    ToolCallRequest,
    ToolRequest,
    ToolResultEvent,
    TurnLimitExceeded,
)
from .prompts import SYSTEM_PROMPT, AVAILABLE_TOOL_NAMES
from .session import Session, REJECTED_MESSAGE, REJECTED_EVENT_TEXT
from .stream import StreamReducer
from .transcript import Transcript

__all__ = [
    # Engine
    "Session",
    "StreamReducer",
    "Transcript",
    "ApprovalGate",
    "ApprovalError",

    # Events and data types
    "AgentEvent",
    "TextDelta",
    "ThinkingDelta",
    "ToolRequest",
    "ToolResultEvent",
    "Done",
    "Error",
    "ToolAnswer",
    "ToolCallRequest",
    "SessionOutcome",
    "OutcomeState",

    # Errors
    "SessionCancelled",
    "StreamProtocolError",
    "TurnLimitExceeded",

    # Prompt / constants
    "SYSTEM_PROMPT",
    "AVAILABLE_TOOL_NAMES",
    "REJECTED_MESSAGE",
    "REJECTED_EVENT_TEXT",
]
