"""
Session event, answer and outcome data types.
"""

import enum
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Optional, Union

from tools import ToolMetadata


class SessionCancelled(Exception):
    """The session was canceled by its caller."""


class TurnLimitExceeded(Exception):
    """The session ran more model turns than allowed."""


class StreamProtocolError(Exception):
    """The model stream reported an error or could not be decoded."""


@dataclass
class TextDelta:
    """A streamed piece of assistant text, forwarded as soon as it arrives."""
    type: ClassVar[str] = "text"
    text: str


@dataclass
class ThinkingDelta:
    """A streamed piece of extended thinking. Never buffered."""
    type: ClassVar[str] = "thinking"
    text: str


@dataclass
class ToolRequest:
    """The model wants to run a tool that needs approval.

    `raw_input` is the JSON exactly as the model streamed it; `input` is its
    decoded form ({} when it did not parse).
    """
    type: ClassVar[str] = "tool_request"
    id: str
    name: str
    input: Dict[str, Any]
    metadata: ToolMetadata
    raw_input: str = ""


@dataclass
class ToolResultEvent:
    """Outcome of one tool call (executed, failed or rejected)."""
    type: ClassVar[str] = "tool_result"
    id: str
    content: str
    is_error: bool = False


@dataclass
class Done:
    """The conversation ended normally."""
    type: ClassVar[str] = "done"
    stop_reason: str = ""


@dataclass
class Error:
    """The session aborted. `cause` is SessionCancelled for cancellation."""
    type: ClassVar[str] = "error"
    cause: BaseException

    @property
    def cancelled(self) -> bool:
        return isinstance(self.cause, SessionCancelled)


AgentEvent = Union[TextDelta, ThinkingDelta, ToolRequest, ToolResultEvent, Done, Error]


@dataclass(frozen=True)
class ToolAnswer:
    """Approver's decision for one pending ToolRequest."""
    id: str
    approved: bool


@dataclass
class ToolCallRequest:
    """A completed tool-use block, consumed once."""
    id: str
    name: str
    raw_input: str = ""
    input: Dict[str, Any] = field(default_factory=dict)
    metadata: Optional[ToolMetadata] = None


class OutcomeState(enum.Enum):
    CONTINUING = "continuing"
    DONE = "done"
    ERROR = "error"


@dataclass
class SessionOutcome:
    state: OutcomeState
    stop_reason: Optional[str] = None
    error: Optional[BaseException] = None

    @classmethod
    def continuing(cls) -> "SessionOutcome":
        return cls(OutcomeState.CONTINUING)

    @classmethod
    def done(cls, stop_reason: Optional[str]) -> "SessionOutcome":
        return cls(OutcomeState.DONE, stop_reason=stop_reason or "")

    @classmethod
    def failed(cls, error: BaseException) -> "SessionOutcome":
        return cls(OutcomeState.ERROR, error=error)

    @property
    def terminal(self) -> bool:
        return self.state is not OutcomeState.CONTINUING
