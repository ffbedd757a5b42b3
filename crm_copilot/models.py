"""
Conversation data model shared by the session, the tool executor and the
backends.

A ``Message`` is what the user sees in the transcript. A ``Turn`` is what the
model sees in the text-mode history; backends translate turns into their own
wire format.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

# Either {"success": True, ...data} or {"error": "..."}; search results are
# passed through as the CRM service returns them.
ToolResult = dict[str, Any]


def tool_success(**data: Any) -> ToolResult:
    return {"success": True, **data}


def tool_error(message: str) -> ToolResult:
    return {"error": message}


class Role(str, Enum):
    USER = "user"
    MODEL = "model"
    TOOL = "tool"


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    SPEAKING = "speaking"


class Message(BaseModel):
    role: Role
    text: str | None = None
    tool_name: str | None = None
    tool_args: dict[str, Any] | None = None
    is_error: bool = False


class ToolCall(BaseModel):
    """A backend request to run a tool. ``id`` is opaque and echoed back."""

    id: str
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class ToolResponse(BaseModel):
    id: str
    name: str
    result: ToolResult


class Turn(BaseModel):
    role: Role
    text: str | None = None
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_responses: list[ToolResponse] = Field(default_factory=list)
    # Provider-native content for this turn (e.g. a Gemini Content carrying
    # thought signatures); backends replay it verbatim when present.
    native: Any = Field(default=None, exclude=True)

    @classmethod
    def user_text(cls, text: str) -> "Turn":
        return cls(role=Role.USER, text=text)

    @classmethod
    def tool_results(cls, responses: list[ToolResponse]) -> "Turn":
        return cls(role=Role.TOOL, tool_responses=list(responses))


class Transcript:
    """Append-only list of messages shown to the user."""

    def __init__(self):
        self._messages: list[Message] = []

    def append(self, message: Message) -> None:
        self._messages.append(message)

    def clear(self) -> None:
        self._messages.clear()

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    def __iter__(self):
        return iter(list(self._messages))

    def __len__(self) -> int:
        return len(self._messages)
