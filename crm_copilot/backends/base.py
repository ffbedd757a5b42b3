"""Contracts between the conversation session and the generative-AI providers."""

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Protocol

from crm_copilot.models import Role, ToolCall, ToolResponse, Turn
from crm_copilot.tools.registry import ToolDeclaration


@dataclass
class ModelReply:
    """One non-streaming model response."""

    text: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    native: Any = None

    def as_turn(self) -> Turn:
        return Turn(role=Role.MODEL, text=self.text, tool_calls=list(self.tool_calls), native=self.native)


@dataclass
class StreamEvent:
    """Inbound event from a duplex session. ``audio`` is base64 PCM16."""

    audio: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)


@dataclass
class LiveSessionConfig:
    tools: list[ToolDeclaration]
    system_instruction: str
    voice: str


class TextBackend(Protocol):
    async def generate(
        self,
        history: list[Turn],
        tools: list[ToolDeclaration],
        system_instruction: str,
    ) -> ModelReply | None:
        """Return the next model reply, or ``None`` if the model produced nothing."""
        ...


class LiveConnection(Protocol):
    input_sample_rate: int
    output_sample_rate: int

    async def send_audio(self, audio: str) -> None: ...

    async def send_tool_results(self, responses: list[ToolResponse]) -> None: ...

    def events(self) -> AsyncIterator[StreamEvent]: ...

    async def close(self) -> None: ...


class StreamingBackend(Protocol):
    default_voice: str

    async def connect(self, config: LiveSessionConfig) -> LiveConnection: ...


class BriefingBackend(Protocol):
    async def summarize(self, prompt: str) -> str | None:
        """Return JSON text shaped ``{"wins": [], "urgent": [], "general": []}``."""
        ...

    async def synthesize(self, script: str, voice: str) -> str | None:
        """Return base64 PCM16 speech at 24 kHz."""
        ...
