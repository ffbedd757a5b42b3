"""
Gemini adapters: turn-based text, Live duplex audio, JSON summaries and TTS.
"""

import base64
import logging
import uuid
from contextlib import AsyncExitStack
from typing import Any, AsyncIterator

from google import genai
from google.genai import types

from crm_copilot.backends.base import LiveSessionConfig, ModelReply, StreamEvent
from crm_copilot.config import (
    GEMINI_API_KEY,
    GEMINI_LIVE_MODEL,
    GEMINI_TEXT_MODEL,
    GEMINI_TTS_MODEL,
    INPUT_SAMPLE_RATE,
    LIVE_VOICE,
    OUTPUT_SAMPLE_RATE,
)
from crm_copilot.errors import ConfigurationError
from crm_copilot.models import Role, ToolCall, ToolResponse, Turn
from crm_copilot.tools.registry import ArgumentSpec, ToolDeclaration


def make_client(api_key: str | None = None) -> genai.Client:
    api_key = api_key or GEMINI_API_KEY
    if not api_key:
        raise ConfigurationError("GEMINI_API_KEY environment variable not set")
    return genai.Client(api_key=api_key)


# ================================================================
# Format conversion
# ================================================================


def _schema(spec: ArgumentSpec) -> types.Schema:
    return types.Schema(
        type=types.Type(spec.type.upper()),
        enum=list(spec.enum) if spec.enum else None,
        description=spec.description,
    )


def to_function_declaration(declaration: ToolDeclaration) -> types.FunctionDeclaration:
    return types.FunctionDeclaration(
        name=declaration.name,
        description=declaration.description,
        parameters=types.Schema(
            type=types.Type.OBJECT,
            properties={name: _schema(spec) for name, spec in declaration.arguments.items()},
            required=declaration.required,
        ),
    )


def to_gemini_tools(declarations: list[ToolDeclaration]) -> list[types.Tool]:
    if not declarations:
        return []
    return [types.Tool(function_declarations=[to_function_declaration(d) for d in declarations])]


def to_function_response(response: ToolResponse) -> types.FunctionResponse:
    return types.FunctionResponse(id=response.id, name=response.name, response={"result": response.result})


def to_content(turn: Turn) -> types.Content:
    if isinstance(turn.native, types.Content):
        return turn.native
    if turn.role is Role.TOOL:
        return types.Content(
            role="user",
            parts=[types.Part(function_response=to_function_response(r)) for r in turn.tool_responses],
        )
    parts: list[types.Part] = []
    if turn.text:
        parts.append(types.Part(text=turn.text))
    for call in turn.tool_calls:
        parts.append(types.Part(function_call=types.FunctionCall(id=call.id, name=call.name, args=call.args)))
    role = "model" if turn.role is Role.MODEL else "user"
    return types.Content(role=role, parts=parts)


def to_tool_call(function_call: types.FunctionCall) -> ToolCall:
    return ToolCall(
        id=function_call.id or uuid.uuid4().hex,
        name=function_call.name or "unknown",
        args=dict(function_call.args or {}),
    )


def parse_reply(response: types.GenerateContentResponse) -> ModelReply | None:
    if not response.candidates:
        return None
    content = response.candidates[0].content
    if content is None:
        return None
    parts = content.parts or []
    tool_calls = [to_tool_call(part.function_call) for part in parts if part.function_call]
    texts = [part.text for part in parts if part.text and not part.thought]
    return ModelReply(text="".join(texts) or None, tool_calls=tool_calls, native=content)


def parse_live_message(message: types.LiveServerMessage) -> StreamEvent | None:
    audio: str | None = None
    server_content = message.server_content
    if server_content and server_content.model_turn and server_content.model_turn.parts:
        inline = server_content.model_turn.parts[0].inline_data
        if inline and inline.data:
            audio = base64.b64encode(inline.data).decode("ascii")

    tool_calls: list[ToolCall] = []
    if message.tool_call and message.tool_call.function_calls:
        tool_calls = [to_tool_call(fc) for fc in message.tool_call.function_calls]

    if audio is None and not tool_calls:
        return None
    return StreamEvent(audio=audio, tool_calls=tool_calls)


# ================================================================
# Text
# ================================================================


class GeminiTextBackend:
    def __init__(self, client: genai.Client | None = None, model: str = GEMINI_TEXT_MODEL, logger=None):
        self.client = client or make_client()
        self.model = model
        self.logger = logger or logging.getLogger("GeminiTextBackend")

    async def generate(
        self,
        history: list[Turn],
        tools: list[ToolDeclaration],
        system_instruction: str,
    ) -> ModelReply | None:
        self.logger.debug(f"generate_content with {len(history)} turns")
        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=[to_content(turn) for turn in history],
            config=types.GenerateContentConfig(
                system_instruction=system_instruction,
                tools=to_gemini_tools(tools),
            ),
        )
        return parse_reply(response)


# ================================================================
# Live
# ================================================================


class GeminiLiveConnection:
    input_sample_rate = INPUT_SAMPLE_RATE
    output_sample_rate = OUTPUT_SAMPLE_RATE

    def __init__(self, session, exit_stack: AsyncExitStack, logger=None):
        self.session = session
        self._exit_stack = exit_stack
        self._closed = False
        self.logger = logger or logging.getLogger("GeminiLiveConnection")

    async def send_audio(self, audio: str) -> None:
        await self.session.send_realtime_input(
            audio=types.Blob(
                data=base64.b64decode(audio),
                mime_type=f"audio/pcm;rate={self.input_sample_rate}",
            )
        )

    async def send_tool_results(self, responses: list[ToolResponse]) -> None:
        await self.session.send_tool_response(
            function_responses=[to_function_response(r) for r in responses]
        )
        self.logger.debug(f"Sent {len(responses)} tool responses")

    async def events(self) -> AsyncIterator[StreamEvent]:
        # receive() stops at the end of every model turn; keep listening until
        # the socket closes.
        while not self._closed:
            received = 0
            async for message in self.session.receive():
                received += 1
                event = parse_live_message(message)
                if event is not None:
                    yield event
            if not received:
                self.logger.info("Gemini Live stream ended")
                return

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._exit_stack.aclose()


class GeminiLiveBackend:
    default_voice = LIVE_VOICE

    def __init__(self, client: genai.Client | None = None, model: str = GEMINI_LIVE_MODEL, logger=None):
        self.client = client or make_client()
        self.model = model
        self.logger = logger or logging.getLogger("GeminiLiveBackend")

    def build_config(self, config: LiveSessionConfig) -> types.LiveConnectConfig:
        return types.LiveConnectConfig(
            response_modalities=[types.Modality.AUDIO],
            system_instruction=config.system_instruction,
            tools=to_gemini_tools(config.tools),
            speech_config=types.SpeechConfig(
                voice_config=types.VoiceConfig(
                    prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=config.voice)
                )
            ),
        )

    async def connect(self, config: LiveSessionConfig) -> GeminiLiveConnection:
        self.logger.info(f"Connecting to Gemini Live ({self.model})...")
        exit_stack = AsyncExitStack()
        try:
            session = await exit_stack.enter_async_context(
                self.client.aio.live.connect(model=self.model, config=self.build_config(config))
            )
        except BaseException:
            await exit_stack.aclose()
            raise
        self.logger.info("Gemini Live session established")
        return GeminiLiveConnection(session, exit_stack)


# ================================================================
# Briefing (JSON summary + speech)
# ================================================================

BRIEFING_SCHEMA = types.Schema(
    type=types.Type.OBJECT,
    properties={
        key: types.Schema(type=types.Type.ARRAY, items=types.Schema(type=types.Type.STRING))
        for key in ("wins", "urgent", "general")
    },
)


class GeminiBriefingBackend:
    def __init__(
        self,
        client: genai.Client | None = None,
        text_model: str = GEMINI_TEXT_MODEL,
        tts_model: str = GEMINI_TTS_MODEL,
        logger=None,
    ):
        self.client = client or make_client()
        self.text_model = text_model
        self.tts_model = tts_model
        self.logger = logger or logging.getLogger("GeminiBriefingBackend")

    async def summarize(self, prompt: str) -> str | None:
        response = await self.client.aio.models.generate_content(
            model=self.text_model,
            contents=prompt,
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=BRIEFING_SCHEMA,
            ),
        )
        return response.text

    async def synthesize(self, script: str, voice: str) -> str | None:
        response = await self.client.aio.models.generate_content(
            model=self.tts_model,
            contents=[types.Content(role="user", parts=[types.Part(text=script)])],
            config=types.GenerateContentConfig(
                response_modalities=[types.Modality.AUDIO],
                speech_config=types.SpeechConfig(
                    voice_config=types.VoiceConfig(
                        prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=voice)
                    )
                ),
            ),
        )
        data = _first_inline_data(response)
        if data is None:
            return None
        return base64.b64encode(data).decode("ascii")


def _first_inline_data(response: types.GenerateContentResponse) -> Any:
    if not response.candidates:
        return None
    content = response.candidates[0].content
    if content is None or not content.parts:
        return None
    inline = content.parts[0].inline_data
    return inline.data if inline else None
