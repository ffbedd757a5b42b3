"""
OpenAI Realtime adapter over websocket-client.

``WebSocketApp`` runs on a daemon thread and drives its callbacks there; each
callback forwards a parsed ``StreamEvent`` (or the end-of-stream marker) to the
asyncio loop, where the session consumes them one at a time.
"""

import asyncio
import json
import logging
import threading
from typing import Any, AsyncIterator

import websocket

from crm_copilot.audio.pcm import decode, encode, resample
from crm_copilot.backends.base import LiveSessionConfig, StreamEvent
from crm_copilot.config import (
    INPUT_SAMPLE_RATE,
    OPENAI_API_KEY,
    REALTIME_API_URL_TEMPLATE,
    REALTIME_MODEL_DEFAULT,
    REALTIME_SAMPLE_RATE,
    REALTIME_VOICE_CHOICE,
)
from crm_copilot.errors import ConfigurationError
from crm_copilot.models import ToolCall, ToolResponse
from crm_copilot.tools.registry import ToolRegistry

AUDIO_DELTA_EVENTS = ("response.output_audio.delta", "response.audio.delta")
_END_OF_STREAM = object()


def build_session_update(config: LiveSessionConfig, model: str) -> dict[str, Any]:
    return {
        "type": "session.update",
        "session": {
            "type": "realtime",
            "model": model,
            "output_modalities": ["audio"],
            "tool_choice": "auto",
            "tools": ToolRegistry(config.tools).to_realtime_specs(),
            "instructions": config.system_instruction,
            "audio": {
                "input": {
                    "format": {"type": "audio/pcm", "rate": REALTIME_SAMPLE_RATE},
                    "turn_detection": {"type": "semantic_vad"},
                },
                "output": {
                    "format": {"type": "audio/pcm", "rate": REALTIME_SAMPLE_RATE},
                    "voice": config.voice,
                },
            },
        },
    }


def parse_server_event(event: dict[str, Any], pending_arguments: dict[str, str] | None = None) -> StreamEvent | None:
    """Translate one Realtime server event into a ``StreamEvent``.

    ``pending_arguments`` accumulates streamed function-call arguments keyed by
    call id, for servers that omit them from ``response.done``.
    """
    pending_arguments = pending_arguments if pending_arguments is not None else {}
    event_type = event.get("type", "unknown")

    if event_type in AUDIO_DELTA_EVENTS:
        delta = event.get("delta")
        return StreamEvent(audio=delta) if delta else None

    if event_type == "response.function_call_arguments.delta":
        call_id = event.get("call_id")
        if call_id:
            pending_arguments[call_id] = pending_arguments.get(call_id, "") + event.get("delta", "")
        return None

    if event_type == "response.done":
        output_items = event.get("response", {}).get("output", [])
        tool_calls = []
        for item in output_items:
            if item.get("type") != "function_call" or not item.get("call_id"):
                continue
            call_id = item["call_id"]
            arguments_str = item.get("arguments") or pending_arguments.pop(call_id, "")
            try:
                args = json.loads(arguments_str) if arguments_str else {}
            except json.JSONDecodeError:
                args = {"_raw_arguments": arguments_str}
            tool_calls.append(ToolCall(id=call_id, name=item.get("name") or "unknown", args=args))
        return StreamEvent(tool_calls=tool_calls) if tool_calls else None

    return None


class OpenAIRealtimeConnection:
    input_sample_rate = INPUT_SAMPLE_RATE
    output_sample_rate = REALTIME_SAMPLE_RATE

    def __init__(self, url: str, headers: list[str], session_update: dict[str, Any], logger=None):
        self.url = url
        self.headers = headers
        self.session_update = session_update
        self.logger = logger or logging.getLogger("OpenAIRealtimeConnection")
        self.ws: websocket.WebSocketApp | None = None
        self.running = False
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue | None = None
        self._opened: asyncio.Future | None = None
        self._thread: threading.Thread | None = None
        self._pending_arguments: dict[str, str] = {}

    async def open(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._opened = self._loop.create_future()
        self.ws = websocket.WebSocketApp(
            self.url,
            header=self.headers,
            on_open=self.on_open,
            on_message=self.on_message,
            on_error=self.on_error,
            on_close=self.on_close,
        )
        self._thread = threading.Thread(target=self.ws.run_forever, name="openai-realtime", daemon=True)
        self._thread.start()
        await self._opened

    # ------------------------------------------------------------------ #
    # WebSocket handlers (websocket-client thread)
    # ------------------------------------------------------------------ #

    def on_open(self, ws):
        self.logger.info("WebSocket connection established")
        self.running = True
        ws.send(json.dumps(self.session_update))
        self._call_soon(self._resolve_open, None)

    def on_message(self, ws, message):
        try:
            event = json.loads(message)
        except json.JSONDecodeError as e:
            self.logger.error(f"Failed to parse message: {e}")
            return
        if event.get("type") == "error":
            self.logger.error(f"ERROR EVENT RECEIVED: {json.dumps(event, indent=2)}")
            return
        stream_event = parse_server_event(event, self._pending_arguments)
        if stream_event is not None:
            self._call_soon(self._queue.put_nowait, stream_event)

    def on_error(self, ws, error):
        self.logger.error(f"WebSocket error: {error}")
        self._call_soon(self._resolve_open, error)

    def on_close(self, ws, close_status_code, close_msg):
        self.logger.info(f"WebSocket connection closed: {close_status_code} - {close_msg}")
        self.running = False
        self._call_soon(self._resolve_open, ConnectionError("WebSocket closed before opening"))
        self._call_soon(self._queue.put_nowait, _END_OF_STREAM)

    def _call_soon(self, callback, *args) -> None:
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(callback, *args)

    def _resolve_open(self, error) -> None:
        if self._opened is None or self._opened.done():
            return
        if error is None:
            self._opened.set_result(None)
        else:
            exc = error if isinstance(error, BaseException) else ConnectionError(str(error))
            self._opened.set_exception(exc)

    # ------------------------------------------------------------------ #
    # Session API (event loop)
    # ------------------------------------------------------------------ #

    async def send_audio(self, audio: str) -> None:
        samples = resample(decode(audio), self.input_sample_rate, REALTIME_SAMPLE_RATE)
        self._send({"type": "input_audio_buffer.append", "audio": encode(samples)})

    async def send_tool_results(self, responses: list[ToolResponse]) -> None:
        for response in responses:
            self._send({
                "type": "conversation.item.create",
                "item": {
                    "type": "function_call_output",
                    "call_id": response.id,
                    "output": json.dumps(response.result),
                },
            })
            self.logger.debug(f"Emitted function_call_output for call_id={response.id}")
        self._send({"type": "response.create", "response": {"output_modalities": ["audio"]}})

    async def events(self) -> AsyncIterator[StreamEvent]:
        while True:
            item = await self._queue.get()
            if item is _END_OF_STREAM:
                return
            yield item

    async def close(self) -> None:
        if self.ws is not None:
            self.ws.close()
        if self._thread is not None:
            await asyncio.to_thread(self._thread.join, 2.0)
            self._thread = None

    def _send(self, event: dict[str, Any]) -> None:
        if not self.ws or not self.running:
            raise ConnectionError("Realtime WebSocket is not connected")
        self.ws.send(json.dumps(event))


class OpenAIRealtimeBackend:
    default_voice = REALTIME_VOICE_CHOICE

    def __init__(self, api_key: str | None = None, model: str = REALTIME_MODEL_DEFAULT, logger=None):
        self.api_key = api_key or OPENAI_API_KEY
        self.model = model
        self.logger = logger or logging.getLogger("OpenAIRealtimeBackend")
        self.url = REALTIME_API_URL_TEMPLATE.format(model=self.model)
        if "api.openai.com" in self.url and not self.api_key:
            raise ConfigurationError("OPENAI_API_KEY environment variable not set")

    async def connect(self, config: LiveSessionConfig) -> OpenAIRealtimeConnection:
        self.logger.info("Connecting to OpenAI Realtime API...")
        # Only add Authorization header if connecting to OpenAI's API
        headers = []
        if "api.openai.com" in self.url and self.api_key:
            headers = [f"Authorization: Bearer {self.api_key}"]
        connection = OpenAIRealtimeConnection(
            self.url, headers, build_session_update(config, self.model)
        )
        await connection.open()
        return connection
