"""
Conversation session with the AI copilot.

Two ways to talk to the model share one transcript and one tool executor:

* streaming (``connect``/``disconnect``): a duplex audio session. Microphone
  frames are sent as soon as they are captured; inbound audio is scheduled
  for gapless playback and tool-call batches are answered in one reply.
* text (``send_text``): a bounded generate / run tools / generate loop.

Inbound streaming events are consumed by a single receive task, so audio is
scheduled in arrival order and a tool batch completes before the next event is
looked at.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable

from crm_copilot.audio.devices import InputDevice, OutputDevice, PyAudioMicrophone, PyAudioOutputDevice
from crm_copilot.audio.pcm import AudioChunk, decode, encode, resample
from crm_copilot.audio.scheduler import PlaybackScheduler
from crm_copilot.backends.base import LiveConnection, LiveSessionConfig, StreamingBackend, TextBackend
from crm_copilot.config import MAX_TOOL_ROUNDS, SPEAKING_DRAIN_THRESHOLD
from crm_copilot.crm.service import CompanyService
from crm_copilot.errors import ConfigurationError
from crm_copilot.events import EventHub, Topic, get_event_hub
from crm_copilot.models import Message, Role, SessionState, ToolCall, ToolResponse, Transcript, Turn
from crm_copilot.navigation import Navigator
from crm_copilot.notifications import ActionIndicator
from crm_copilot.prompts import load_system_prompt
from crm_copilot.tools.executor import ToolExecutor
from crm_copilot.tools.registry import ToolRegistry

TEXT_ERROR_MESSAGE = "Erreur de communication avec l'IA."


class ConversationSession:
    def __init__(
        self,
        crm: CompanyService,
        *,
        streaming_backend: StreamingBackend | None = None,
        text_backend: TextBackend | None = None,
        registry: ToolRegistry | None = None,
        hub: EventHub | None = None,
        navigator: Navigator | None = None,
        output_device_factory: Callable[[], OutputDevice] = PyAudioOutputDevice,
        input_device_factory: Callable[[], InputDevice] = PyAudioMicrophone,
        voice: str | None = None,
        speaking_threshold: float = SPEAKING_DRAIN_THRESHOLD,
        max_tool_rounds: int = MAX_TOOL_ROUNDS,
        logger=None,
    ):
        self.logger = logger or logging.getLogger("ConversationSession")
        self.hub = hub or get_event_hub()
        self.registry = registry or ToolRegistry()
        self.navigator = navigator or Navigator(self.hub, logger=self.logger)
        self.streaming_backend = streaming_backend
        self.text_backend = text_backend
        self.output_device_factory = output_device_factory
        self.input_device_factory = input_device_factory
        self.voice = voice or getattr(streaming_backend, "default_voice", None)
        self.max_tool_rounds = max_tool_rounds

        self.transcript = Transcript()
        self.history: list[Turn] = []
        self.last_error: Exception | None = None
        self.indicator = ActionIndicator(self.hub, logger=self.logger)
        self.executor = ToolExecutor(
            self.registry, crm, self.navigator, self.indicator, self.transcript, logger=self.logger
        )
        self.scheduler = PlaybackScheduler(speaking_threshold)

        self._state = SessionState.DISCONNECTED
        self._output: OutputDevice | None = None
        self._input: InputDevice | None = None
        self._connection: LiveConnection | None = None
        self._receive_task: asyncio.Task | None = None
        self._capture_task: asyncio.Task | None = None
        self._connect_attempt = 0

    # ------------------------------------------------------------------ #
    # State
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state in (SessionState.CONNECTED, SessionState.SPEAKING)

    def _set_state(self, state: SessionState) -> None:
        if state is self._state:
            return
        self.logger.debug(f"Session state: {self._state.value} -> {state.value}")
        self._state = state
        self.hub.publish(Topic.SESSION_STATE_CHANGED, state)

    async def wait_closed(self, interval: float = 0.1) -> None:
        while self._state is not SessionState.DISCONNECTED:
            await asyncio.sleep(interval)

    def _has_resources(self) -> bool:
        return any(
            resource is not None
            for resource in (self._output, self._input, self._connection, self._receive_task, self._capture_task)
        )

    # ------------------------------------------------------------------ #
    # Streaming session
    # ------------------------------------------------------------------ #

    async def connect(self) -> bool:
        """Open speaker, microphone and backend session; ``False`` on failure.

        On failure everything acquired so far is released, the session is
        back to DISCONNECTED and the cause is kept in ``last_error``. A
        ``disconnect()`` that lands while devices or the backend are still
        opening abandons the attempt, which then returns ``False``.
        """
        if self._state is not SessionState.DISCONNECTED:
            self.logger.warning(f"connect() ignored while {self._state.value}")
            return self.is_connected

        self.last_error = None
        self._connect_attempt += 1
        attempt = self._connect_attempt
        self._set_state(SessionState.CONNECTING)
        try:
            if self.streaming_backend is None:
                raise ConfigurationError("No streaming backend configured")

            self._output = self.output_device_factory()
            await self._output.open()
            if self._abandoned(attempt):
                return False

            self._input = self.input_device_factory()
            await self._input.open()
            if self._abandoned(attempt):
                return False

            config = LiveSessionConfig(
                tools=self.registry.list(),
                system_instruction=load_system_prompt(self.navigator.location),
                voice=self.voice,
            )
            connection = await self.streaming_backend.connect(config)
            if self._abandoned(attempt):
                # Teardown already ran without seeing this connection.
                await self._best_effort("abandoned backend session close", connection.close)
                return False
            self._connection = connection
        except Exception as exc:
            if self._abandoned(attempt):
                self.logger.warning(f"Abandoned connection attempt failed: {exc}")
                return False
            self.logger.error(f"Connection failed: {exc}")
            self.last_error = exc
            await self._teardown()
            self._set_state(SessionState.DISCONNECTED)
            return False

        self._set_state(SessionState.CONNECTED)
        self._receive_task = asyncio.create_task(self._receive_loop(self._connection))
        self._capture_task = asyncio.create_task(self._capture_loop(self._connection, self._input))
        self.logger.info("Voice session connected")
        return True

    def _abandoned(self, attempt: int) -> bool:
        if self._state is SessionState.CONNECTING and attempt == self._connect_attempt:
            return False
        self.logger.info(f"Connection attempt {attempt} abandoned: session was disconnected")
        return True

    async def disconnect(self) -> None:
        """Release every streaming resource. Never raises; no-op when idle."""
        if self._state is SessionState.DISCONNECTED and not self._has_resources():
            return
        self.logger.info("Disconnecting voice session...")
        await self._teardown()
        self._set_state(SessionState.DISCONNECTED)
        self.logger.info("Voice session disconnected")

    async def _teardown(self) -> None:
        microphone, output, connection = self._input, self._output, self._connection
        capture_task, receive_task = self._capture_task, self._receive_task
        self._input = self._output = self._connection = None
        self._capture_task = self._receive_task = None

        if microphone is not None:
            await self._best_effort("microphone stop", microphone.stop)
        await self._best_effort("capture task cancel", lambda: self._cancel(capture_task))
        if microphone is not None:
            await self._best_effort("microphone close", microphone.close)
        if output is not None:
            await self._best_effort("speaker stop", output.stop)
            await self._best_effort("speaker close", output.close)
        if connection is not None:
            await self._best_effort("backend session close", connection.close)
        await self._best_effort("receive task cancel", lambda: self._cancel(receive_task))
        self.scheduler.reset()

    async def _best_effort(self, label: str, action: Callable[[], Any]) -> None:
        try:
            result = action()
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            self.logger.warning(f"Error during {label}: {exc}")

    @staticmethod
    async def _cancel(task: asyncio.Task | None) -> None:
        # A loop that triggered the disconnect itself finishes on its own.
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _receive_loop(self, connection: LiveConnection) -> None:
        try:
            async for event in connection.events():
                if event.audio:
                    self._play_audio(event.audio, connection.output_sample_rate)
                if event.tool_calls:
                    await self._handle_tool_calls(connection, event.tool_calls)
            self.logger.info("Backend closed the stream")
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.logger.error(f"Stream error: {exc}", exc_info=True)
            self.last_error = exc
        if self._connection is connection:
            await self.disconnect()

    async def _capture_loop(self, connection: LiveConnection, microphone: InputDevice) -> None:
        try:
            async for frame in microphone.frames():
                await connection.send_audio(encode(frame))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.logger.error(f"Failed to send microphone audio: {exc}")
            self.last_error = exc
            if self._connection is connection:
                await self.disconnect()

    def _play_audio(self, audio: str, sample_rate: int) -> None:
        output = self._output
        if output is None:
            return
        samples = decode(audio)
        if sample_rate != output.sample_rate:
            samples = resample(samples, sample_rate, output.sample_rate)
        chunk = AudioChunk(samples=samples, sample_rate=output.sample_rate)
        slot = self.scheduler.schedule(chunk.duration, output.current_time)
        self._set_state(SessionState.SPEAKING)
        output.play(chunk.samples, slot.start, on_ended=self._on_chunk_ended)

    def _on_chunk_ended(self) -> None:
        if self._state is not SessionState.SPEAKING or self._output is None:
            return
        if self.scheduler.is_drained(self._output.current_time):
            self._set_state(SessionState.CONNECTED)

    async def _handle_tool_calls(self, connection: LiveConnection, calls: list[ToolCall]) -> None:
        self.logger.info(f"Tool batch: {[call.name for call in calls]}")
        # Tools already started run to completion even if the session is torn
        # down meanwhile; only the reply is dropped.
        responses = await asyncio.shield(self._run_tools(calls))
        if self._connection is not connection:
            self.logger.warning(f"Session closed; dropping {len(responses)} tool results")
            return
        await connection.send_tool_results(responses)

    async def _run_tools(self, calls: list[ToolCall]) -> list[ToolResponse]:
        async def run(call: ToolCall) -> ToolResponse:
            result = await self.executor.execute(call.name, call.args)
            return ToolResponse(id=call.id, name=call.name, result=result)

        return list(await asyncio.gather(*(run(call) for call in calls)))

    # ------------------------------------------------------------------ #
    # Text mode
    # ------------------------------------------------------------------ #

    async def send_text(self, text: str) -> Message | None:
        """
        Run one typed user message through the model.

        Returns the model's reply as appended to the transcript, an error
        message when the backend failed, or ``None`` when the model ended
        without text (no reply, or the tool-round limit was reached).
        """
        if not text or not text.strip():
            return None
        self.transcript.append(Message(role=Role.USER, text=text))
        self.history.append(Turn.user_text(text))

        if self.text_backend is None:
            self.last_error = ConfigurationError("No text backend configured")
            return self._text_error()

        system_instruction = load_system_prompt(self.navigator.location)
        tools = self.registry.list()
        try:
            for round_number in range(1, self.max_tool_rounds + 1):
                reply = await self.text_backend.generate(list(self.history), tools, system_instruction)
                if reply is None:
                    self.logger.warning("Model returned no candidate")
                    return None
                self.history.append(reply.as_turn())

                if not reply.tool_calls:
                    if not reply.text:
                        return None
                    message = Message(role=Role.MODEL, text=reply.text)
                    self.transcript.append(message)
                    return message

                self.logger.info(f"Round {round_number}: {[call.name for call in reply.tool_calls]}")
                responses = await self._run_tools(reply.tool_calls)
                self.history.append(Turn.tool_results(responses))

            self.logger.warning(f"Stopped after {self.max_tool_rounds} tool rounds")
            return None
        except Exception as exc:
            self.logger.error(f"Error processing message: {exc}", exc_info=True)
            self.last_error = exc
            return self._text_error()

    def _text_error(self) -> Message:
        message = Message(role=Role.MODEL, text=TEXT_ERROR_MESSAGE, is_error=True)
        self.transcript.append(message)
        return message

    def reset(self) -> None:
        """Forget the conversation; the streaming session is left as is."""
        self.transcript.clear()
        self.history.clear()
