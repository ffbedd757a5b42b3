"""
Audio devices backed by PyAudio.

PortAudio calls back on its own thread; both devices hand data over to the
asyncio loop with ``call_soon_threadsafe`` so the session only ever touches
audio state from the loop.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Protocol

import numpy as np
import pyaudio

from crm_copilot.config import (
    CAPTURE_FRAME_SIZE,
    CHANNELS,
    INPUT_SAMPLE_RATE,
    OUTPUT_SAMPLE_RATE,
    PLAYBACK_FRAME_SIZE,
)
from crm_copilot.errors import AudioDeviceError, MicrophonePermissionError


class OutputDevice(Protocol):
    sample_rate: int

    async def open(self) -> None: ...

    @property
    def current_time(self) -> float: ...

    def play(self, samples: np.ndarray, start_time: float, on_ended: Callable[[], None] | None = None) -> None: ...

    def stop(self) -> None: ...

    async def close(self) -> None: ...


class InputDevice(Protocol):
    sample_rate: int

    async def open(self) -> None: ...

    def frames(self) -> AsyncIterator[np.ndarray]: ...

    def stop(self) -> None: ...

    async def close(self) -> None: ...


# ================================================================
# Speaker
# ================================================================


@dataclass
class _PendingBuffer:
    start_frame: int
    samples: np.ndarray
    on_ended: Callable[[], None] | None

    @property
    def end_frame(self) -> int:
        return self.start_frame + len(self.samples)


class PyAudioOutputDevice:
    """
    Speaker with time-stamped playback.

    The device clock counts every frame handed to PortAudio, silence included,
    so ``current_time`` keeps advancing while nothing is queued. Buffers are
    mixed into the callback window that covers their start frame.
    """

    def __init__(self, sample_rate: int = OUTPUT_SAMPLE_RATE, frames_per_buffer: int = PLAYBACK_FRAME_SIZE, logger=None):
        self.sample_rate = sample_rate
        self.frames_per_buffer = frames_per_buffer
        self.logger = logger or logging.getLogger("PyAudioOutputDevice")
        self._interface = None
        self._stream = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._lock = threading.Lock()
        self._pending: list[_PendingBuffer] = []
        self._frames_rendered = 0

    async def open(self) -> None:
        self._loop = asyncio.get_running_loop()
        self.logger.info("Opening audio output...")
        try:
            self._interface = pyaudio.PyAudio()
            self._stream = self._interface.open(
                format=pyaudio.paFloat32,
                channels=CHANNELS,
                rate=self.sample_rate,
                output=True,
                frames_per_buffer=self.frames_per_buffer,
                stream_callback=self._render,
            )
            self._stream.start_stream()
        except (OSError, ValueError) as exc:
            await self.close()
            raise AudioDeviceError(f"Audio output unavailable: {exc}") from exc
        self.logger.info("Audio output ready")

    @property
    def current_time(self) -> float:
        with self._lock:
            return self._frames_rendered / self.sample_rate

    def play(self, samples: np.ndarray, start_time: float, on_ended: Callable[[], None] | None = None) -> None:
        start_frame = int(round(start_time * self.sample_rate))
        with self._lock:
            # A start already rendered past plays from the next window instead of losing its head.
            if start_frame < self._frames_rendered:
                self.logger.debug(f"Late buffer moved from frame {start_frame} to {self._frames_rendered}")
                start_frame = self._frames_rendered
            self._pending.append(_PendingBuffer(start_frame, np.asarray(samples, dtype=np.float32), on_ended))

    def stop(self) -> None:
        with self._lock:
            self._pending.clear()

    async def close(self) -> None:
        self.stop()
        if self._stream is not None:
            self._stream.stop_stream()
            self._stream.close()
            self._stream = None
        if self._interface is not None:
            self._interface.terminate()
            self._interface = None
        self.logger.info("Audio output closed")

    def _render(self, in_data, frame_count, time_info, status):
        out = np.zeros(frame_count, dtype=np.float32)
        finished: list[_PendingBuffer] = []
        with self._lock:
            window_start = self._frames_rendered
            window_end = window_start + frame_count
            for buffer in self._pending:
                lo = max(window_start, buffer.start_frame)
                hi = min(window_end, buffer.end_frame)
                if lo < hi:
                    out[lo - window_start:hi - window_start] += buffer.samples[
                        lo - buffer.start_frame:hi - buffer.start_frame
                    ]
                if buffer.end_frame <= window_end:
                    finished.append(buffer)
            for buffer in finished:
                self._pending.remove(buffer)
            self._frames_rendered = window_end

        if self._loop is not None:
            for buffer in finished:
                if buffer.on_ended is not None:
                    self._loop.call_soon_threadsafe(buffer.on_ended)
        return out.tobytes(), pyaudio.paContinue


# ================================================================
# Microphone
# ================================================================


class PyAudioMicrophone:
    """Mono capture delivered as fixed-size float32 frames."""

    def __init__(self, sample_rate: int = INPUT_SAMPLE_RATE, frame_size: int = CAPTURE_FRAME_SIZE, logger=None):
        self.sample_rate = sample_rate
        self.frame_size = frame_size
        self.logger = logger or logging.getLogger("PyAudioMicrophone")
        self._interface = None
        self._stream = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue | None = None

    async def open(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self.logger.info("Opening microphone...")
        try:
            self._interface = pyaudio.PyAudio()
            self._stream = self._interface.open(
                format=pyaudio.paFloat32,
                channels=CHANNELS,
                rate=self.sample_rate,
                input=True,
                frames_per_buffer=self.frame_size,
                stream_callback=self._capture,
            )
            self._stream.start_stream()
        except (OSError, ValueError) as exc:
            await self.close()
            raise MicrophonePermissionError(f"Microphone unavailable: {exc}") from exc
        self.logger.info("Microphone ready")

    async def frames(self) -> AsyncIterator[np.ndarray]:
        if self._queue is None:
            return
        while True:
            frame = await self._queue.get()
            if frame is None:
                return
            yield frame

    def stop(self) -> None:
        if self._stream is not None:
            self._stream.stop_stream()
        if self._queue is not None:
            self._queue.put_nowait(None)

    async def close(self) -> None:
        if self._stream is not None:
            self._stream.close()
            self._stream = None
        if self._interface is not None:
            self._interface.terminate()
            self._interface = None
        self.logger.info("Microphone closed")

    def _capture(self, in_data, frame_count, time_info, status):
        frame = np.frombuffer(in_data, dtype=np.float32).copy()
        if self._loop is not None and self._queue is not None:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, frame)
        return None, pyaudio.paContinue
