"""
PCM16 wire format <-> float samples.

The AI backends exchange mono little-endian 16-bit PCM as base64 text.
Playback and capture work on float32 samples in [-1, 1].
"""

import base64
from dataclasses import dataclass

import numpy as np

PCM_DTYPE = np.dtype("<i2")


def decode(data: str) -> np.ndarray:
    """Decode base64 PCM16 into float32 samples normalized by 32768."""
    raw = base64.b64decode(data)
    if len(raw) % 2:
        raw = raw[:-1]
    pcm16 = np.frombuffer(raw, dtype=PCM_DTYPE)
    return pcm16.astype(np.float32) / 32768.0


def encode(samples: np.ndarray) -> str:
    """Encode float samples as base64 PCM16.

    Positive samples scale by 32767 and negative ones by 32768, so both ends
    of [-1, 1] map onto the full int16 range.
    """
    clipped = np.clip(np.asarray(samples, dtype=np.float32), -1.0, 1.0)
    scaled = np.where(clipped < 0, clipped * 32768.0, clipped * 32767.0)
    # Truncate toward zero like an Int16Array store does.
    pcm16 = np.trunc(scaled).astype(PCM_DTYPE)
    return base64.b64encode(pcm16.tobytes()).decode("ascii")


def resample(samples: np.ndarray, source_rate: int, target_rate: int) -> np.ndarray:
    """Linear-interpolation resampling; good enough for speech."""
    if source_rate == target_rate or len(samples) == 0:
        return np.asarray(samples, dtype=np.float32)
    duration = len(samples) / source_rate
    target_length = max(1, int(round(duration * target_rate)))
    source_times = np.arange(len(samples)) / source_rate
    target_times = np.arange(target_length) / target_rate
    return np.interp(target_times, source_times, samples).astype(np.float32)


@dataclass(frozen=True)
class AudioChunk:
    samples: np.ndarray
    sample_rate: int

    @property
    def duration(self) -> float:
        return len(self.samples) / self.sample_rate

    @classmethod
    def from_base64(cls, data: str, sample_rate: int) -> "AudioChunk":
        return cls(samples=decode(data), sample_rate=sample_rate)

    def to_base64(self) -> str:
        return encode(self.samples)
