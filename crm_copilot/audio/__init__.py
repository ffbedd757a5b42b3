from crm_copilot.audio.pcm import AudioChunk, decode, encode, resample
from crm_copilot.audio.scheduler import PlaybackScheduler, ScheduledChunk

__all__ = [
    "AudioChunk",
    "PlaybackScheduler",
    "ScheduledChunk",
    "decode",
    "encode",
    "resample",
]
