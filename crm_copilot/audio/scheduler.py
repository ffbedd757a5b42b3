from dataclasses import dataclass

from crm_copilot.config import SPEAKING_DRAIN_THRESHOLD


@dataclass(frozen=True)
class ScheduledChunk:
    start: float
    end: float


class PlaybackScheduler:
    """
    Gapless FIFO playback clock.

    Each chunk starts at ``max(now, next_start_time)`` and pushes the cursor
    forward by its duration, so chunks never overlap and back-to-back chunks
    leave no gap even when they arrive in bursts.
    """

    def __init__(self, drain_threshold: float = SPEAKING_DRAIN_THRESHOLD):
        self.drain_threshold = drain_threshold
        self.next_start_time = 0.0

    def schedule(self, duration: float, now: float) -> ScheduledChunk:
        start = max(now, self.next_start_time)
        end = start + duration
        self.next_start_time = end
        return ScheduledChunk(start=start, end=end)

    def is_drained(self, now: float) -> bool:
        return now >= self.next_start_time - self.drain_threshold

    def reset(self) -> None:
        self.next_start_time = 0.0
