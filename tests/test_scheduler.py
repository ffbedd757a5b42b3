import pytest

from crm_copilot.audio.scheduler import PlaybackScheduler


def test_back_to_back_chunks_have_no_gap():
    scheduler = PlaybackScheduler()
    now = 1.0

    slots = [scheduler.schedule(duration, now) for duration in (0.25, 0.5, 0.125)]

    assert slots[0].start == pytest.approx(1.0)
    for previous, current in zip(slots, slots[1:]):
        assert current.start == pytest.approx(previous.end)
    assert scheduler.next_start_time == pytest.approx(1.875)


def test_late_chunk_starts_now_without_overlap():
    scheduler = PlaybackScheduler()
    first = scheduler.schedule(0.5, now=0.0)

    second = scheduler.schedule(0.5, now=2.0)

    assert second.start == pytest.approx(2.0)
    assert second.start >= first.end


def test_burst_never_overlaps():
    scheduler = PlaybackScheduler()
    arrivals = [0.0, 0.01, 0.02, 0.9, 0.91, 3.0]
    slots = [scheduler.schedule(0.3, now) for now in arrivals]

    for previous, current in zip(slots, slots[1:]):
        assert current.start >= previous.end - 1e-9


def test_is_drained_uses_threshold():
    scheduler = PlaybackScheduler(drain_threshold=0.1)
    scheduler.schedule(1.0, now=0.0)

    assert not scheduler.is_drained(0.85)
    assert scheduler.is_drained(0.9)
    assert scheduler.is_drained(1.2)


def test_reset_rewinds_clock():
    scheduler = PlaybackScheduler()
    scheduler.schedule(1.0, now=5.0)

    scheduler.reset()

    assert scheduler.next_start_time == 0.0
