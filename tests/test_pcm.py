import base64

import numpy as np
import pytest

from crm_copilot.audio.pcm import AudioChunk, decode, encode, resample


def _pcm(values) -> str:
    return base64.b64encode(np.asarray(values, dtype="<i2").tobytes()).decode("ascii")


def _ints(data: str) -> np.ndarray:
    return np.frombuffer(base64.b64decode(data), dtype="<i2")


def test_decode_normalizes_by_32768():
    samples = decode(_pcm([0, 16384, -32768, 32767]))

    assert samples.dtype == np.float32
    assert samples.tolist() == pytest.approx([0.0, 0.5, -1.0, 32767 / 32768])


def test_decode_ignores_trailing_odd_byte():
    raw = np.asarray([100, -100], dtype="<i2").tobytes() + b"\x01"

    samples = decode(base64.b64encode(raw).decode("ascii"))

    assert len(samples) == 2


def test_encode_uses_asymmetric_scale():
    assert _ints(encode(np.array([1.0, -1.0, 0.5, -0.5, 0.0], dtype=np.float32))).tolist() == [
        32767,
        -32768,
        16383,
        -16384,
        0,
    ]


def test_encode_clamps_out_of_range_samples():
    assert _ints(encode(np.array([2.5, -3.0]))).tolist() == [32767, -32768]


def test_encode_of_decode_is_within_one_step():
    rng = np.random.default_rng(7)
    original = np.concatenate([
        rng.integers(-32768, 32768, size=2000),
        [-32768, -1, 0, 1, 32767],
    ]).astype("<i2")

    restored = _ints(encode(decode(_pcm(original))))

    assert np.max(np.abs(restored.astype(int) - original.astype(int))) <= 1


def test_resample_changes_length_by_rate_ratio():
    samples = np.linspace(-1, 1, 1600, dtype=np.float32)

    upsampled = resample(samples, 16000, 24000)

    assert len(upsampled) == 2400
    assert upsampled[0] == pytest.approx(-1.0)


def test_resample_same_rate_is_identity():
    samples = np.array([0.1, 0.2], dtype=np.float32)

    assert resample(samples, 24000, 24000).tolist() == pytest.approx([0.1, 0.2])


def test_audio_chunk_duration():
    chunk = AudioChunk.from_base64(_pcm([0] * 2400), 24000)

    assert chunk.duration == pytest.approx(0.1)
    assert _ints(chunk.to_base64()).tolist() == [0] * 2400
