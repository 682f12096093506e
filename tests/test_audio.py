import struct

import numpy as np

from storyweaver.audio import SAMPLE_RATE, AudioBuffer, decode_pcm16


def test_decode_preserves_sample_count_and_scale():
    values = [0, 1, -1, 16384, -16384, 32767, -32768]
    data = struct.pack(f"<{len(values)}h", *values)

    buffer = decode_pcm16(data)

    assert buffer.frame_count == len(data) // 2
    assert buffer.sample_rate == SAMPLE_RATE
    assert buffer.channels == 1
    assert buffer.samples.dtype == np.float32
    for sample, value in zip(buffer.samples, values):
        assert sample == value / 32768.0
    assert buffer.samples.min() >= -1.0
    assert buffer.samples.max() < 1.0


def test_decode_is_little_endian():
    buffer = decode_pcm16(b"\x00\x01")  # 0x0100 = 256
    assert buffer.samples[0] == 256 / 32768.0


def test_decode_is_deterministic():
    data = np.arange(-500, 500, dtype="<i2").tobytes()
    first = decode_pcm16(data)
    second = decode_pcm16(data)
    assert np.array_equal(first.samples, second.samples)


def test_odd_length_drops_trailing_byte(caplog):
    data = struct.pack("<2h", 100, -100) + b"\x7f"

    buffer = decode_pcm16(data)

    assert buffer.frame_count == 2
    assert "odd length" in caplog.text


def test_empty_payload_gives_empty_buffer():
    buffer = decode_pcm16(b"")
    assert buffer.frame_count == 0
    assert buffer.duration_seconds == 0.0


def test_silence_duration():
    buffer = decode_pcm16(bytes(48000))
    assert buffer.frame_count == 24000
    assert buffer.duration_seconds == 1.0
    assert not buffer.samples.any()


def test_to_pcm16_reencodes_original_bytes():
    data = struct.pack("<4h", 0, 1234, -32768, 32767)
    assert decode_pcm16(data).to_pcm16() == data


def test_export_wav_has_riff_header():
    buffer = AudioBuffer(samples=np.zeros(240, dtype=np.float32))
    wav = buffer.export("wav")
    assert wav[:4] == b"RIFF"
    assert wav[8:12] == b"WAVE"
