"""
Audio decoding for narration returned by the speech model.

Gemini TTS responds with raw PCM: signed 16-bit little-endian samples, mono,
24 kHz. This module turns those bytes into a normalized float buffer that the
playback layer can hand to the sound card, and back into a pydub segment when
the narration is exported.
"""

import io
import logging

import numpy as np

logger = logging.getLogger("story-weaver")

SAMPLE_RATE = 24000
SAMPLE_WIDTH = 2  # bytes per PCM16 sample
PCM16_SCALE = 32768.0


class AudioBuffer:
    """Decoded mono audio, float32 samples in [-1.0, 1.0)"""

    def __init__(self, samples: np.ndarray, sample_rate: int = SAMPLE_RATE, channels: int = 1):
        self.samples = samples
        self.sample_rate = sample_rate
        self.channels = channels

    def __repr__(self) -> str:
        return f"AudioBuffer(frames={self.frame_count}, sample_rate={self.sample_rate})"

    @property
    def frame_count(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration_seconds(self) -> float:
        if not self.sample_rate:
            return 0.0
        return self.frame_count / self.sample_rate

    def to_pcm16(self) -> bytes:
        """Re-encode the samples as little-endian int16 bytes"""
        scaled = np.round(self.samples.astype(np.float64) * PCM16_SCALE)
        return np.clip(scaled, -32768, 32767).astype("<i2").tobytes()

    def to_audio_segment(self):
        """Build a pydub AudioSegment for export"""
        from pydub import AudioSegment

        return AudioSegment(
            data=self.to_pcm16(),
            sample_width=SAMPLE_WIDTH,
            frame_rate=self.sample_rate,
            channels=self.channels,
        )

    def export(self, audio_format: str = "wav") -> bytes:
        """Encode the buffer as a complete audio file (wav needs no ffmpeg)"""
        out = io.BytesIO()
        self.to_audio_segment().export(out, format=audio_format)
        return out.getvalue()


def decode_pcm16(data: bytes, sample_rate: int = SAMPLE_RATE) -> AudioBuffer:
    """
    Decode raw PCM16 LE mono bytes into an AudioBuffer.

    Each sample maps to sample / 32768.0. An odd trailing byte cannot form a
    sample and is dropped.
    """
    if len(data) % SAMPLE_WIDTH:
        logger.warning(f"PCM payload has odd length ({len(data)} bytes), dropping trailing byte")
        data = data[: len(data) - 1]

    ints = np.frombuffer(data, dtype="<i2")
    samples = ints.astype(np.float32) / np.float32(PCM16_SCALE)
    return AudioBuffer(samples=samples, sample_rate=sample_rate, channels=1)
