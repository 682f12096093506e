"""
Narration playback.

One PlaybackController owns at most one sounding handle. Outputs are explicit
resources: build one, hand it to the controller, close it when the story ends
(or use it as a context manager).
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import List, Optional

from storyweaver.audio import AudioBuffer

logger = logging.getLogger("story-weaver")


class PlaybackHandle(ABC):
    """A single started playback. stop() must be safe to call at any time."""

    @abstractmethod
    def stop(self) -> None:
        pass

    @property
    @abstractmethod
    def is_active(self) -> bool:
        pass


class AudioOutput(ABC):
    """Abstract base class for sound outputs"""

    @abstractmethod
    def start(self, buffer: AudioBuffer) -> PlaybackHandle:
        """Start playing buffer from offset zero and return its handle"""
        pass

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class _StreamHandle(PlaybackHandle):
    """Wraps a sounddevice OutputStream fed from an AudioBuffer"""

    def __init__(self, sd, buffer: AudioBuffer, on_closed=None):
        self._sd = sd
        self._samples = buffer.samples
        self._position = 0
        self._lock = threading.Lock()
        self._closed = False
        self._on_closed = on_closed
        self._stream = sd.OutputStream(
            samplerate=buffer.sample_rate,
            channels=buffer.channels,
            dtype="float32",
            callback=self._callback,
        )

    def _callback(self, outdata, frames, time_info, status):
        if status:
            logger.debug(f"Playback stream status: {status}")
        chunk = self._samples[self._position : self._position + frames]
        outdata[: len(chunk), 0] = chunk
        if len(chunk) < frames:
            outdata[len(chunk) :, 0] = 0
            self._position += len(chunk)
            raise self._sd.CallbackStop()
        self._position += frames

    def start(self) -> None:
        self._stream.start()

    @property
    def is_active(self) -> bool:
        with self._lock:
            return not self._closed and self._stream.active

    def stop(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            # abort() on a stream that already ran out is harmless
            self._stream.abort()
            self._stream.close()
        if self._on_closed:
            self._on_closed(self)


class SoundDeviceOutput(AudioOutput):
    """Plays buffers on the default (or given) output device via sounddevice"""

    def __init__(self, device=None):
        import sounddevice as sd

        self._sd = sd
        self.device = device
        self._handles: List[_StreamHandle] = []
        if device is not None:
            sd.default.device = (sd.default.device[0], device)
        logger.info(f"Audio output initialized (device={device or 'default'})")

    def start(self, buffer: AudioBuffer) -> PlaybackHandle:
        handle = _StreamHandle(self._sd, buffer, on_closed=self._forget)
        try:
            handle.start()
        except Exception:
            handle.stop()
            raise
        self._handles.append(handle)
        logger.debug(f"Playing {buffer.duration_seconds:.2f}s of narration")
        return handle

    def _forget(self, handle: _StreamHandle) -> None:
        if handle in self._handles:
            self._handles.remove(handle)

    def close(self) -> None:
        for handle in list(self._handles):
            handle.stop()
        self._handles.clear()


class _SilentHandle(PlaybackHandle):
    def __init__(self, duration: float):
        self._ends_at = time.monotonic() + duration
        self._stopped = False

    @property
    def is_active(self) -> bool:
        return not self._stopped and time.monotonic() < self._ends_at

    def stop(self) -> None:
        self._stopped = True


class SilentOutput(AudioOutput):
    """Muted output: handles last as long as the buffer but make no sound"""

    def start(self, buffer: AudioBuffer) -> PlaybackHandle:
        return _SilentHandle(buffer.duration_seconds)


class PlaybackController:
    """Keeps at most one narration sounding; every play preempts the last"""

    def __init__(self, output: AudioOutput):
        self._output = output
        self._active: Optional[PlaybackHandle] = None

    @property
    def active_handle(self) -> Optional[PlaybackHandle]:
        return self._active

    def play(self, buffer: AudioBuffer) -> PlaybackHandle:
        if self._active is not None:
            self._active.stop()
            self._active = None
        handle = self._output.start(buffer)
        self._active = handle
        return handle
