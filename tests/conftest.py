"""
Shared fakes for the story pipeline tests.

FakeGateway stands in for the Gemini provider; RecordingOutput stands in for
the sound card and remembers every handle it started.
"""

import asyncio
import os
from typing import List, Optional

import pytest

from storyweaver.model_providers import GenerationGateway, GenerationResult, StorySession
from storyweaver.playback import AudioOutput, PlaybackController, PlaybackHandle
from storyweaver.settings import AppConfig


class FakeHandle(PlaybackHandle):
    def __init__(self, buffer, events: List[str]):
        self.buffer = buffer
        self.stop_calls = 0
        self._active = True
        self._events = events

    @property
    def is_active(self) -> bool:
        return self._active

    def finish(self) -> None:
        self._active = False

    def stop(self) -> None:
        self.stop_calls += 1
        self._active = False
        self._events.append(f"stop:{id(self)}")


class RecordingOutput(AudioOutput):
    def __init__(self):
        self.handles: List[FakeHandle] = []
        self.events: List[str] = []
        self.closed = False

    def start(self, buffer) -> PlaybackHandle:
        handle = FakeHandle(buffer, self.events)
        self.events.append(f"start:{id(handle)}")
        self.handles.append(handle)
        return handle

    def close(self) -> None:
        self.closed = True


class FakeGateway(GenerationGateway):
    """Scripted gateway: texts are handed out in order, assets per settings below"""

    def __init__(self, texts=None):
        super().__init__("fake")
        self.texts = list(texts or ["Once upon a time..."])
        self.prompts: List[str] = []
        self.instructions: List[str] = []
        self.image_prompts: List[str] = []
        self.speech_prompts: List[str] = []
        self.session_error: Optional[Exception] = None
        self.text_error: Optional[Exception] = None
        self.image_result = GenerationResult.success("data:image/png;base64,aW1n")
        self.speech_result = GenerationResult.success(bytes(48000))
        self.in_flight = 0
        self.max_in_flight = 0

    def open_session(self, instruction: str) -> StorySession:
        self.instructions.append(instruction)
        if self.session_error:
            raise self.session_error
        return StorySession(instruction)

    async def continue_session(self, session: StorySession, prompt: str) -> str:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            self.prompts.append(prompt)
            if self.text_error:
                raise self.text_error
            session.turns += 1
            return self.texts[min(len(self.prompts), len(self.texts)) - 1]
        finally:
            self.in_flight -= 1

    async def generate_image(self, prompt: str) -> GenerationResult:
        await asyncio.sleep(0)
        self.image_prompts.append(prompt)
        return self.image_result

    async def generate_speech(self, prompt: str) -> GenerationResult:
        await asyncio.sleep(0)
        self.speech_prompts.append(prompt)
        return self.speech_result


@pytest.fixture(autouse=True)
def clean_config(monkeypatch, tmp_path):
    """Isolate every test from real config files and STORYWEAVER_* variables"""
    for key in list(os.environ):
        if key.startswith("STORYWEAVER_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("STORYWEAVER_CONFIG_PATH", str(tmp_path / "missing.json"))
    monkeypatch.delenv("USE_DUMMY_AI", raising=False)
    AppConfig.reset()
    yield
    AppConfig.reset()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def output():
    return RecordingOutput()


@pytest.fixture
def playback(output):
    return PlaybackController(output)

