"""
Story orchestration.

StoryWeaver owns the page list, the read position and the loading flags. Each
page is built in two stages: the chat session writes the text, then the
illustration and narration are requested together. Results land in the page as
they arrive and listeners are notified after every change, so a renderer can
show partial pages.
"""

import asyncio
import logging
import time
from typing import Callable, Iterable, List, Optional, Union

from storyweaver.content_safety import ContentScreener
from storyweaver.model_providers import (
    GenerationGateway,
    ResultStatus,
    SessionError,
    StorySession,
)
from storyweaver.models import LoadingState, NavigationDirection, Page
from storyweaver.playback import PlaybackController
from storyweaver.settings import AppConfig
from storyweaver.utils import log_memory_usage

logger = logging.getLogger("story-weaver")

Listener = Callable[["StoryWeaver"], None]


class StoryWeaver:
    """Turns one prompt into a growing, illustrated, narrated story"""

    def __init__(
        self,
        gateway: GenerationGateway,
        playback: PlaybackController,
        content_screener: Optional[ContentScreener] = None,
        listeners: Optional[Iterable[Listener]] = None,
    ):
        self.gateway = gateway
        self.playback = playback
        self.content_screener = content_screener or ContentScreener()
        self._listeners: List[Listener] = list(listeners or [])

        self.pages: List[Page] = []
        self.current_page_index = 0
        self.loading = LoadingState()
        self.is_story_started = False
        self._session: Optional[StorySession] = None

    # --- views ---

    @property
    def is_loading(self) -> bool:
        return self.loading.is_loading

    @property
    def page_count(self) -> int:
        return len(self.pages)

    @property
    def current_page(self) -> Optional[Page]:
        """The page under the read position, None while it is still being written"""
        if 0 <= self.current_page_index < len(self.pages):
            return self.pages[self.current_page_index]
        return None

    @property
    def session(self) -> Optional[StorySession]:
        return self._session

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.error(f"Story listener {listener!r} failed: {e}")

    # --- story lifecycle ---

    async def start_story(self, prompt: str) -> bool:
        """
        Begin a new story from the user's prompt.

        Returns True once page 0 exists. Returns False when the session or the
        opening text could not be produced; the story is then reset to the
        not-started state. Raises ValueError for an empty or unsuitable prompt
        before anything changes.
        """
        prompt = prompt.strip()
        if not prompt:
            raise ValueError("Story prompt must not be empty")
        self.content_screener.validate_prompt(prompt)

        if self.is_loading:
            logger.warning("start_story ignored: a page is still being generated")
            return False

        log_memory_usage("narrative_engine.StoryWeaver.start_story: start")
        self.pages = []
        self.current_page_index = 0
        self.loading.set_all(True)
        self.is_story_started = True
        self._notify()

        try:
            self._session = self.gateway.open_session(AppConfig.get_value("system_instruction"))
        except SessionError as e:
            logger.error(f"Failed to start story: {e}")
            self._abandon_story()
            return False
        except Exception as e:
            logger.exception(f"Unexpected error opening story session: {e}")
            self._abandon_story()
            return False

        opening_prompt = AppConfig.get_value("opening_prompt").format(prompt=prompt)
        page = await self._generate_page(0, opening_prompt)
        if page is None:
            self._abandon_story()
            return False
        return True

    def _abandon_story(self) -> None:
        self._session = None
        self.pages = []
        self.current_page_index = 0
        self.loading.clear()
        self.is_story_started = False
        self._notify()

    async def advance_page(self, direction: Union[NavigationDirection, str]) -> bool:
        """
        Move the read position. Returns False when the move was ignored.

        Stepping past the last page moves the position onto the frontier right
        away and generates the page there.
        """
        direction = NavigationDirection(direction)
        if not self.is_story_started or self.is_loading:
            return False

        if direction is NavigationDirection.PREV:
            if self.current_page_index > 0:
                self.current_page_index -= 1
                self._notify()
                return True
            return False

        next_index = self.current_page_index + 1
        if next_index < len(self.pages):
            self.current_page_index = next_index
            self._notify()
            return True

        if self.current_page_index >= len(self.pages):
            # Last continuation failed; retry the missing page where we stand
            await self.generate_next_page(len(self.pages))
            return True

        self.current_page_index = next_index
        self._notify()
        await self.generate_next_page(next_index)
        return True

    async def generate_next_page(self, index: int) -> Optional[Page]:
        """Continue the story into page `index`, which must be the next unwritten page"""
        if self._session is None:
            logger.warning("generate_next_page called without an active story session")
            return None
        if self.is_loading:
            logger.warning(f"generate_next_page({index}) ignored: a page is still being generated")
            return None
        if index != len(self.pages):
            raise ValueError(f"Next page to generate is {len(self.pages)}, not {index}")

        self.loading.set_all(True)
        self._notify()
        return await self._generate_page(index, AppConfig.get_value("continuation_prompt"))

    def play_page_audio(self, index: int) -> bool:
        """Replay a page's narration. False when the page has no audio or it cannot be played."""
        if not 0 <= index < len(self.pages):
            return False
        audio = self.pages[index].audio
        if audio is None:
            return False
        return self._play(audio, index)

    def _play(self, audio, index: int) -> bool:
        try:
            self.playback.play(audio)
        except Exception as e:
            logger.error(f"Could not play narration for page {index}: {e}")
            return False
        return True

    # --- page pipeline ---

    async def _generate_page(self, index: int, prompt: str) -> Optional[Page]:
        start_time = time.monotonic()
        try:
            text = await self.gateway.continue_session(self._session, prompt)
        except Exception as e:
            logger.error(f"Failed to generate text for page {index}: {e}")
            self.loading.clear()
            self._notify()
            return None

        self.content_screener.screen_generated_content(text)
        page = Page(id=index, text=text)
        self.pages.append(page)
        self.loading.text = False
        self._notify()

        results = await asyncio.gather(
            self._fill_image(page), self._fill_audio(page), return_exceptions=True
        )
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"Unexpected asset failure on page {index}: {result}")

        self.loading.clear()
        self._notify()

        elapsed = time.monotonic() - start_time
        logger.info(
            f"Page {index} ready in {elapsed:.2f} seconds "
            f"(image={page.has_image}, audio={page.has_audio}, words={len(text.split())})"
        )
        log_memory_usage(f"narrative_engine.StoryWeaver._generate_page: page {index}")

        if page.audio is not None:
            self._play(page.audio, index)
        return page

    async def _fill_image(self, page: Page) -> None:
        try:
            result = await self.gateway.generate_image(page.text)
            if result.status is ResultStatus.SUCCESS:
                page.image = result.value
            elif result.status is ResultStatus.ERROR:
                logger.warning(f"No illustration for page {page.id}: {result.error}")
            else:
                logger.info(f"Image model returned nothing for page {page.id}")
        finally:
            self.loading.image = False
            self._notify()

    async def _fill_audio(self, page: Page) -> None:
        try:
            result = await self.gateway.generate_speech(page.text)
            if result.status is ResultStatus.SUCCESS:
                page.audio = self.gateway.decode_audio(result.value)
            elif result.status is ResultStatus.ERROR:
                logger.warning(f"No narration for page {page.id}: {result.error}")
            else:
                logger.info(f"Speech model returned nothing for page {page.id}")
        finally:
            self.loading.audio = False
            self._notify()
