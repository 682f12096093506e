import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

from dotenv import load_dotenv

load_dotenv()

import argparse
import asyncio
import os
from typing import Optional, Set, Tuple

from pydub.exceptions import CouldntEncodeError

from storyweaver.content_safety import ContentScreener
from storyweaver.model_providers import (
    AudioModel,
    ImageModel,
    ModelConfig,
    ModelPreferences,
    ModelProviderFactory,
    TextModel,
)
from storyweaver.narrative_engine import StoryWeaver
from storyweaver.playback import AudioOutput, PlaybackController, SilentOutput, SoundDeviceOutput
from storyweaver.settings import AppConfig
from storyweaver.storage import save_story
from storyweaver.utils import env_flag

logger = logging.getLogger("story-weaver")

COMMAND_HELP = "[n]ext  [p]rev  [r]eplay  [s]ave [dir]  [q]uit"


class ConsoleRenderer:
    """
    Prints the story as it changes, each message once per visit to a page.
    Moving to another page, or starting to write one again, shows it afresh.
    """

    def __init__(self, out=None):
        self.out = out or sys.stdout
        self._shown: Set[Tuple[int, str]] = set()
        self._index: Optional[int] = None
        self._writing = False

    def _once(self, index: int, key: str, message: str) -> None:
        if (index, key) in self._shown:
            return
        self._shown.add((index, key))
        print(message, file=self.out, flush=True)

    def __call__(self, weaver: StoryWeaver) -> None:
        if not weaver.is_story_started:
            self._shown.clear()
            self._index = None
            self._writing = False
            return

        index = weaver.current_page_index
        page = weaver.current_page
        loading = weaver.loading

        if index != self._index or (loading.text and not self._writing):
            self._shown.clear()
            self._index = index
        self._writing = loading.text

        if page is None:
            if loading.text:
                self._once(index, "writing", "Writing the next part of the story...")
            return

        self._once(index, "text", f"\n--- Page {index + 1} ---\n{page.text}\n")
        if loading.image and not page.has_image:
            self._once(index, "drawing", "Drawing a picture...")
        if loading.audio and not page.has_audio:
            self._once(index, "recording", "Recording narration...")
        if not loading.is_loading:
            self._once(index, "image", "[illustration ready]" if page.has_image else "[no illustration]")
            if page.has_audio:
                self._once(index, "audio", f"[narration {page.audio.duration_seconds:.1f}s]")


async def _ask(question: str) -> Optional[str]:
    try:
        return await asyncio.to_thread(input, question)
    except EOFError:
        return None


async def _begin(weaver: StoryWeaver, prompt: Optional[str]) -> bool:
    """Keep asking for a prompt until a story starts. False if the user gives up."""
    while not weaver.is_story_started:
        if not prompt:
            prompt = await _ask("What kind of story would you like to read today? ")
            if prompt is None:
                return False
            prompt = prompt.strip()
            if not prompt:
                continue
        try:
            started = await weaver.start_story(prompt)
        except ValueError as e:
            print(e)
            print(f"How about {weaver.content_screener.suggest_alternative(prompt)}?")
            prompt = None
            continue
        if not started:
            print("The story could not be started. Please try again.")
            prompt = None
    return True


def _save(weaver: StoryWeaver, directory: str, audio_format: str) -> bool:
    try:
        paths = save_story(weaver.pages, directory, audio_format)
    except (OSError, CouldntEncodeError) as e:
        # non-wav export shells out to ffmpeg
        logger.error(f"Saving to {directory} failed: {e}")
        print(f"Could not save the story to {directory}: {e}")
        return False
    print(f"Saved {len(paths)} files to {directory}")
    return True


async def run_story(weaver: StoryWeaver, args: argparse.Namespace) -> int:
    if not await _begin(weaver, args.prompt):
        return 0

    audio_format = AppConfig.get_value("audio_format")

    if args.pages:
        while weaver.page_count < args.pages:
            before = weaver.page_count
            await weaver.advance_page("next")
            if weaver.page_count == before:
                logger.error(f"Stopped after {before} pages: the next page could not be written")
                break
        if args.save_dir:
            _save(weaver, args.save_dir, audio_format)
        return 0

    print(COMMAND_HELP)
    while True:
        line = await _ask("> ")
        if line is None:
            break
        command, _, rest = line.strip().partition(" ")
        command = command.lower()

        if command in ("", "n", "next"):
            await weaver.advance_page("next")
            if weaver.current_page is None:
                print("That page could not be written. Press n to try again.")
        elif command in ("p", "prev", "back"):
            if not await weaver.advance_page("prev"):
                print("This is the first page.")
        elif command in ("r", "play", "replay"):
            if not weaver.play_page_audio(weaver.current_page_index):
                print("There is no narration for this page.")
        elif command in ("s", "save"):
            directory = rest.strip() or args.save_dir or "story"
            _save(weaver, directory, audio_format)
        elif command in ("q", "quit", "exit"):
            break
        else:
            print(COMMAND_HELP)

    if args.save_dir:
        _save(weaver, args.save_dir, audio_format)
    return 0


def _open_output(mute: bool) -> AudioOutput:
    if mute:
        return SilentOutput()
    try:
        return SoundDeviceOutput()
    except OSError as e:
        # PortAudio missing or no output device
        logger.warning(f"Audio output unavailable ({e}); narration will be muted")
        return SilentOutput()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="story-weaver",
        description="Weave an illustrated, narrated children's story one page at a time.",
    )
    parser.add_argument("--prompt", help="what the story should be about")
    parser.add_argument("--pages", type=int, default=0, help="generate this many pages, then exit")
    parser.add_argument("--save-dir", help="write pages, illustrations and narration here")
    parser.add_argument("--mute", action="store_true", help="do not play narration")
    parser.add_argument("--dummy", action="store_true", help="use offline dummy generation (USE_DUMMY_AI)")
    parser.add_argument("--voice", help="prebuilt Gemini voice name, e.g. Kore")
    parser.add_argument("--text-model", choices=[m.value for m in TextModel])
    parser.add_argument("--image-model", choices=[m.value for m in ImageModel])
    parser.add_argument("--audio-model", choices=[m.value for m in AudioModel])
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.getLogger().setLevel(args.log_level)

    if args.dummy:
        os.environ["USE_DUMMY_AI"] = "true"
    if args.voice:
        os.environ["STORYWEAVER_VOICE_NAME"] = args.voice

    preferences = ModelPreferences.from_dict(
        {
            "text_model": args.text_model,
            "image_model": args.image_model,
            "audio_model": args.audio_model,
        }
    )
    logger.info(
        f"Models: text={ModelConfig.TEXT_MODEL_NAMES[preferences.text_model]}, "
        f"image={ModelConfig.IMAGE_MODEL_NAMES[preferences.image_model]}, "
        f"audio={ModelConfig.AUDIO_MODEL_NAMES[preferences.audio_model]}"
    )

    try:
        gateway = ModelProviderFactory.get_provider_for(preferences)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    with _open_output(args.mute or env_flag("USE_DUMMY_AI")) as output:
        weaver = StoryWeaver(
            gateway,
            PlaybackController(output),
            content_screener=ContentScreener(),
            listeners=[ConsoleRenderer()],
        )
        return asyncio.run(run_story(weaver, args))


if __name__ == "__main__":
    sys.exit(main())
