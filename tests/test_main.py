import argparse
import asyncio
import io

from conftest import FakeGateway
from storyweaver.main import ConsoleRenderer, build_parser, main, run_story
from storyweaver.model_providers import GenerationResult, ModelProviderFactory
from storyweaver.narrative_engine import StoryWeaver


def _args(**overrides):
    args = build_parser().parse_args([])
    for key, value in overrides.items():
        setattr(args, key, value)
    return args


def test_parser_defaults():
    args = build_parser().parse_args([])
    assert args.pages == 0
    assert args.mute is False
    assert args.log_level == "WARNING"


def test_renderer_shows_loading_then_page(playback):
    out = io.StringIO()
    gateway = FakeGateway()
    weaver = StoryWeaver(gateway, playback, listeners=[ConsoleRenderer(out)])

    asyncio.run(weaver.start_story("a brave little rocket"))

    text = out.getvalue()
    assert "Writing the next part of the story..." in text
    assert "--- Page 1 ---\nOnce upon a time..." in text
    assert "Drawing a picture..." in text
    assert "Recording narration..." in text
    assert "[illustration ready]" in text
    assert "[narration 1.0s]" in text
    assert text.count("--- Page 1 ---") == 1


def test_renderer_reports_missing_illustration(playback):
    out = io.StringIO()
    gateway = FakeGateway()
    gateway.image_result = GenerationResult.absent()
    weaver = StoryWeaver(gateway, playback, listeners=[ConsoleRenderer(out)])

    asyncio.run(weaver.start_story("a brave little rocket"))

    assert "[no illustration]" in out.getvalue()


def test_run_story_batch_mode(playback, tmp_path):
    gateway = FakeGateway(texts=["One.", "Two.", "Three."])
    weaver = StoryWeaver(gateway, playback)

    code = asyncio.run(run_story(weaver, _args(prompt="a fox", pages=3, save_dir=str(tmp_path))))

    assert code == 0
    assert [p.text for p in weaver.pages] == ["One.", "Two.", "Three."]
    assert (tmp_path / "page_02.txt").read_text(encoding="utf-8") == "Three."


def test_run_story_batch_stops_on_failure(playback):
    gateway = FakeGateway(texts=["One."])
    weaver = StoryWeaver(gateway, playback)

    async def run():
        await weaver.start_story("a fox")
        gateway.text_error = RuntimeError("down")
        return await run_story(weaver, _args(pages=3))

    assert asyncio.run(run()) == 0
    assert len(weaver.pages) == 1


def test_main_dummy_end_to_end(monkeypatch, tmp_path, capsys):
    monkeypatch.setenv("USE_DUMMY_AI", "true")
    ModelProviderFactory.reset()
    try:
        code = main(
            ["--dummy", "--mute", "--prompt", "a brave little rocket", "--pages", "2",
             "--save-dir", str(tmp_path)]
        )
    finally:
        ModelProviderFactory.reset()

    assert code == 0
    assert "--- Page 1 ---" in capsys.readouterr().out
    names = sorted(path.name for path in tmp_path.iterdir())
    assert names == [
        "page_00.png", "page_00.txt", "page_00.wav",
        "page_01.png", "page_01.txt", "page_01.wav",
    ]


def test_renderer_shows_page_again_after_going_back(playback):
    out = io.StringIO()
    gateway = FakeGateway(texts=["Page one.", "Page two."])
    weaver = StoryWeaver(gateway, playback, listeners=[ConsoleRenderer(out)])

    async def read():
        await weaver.start_story("a fox")
        await weaver.advance_page("next")
        out.seek(0)
        out.truncate()
        await weaver.advance_page("prev")
        back = out.getvalue()
        out.seek(0)
        out.truncate()
        await weaver.advance_page("next")
        return back, out.getvalue()

    back, forward = asyncio.run(read())

    assert "--- Page 1 ---\nPage one." in back
    assert "[illustration ready]" in back
    assert "--- Page 2 ---\nPage two." in forward


def test_renderer_shows_writing_again_on_retry(playback):
    out = io.StringIO()
    gateway = FakeGateway(texts=["One.", "Two."])
    weaver = StoryWeaver(gateway, playback, listeners=[ConsoleRenderer(out)])

    async def read():
        await weaver.start_story("a fox")
        gateway.text_error = RuntimeError("down")
        await weaver.advance_page("next")
        gateway.text_error = None
        await weaver.advance_page("next")

    asyncio.run(read())

    text = out.getvalue()
    assert text.count("Writing the next part of the story...") == 3
    assert "--- Page 2 ---\nTwo." in text


def test_save_failure_keeps_the_console_running(playback, monkeypatch, capsys):
    weaver = StoryWeaver(FakeGateway(), playback)
    commands = iter(["s out", "q"])

    async def fake_ask(question):
        return next(commands)

    def missing_ffmpeg(pages, directory, audio_format):
        raise FileNotFoundError("ffmpeg")

    monkeypatch.setattr("storyweaver.main._ask", fake_ask)
    monkeypatch.setattr("storyweaver.main.save_story", missing_ffmpeg)

    code = asyncio.run(run_story(weaver, _args(prompt="a fox")))

    assert code == 0
    assert "Could not save the story to out" in capsys.readouterr().out
