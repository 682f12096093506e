import pytest

from storyweaver.content_safety import FRIENDLY_THEMES, ContentScreener


@pytest.fixture
def screener():
    return ContentScreener()


@pytest.mark.parametrize(
    "prompt",
    ["a brave little rocket", "a sleepy dragon who loves pancakes", "the killer whale's birthday"],
)
def test_friendly_prompts_pass(screener, prompt):
    screener.validate_prompt(prompt)


@pytest.mark.parametrize("prompt", ["a HORROR story", "a pirate with a gun", "nightmare in the woods"])
def test_blocked_prompts_raise(screener, prompt):
    with pytest.raises(ValueError):
        screener.validate_prompt(prompt)


def test_extra_terms(screener):
    strict = ContentScreener(extra_terms=["zombie"])
    screener.validate_prompt("a zombie picnic")
    with pytest.raises(ValueError):
        strict.validate_prompt("a zombie picnic")


def test_suggest_alternative_reuses_friendly_theme(screener):
    assert screener.suggest_alternative("dragons and blood") == "a story about dragons"


def test_suggest_alternative_falls_back_to_any_theme(screener):
    suggestion = screener.suggest_alternative("something scary")
    assert suggestion.startswith("a story about ")
    assert suggestion[len("a story about "):] in FRIENDLY_THEMES


def test_screen_generated_content(screener, caplog):
    assert screener.screen_generated_content("The bunny shared her carrots.") is True
    assert screener.screen_generated_content("There was blood on the floor.") is False
    assert "blood" in caplog.text
