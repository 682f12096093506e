import logging
import random
import re
from typing import Iterable, List, Optional

logger = logging.getLogger("story-weaver")

# Keywords that might indicate a theme unsuitable for ages 3-6
BLOCKED_TERMS = [
    "violent",
    "kill",
    "murder",
    "blood",
    "death",
    "weapon",
    "gun",
    "knife",
    "suicide",
    "drug",
    "alcohol",
    "naked",
    "nude",
    "sex",
    "explicit",
    "terror",
    "nightmare",
    "horror",
    "gruesome",
]

# Themes offered back when a prompt is turned away
FRIENDLY_THEMES = [
    "friendship",
    "adventure",
    "animals",
    "family",
    "imagination",
    "nature",
    "kindness",
    "sharing",
    "courage",
    "discovery",
    "space",
    "dragons",
]


class ContentScreener:
    """Screens story prompts and pages for young readers"""

    def __init__(self, extra_terms: Optional[Iterable[str]] = None):
        terms: List[str] = BLOCKED_TERMS + list(extra_terms or [])
        self._blocked_pattern = re.compile(
            r"\b(" + "|".join(re.escape(term) for term in terms) + r")\b",
            re.IGNORECASE,
        )

    def find_blocked_terms(self, text: str) -> List[str]:
        return [match.lower() for match in self._blocked_pattern.findall(text)]

    def validate_prompt(self, prompt: str) -> None:
        """
        Validates that a prompt is appropriate for a children's story.
        Raises ValueError if a blocked theme is detected.
        """
        matches = self.find_blocked_terms(prompt)
        if matches:
            # Log the issue but don't expose specific terms in the error
            logger.warning(f"Inappropriate content detected in prompt: {matches}")
            raise ValueError(
                "That idea isn't quite right for a bedtime story. "
                "Try something about friendship, adventure, or animals."
            )

    def suggest_alternative(self, prompt: str) -> str:
        """Offer a friendly theme, reusing one from the prompt when possible"""
        words = prompt.lower().split()
        themes = [theme for theme in FRIENDLY_THEMES if theme in words]
        return f"a story about {random.choice(themes or FRIENDLY_THEMES)}"

    def screen_generated_content(self, content: str) -> bool:
        """True when generated text is free of blocked terms"""
        matches = self.find_blocked_terms(content)
        if matches:
            logger.warning(f"Generated page contains blocked terms: {matches}")
            return False
        return True
