import os
import json
import logging
from typing import Any, Optional

logger = logging.getLogger("story-weaver")

DEFAULT_SYSTEM_INSTRUCTION = (
    "You are a storyteller for young children aged 3-6. "
    "Your stories are simple, positive, and have a touch of magic. "
    "Never say things like 'Page 1' or 'The End'. Just write the story content. "
    "Each response should be a single, short page of the story (one or two paragraphs)."
)


class AppConfig:
    """Application configuration management"""

    # Default configuration values
    _defaults = {
        "google_api_key": None,  # Should be set via environment variable
        "text_model": "gemini-2.5-flash",
        "image_model": "imagen-4.0-generate-001",
        "audio_model": "gemini-2.5-flash-preview-tts",
        "voice_name": "Kore",
        "sample_rate": 24000,
        "image_aspect_ratio": "16:9",
        "executor_workers": 5,
        "system_instruction": DEFAULT_SYSTEM_INSTRUCTION,
        "opening_prompt": "Start a story about {prompt}.",
        "continuation_prompt": "Continue the story. Write the next page.",
        "image_prompt": (
            "A whimsical and vibrant children's book illustration for a story about: "
            "\"{text}\". Use a bright, friendly, cartoon style."
        ),
        "speech_prompt": "Say it in a gentle and friendly storyteller's voice: {text}",
        "audio_format": "wav",
    }

    # Cache for config values
    _config_cache = None

    @classmethod
    def get_value(cls, key: str, default: Any = None) -> Any:
        """
        Get a configuration value.
        Checks environment variables first, then config file, then defaults.
        """
        # Check environment variables (with STORYWEAVER_ prefix)
        env_key = f"STORYWEAVER_{key.upper()}"
        if env_key in os.environ:
            return os.environ[env_key]

        # Load config if not already loaded
        if cls._config_cache is None:
            cls._load_config()

        if key in cls._config_cache:
            return cls._config_cache[key]

        if key in cls._defaults:
            return cls._defaults[key]

        return default

    @classmethod
    def get_int(cls, key: str, default: Optional[int] = None) -> Optional[int]:
        """Get a configuration value coerced to int (env values arrive as strings)"""
        value = cls.get_value(key, default)
        if value is None:
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning(f"Invalid integer for config key {key}: {value!r}, using {default}")
            return default

    @classmethod
    def get_google_api_key(cls) -> Optional[str]:
        """Google AI Studio key: GOOGLE_API_KEY, then GEMINI_API_KEY, then config"""
        for env_key in ("GOOGLE_API_KEY", "GEMINI_API_KEY"):
            if os.environ.get(env_key):
                return os.environ[env_key]
        return cls.get_value("google_api_key")

    @classmethod
    def reset(cls) -> None:
        """Forget the cached config file so the next lookup reloads it"""
        cls._config_cache = None

    @classmethod
    def _load_config(cls) -> None:
        """Load configuration from file"""
        cls._config_cache = {}

        config_path = os.environ.get("STORYWEAVER_CONFIG_PATH", "./config.json")

        try:
            if os.path.exists(config_path):
                with open(config_path, "r") as f:
                    cls._config_cache = json.load(f)
                logger.info(f"Loaded configuration from {config_path}")
            else:
                logger.info("No configuration file found, using defaults")
        except Exception as e:
            logger.error(f"Error loading configuration: {str(e)}")
            # Continue with empty config and defaults
