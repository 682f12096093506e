"""
Model provider system for the generation gateway.
A provider opens narrative chat sessions and produces the text, illustration and
narration for each page of a story.
"""

import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from storyweaver.audio import AudioBuffer, decode_pcm16
from storyweaver.settings import AppConfig

# Configure logging
logger = logging.getLogger("story-weaver")


class StoryWeaverError(Exception):
    """Base class for generation failures"""


class SessionError(StoryWeaverError):
    """A narrative session could not be opened"""


class GenerationError(StoryWeaverError):
    """The text step for a page failed"""


class AssetError(StoryWeaverError):
    """Image or speech generation failed"""


class TextModel(str, enum.Enum):
    """Available text generation models"""
    GEMINI_2_5_FLASH = "gemini-2.5-flash"
    GEMINI_2_5_FLASH_LITE = "gemini-2.5-flash-lite"
    GEMINI_2_5_PRO = "gemini-2.5-pro"


class ImageModel(str, enum.Enum):
    """Available image generation models"""
    IMAGEN_4 = "imagen-4.0-generate-001"
    IMAGEN_4_FAST = "imagen-4.0-fast-generate-001"
    IMAGEN_3 = "imagen-3.0-generate-002"


class AudioModel(str, enum.Enum):
    """Available audio generation models"""
    GEMINI_2_5_FLASH_TTS = "gemini-2.5-flash-preview-tts"
    GEMINI_2_5_PRO_TTS = "gemini-2.5-pro-preview-tts"


class ModelConfig:
    """Model configuration and display name mappings"""

    TEXT_MODEL_NAMES = {
        TextModel.GEMINI_2_5_FLASH: "Gemini 2.5 Flash",
        TextModel.GEMINI_2_5_FLASH_LITE: "Gemini 2.5 Flash - Lite",
        TextModel.GEMINI_2_5_PRO: "Gemini 2.5 Pro",
    }

    IMAGE_MODEL_NAMES = {
        ImageModel.IMAGEN_4: "Imagen 4",
        ImageModel.IMAGEN_4_FAST: "Imagen 4 Fast",
        ImageModel.IMAGEN_3: "Imagen 3",
    }

    AUDIO_MODEL_NAMES = {
        AudioModel.GEMINI_2_5_FLASH_TTS: "Gemini 2.5 Flash TTS",
        AudioModel.GEMINI_2_5_PRO_TTS: "Gemini 2.5 Pro TTS",
    }

    # Every model currently ships through the Gemini API
    TEXT_PROVIDERS = {model: "gemini" for model in TextModel}
    IMAGE_PROVIDERS = {model: "gemini" for model in ImageModel}
    AUDIO_PROVIDERS = {model: "gemini" for model in AudioModel}

    DEFAULT_TEXT_MODEL = TextModel.GEMINI_2_5_FLASH
    DEFAULT_IMAGE_MODEL = ImageModel.IMAGEN_4
    DEFAULT_AUDIO_MODEL = AudioModel.GEMINI_2_5_FLASH_TTS


class ModelPreferences:
    """Container for model preferences"""

    def __init__(
        self,
        text_model: Optional[TextModel] = None,
        image_model: Optional[ImageModel] = None,
        audio_model: Optional[AudioModel] = None,
    ):
        self.text_model = text_model or TextModel(
            AppConfig.get_value("text_model", ModelConfig.DEFAULT_TEXT_MODEL.value)
        )
        self.image_model = image_model or ImageModel(
            AppConfig.get_value("image_model", ModelConfig.DEFAULT_IMAGE_MODEL.value)
        )
        self.audio_model = audio_model or AudioModel(
            AppConfig.get_value("audio_model", ModelConfig.DEFAULT_AUDIO_MODEL.value)
        )

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> "ModelPreferences":
        """Create preferences from a plain mapping (config file, CLI)"""
        return cls(
            text_model=TextModel(data["text_model"]) if data.get("text_model") else None,
            image_model=ImageModel(data["image_model"]) if data.get("image_model") else None,
            audio_model=AudioModel(data["audio_model"]) if data.get("audio_model") else None,
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "text_model": self.text_model.value,
            "image_model": self.image_model.value,
            "audio_model": self.audio_model.value,
        }


class ResultStatus(str, enum.Enum):
    SUCCESS = "success"
    ABSENT = "absent"
    ERROR = "error"


@dataclass
class GenerationResult:
    """Outcome of an asset call: a value, nothing, or the error that happened"""

    status: ResultStatus
    value: Any = None
    error: Optional[Exception] = None

    @classmethod
    def success(cls, value: Any) -> "GenerationResult":
        return cls(ResultStatus.SUCCESS, value=value)

    @classmethod
    def absent(cls) -> "GenerationResult":
        return cls(ResultStatus.ABSENT)

    @classmethod
    def failure(cls, error: Exception) -> "GenerationResult":
        return cls(ResultStatus.ERROR, error=error)

    @property
    def ok(self) -> bool:
        return self.status is ResultStatus.SUCCESS


class StorySession:
    """
    Handle to one stateful story conversation.

    Wraps the provider's chat object together with the system instruction it
    was opened with. The orchestrator holds the only reference for the life of
    a story; prompts must be sent one at a time in narrative order.
    """

    def __init__(self, instruction: str, chat: Any = None):
        self.instruction = instruction
        self.chat = chat
        self.turns = 0

    def __repr__(self) -> str:
        return f"StorySession(turns={self.turns})"


class GenerationGateway(ABC):
    """Abstract base class for AI model providers"""

    def __init__(self, provider_name: str):
        self.provider_name = provider_name
        self.logger = logging.getLogger(f"story-weaver.{provider_name}")

    @abstractmethod
    def open_session(self, instruction: str) -> StorySession:
        """Open a chat session carrying instruction. Raises SessionError."""
        pass

    @abstractmethod
    async def continue_session(self, session: StorySession, prompt: str) -> str:
        """Send prompt into the session and return the full reply. Raises GenerationError."""
        pass

    @abstractmethod
    async def generate_image(self, prompt: str) -> GenerationResult:
        """Illustration as a data URI. Never raises."""
        pass

    @abstractmethod
    async def generate_speech(self, prompt: str) -> GenerationResult:
        """Raw PCM16 narration bytes. Never raises."""
        pass

    def decode_audio(self, raw: bytes) -> AudioBuffer:
        sample_rate = AppConfig.get_int("sample_rate", 24000)
        return decode_pcm16(raw, sample_rate=sample_rate)

    def _log_request(self, operation: str, model: str, **kwargs):
        """Log provider request for monitoring"""
        self.logger.info(f"{operation} request: provider={self.provider_name}, model={model}, kwargs={kwargs}")

    def _log_response(self, operation: str, model: str, duration: float, output_size: int = 0, error: str = None):
        """Log provider response for monitoring"""
        if error:
            self.logger.error(f"{operation} error: provider={self.provider_name}, model={model}, duration={duration:.2f}s, error={error}")
        else:
            self.logger.info(f"{operation} success: provider={self.provider_name}, model={model}, duration={duration:.2f}s, output_size={output_size}")


class ModelProviderFactory:
    """Factory for creating model provider instances, one per provider and model choice"""

    _providers: Dict[Tuple[str, Tuple[Tuple[str, str], ...]], GenerationGateway] = {}

    @classmethod
    def get_provider(
        cls, provider_name: str = "gemini", model_preferences: Optional[ModelPreferences] = None
    ) -> GenerationGateway:
        """Get or create provider instance"""
        model_preferences = model_preferences or ModelPreferences()
        key = (provider_name, tuple(sorted(model_preferences.to_dict().items())))
        if key not in cls._providers:
            if provider_name == "gemini":
                from storyweaver.model_providers_gemini import GeminiProvider
                cls._providers[key] = GeminiProvider(model_preferences=model_preferences)
            else:
                raise ValueError(f"Unknown provider: {provider_name}")

        return cls._providers[key]

    @classmethod
    def get_provider_for(cls, preferences: ModelPreferences) -> GenerationGateway:
        """Provider serving the preferred text model, configured with all three preferences"""
        provider_name = ModelConfig.TEXT_PROVIDERS[preferences.text_model]
        return cls.get_provider(provider_name, model_preferences=preferences)

    @classmethod
    def reset(cls) -> None:
        cls._providers.clear()
