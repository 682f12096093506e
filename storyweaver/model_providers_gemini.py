"""
Gemini provider implementation for the generation gateway
"""

import asyncio
import base64
import concurrent.futures
import time
from typing import Optional

from google import genai
from google.genai import types

from storyweaver.model_providers import (
    AssetError,
    GenerationError,
    GenerationGateway,
    GenerationResult,
    ModelPreferences,
    SessionError,
    StorySession,
)
from storyweaver.settings import AppConfig
from storyweaver.utils import env_flag

# 1x1 transparent PNG used as the dummy illustration
_DUMMY_PNG = (
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)

_BLOCKING_FINISH_REASONS = ("SAFETY", "RECITATION", "PROHIBITED_CONTENT", "BLOCKLIST")


class GeminiSafetyException(GenerationError):
    """Exception raised when Gemini blocks content due to safety filters"""
    def __init__(self, message: str, finish_reason: str = None, blocked_categories: list = None):
        super().__init__(message)
        self.finish_reason = finish_reason
        self.blocked_categories = blocked_categories or []


class GeminiProvider(GenerationGateway):
    """Gemini provider for story text, illustrations and narration"""

    def __init__(self, model_preferences: Optional[ModelPreferences] = None):
        super().__init__("gemini")
        self.model_preferences = model_preferences or ModelPreferences()
        self.use_dummy_ai = env_flag("USE_DUMMY_AI")
        self._initialize_client()
        # Thread pool for parallel execution of sync Gemini calls
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=AppConfig.get_int("executor_workers", 5), thread_name_prefix="gemini"
        )

    def _initialize_client(self):
        """Initialize Gemini client with API key"""
        if self.use_dummy_ai:
            self.logger.info("Gemini client initialized in dummy mode")
            self.client = None
            return

        api_key = AppConfig.get_google_api_key()
        if not api_key:
            raise ValueError("Google API key not found in environment variables or config")

        self.client = genai.Client(api_key=api_key)
        self.logger.info("Gemini client initialized with google-genai package")

    async def _run_in_executor(self, func, *args, **kwargs):
        """Run a sync function in the thread pool executor for parallel execution"""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, lambda: func(*args, **kwargs))

    # --- sessions and text ---

    def open_session(self, instruction: str) -> StorySession:
        model = self.model_preferences.text_model.value
        if self.use_dummy_ai:
            return StorySession(instruction)

        try:
            chat = self.client.chats.create(
                model=model,
                config=types.GenerateContentConfig(system_instruction=instruction),
            )
        except Exception as e:
            self.logger.error(f"Could not open Gemini chat session: {str(e)}")
            raise SessionError(f"Could not open story session: {str(e)}") from e

        self.logger.info(f"Opened story session on {model}")
        return StorySession(instruction, chat=chat)

    def _continue_session_sync(self, session: StorySession, prompt: str) -> str:
        """Synchronous chat turn - used internally by async wrapper"""
        model = self.model_preferences.text_model.value
        start_time = time.time()
        self._log_request("text_generation", model, prompt_length=len(prompt), turn=session.turns)

        if self.use_dummy_ai:
            session.turns += 1
            text = (
                f"[DUMMY] Page {session.turns}: a friendly little story continues. "
                f"Prompt was: {prompt[:50]}"
            )
            self._log_response("text_generation", model, time.time() - start_time, len(text))
            return text

        try:
            response = session.chat.send_message(prompt)
            content = self._extract_text(response)
        except GenerationError as e:
            self._log_response("text_generation", model, time.time() - start_time, 0, error=str(e))
            raise
        except Exception as e:
            self.logger.error(f"Gemini text generation failed: {str(e)}")
            self._log_response("text_generation", model, time.time() - start_time, 0, error=str(e))
            raise GenerationError(f"Text generation failed: {str(e)}") from e

        session.turns += 1
        self._log_response("text_generation", model, time.time() - start_time, len(content))
        return content

    def _extract_text(self, response) -> str:
        """Pull the reply text out of a response, raising on blocked or empty replies"""
        if getattr(response, "candidates", None):
            candidate = response.candidates[0]
            finish_reason = getattr(candidate, "finish_reason", None)
            finish_reason_name = getattr(finish_reason, "name", str(finish_reason))
            if finish_reason_name in _BLOCKING_FINISH_REASONS:
                blocked_categories = []
                for rating in getattr(candidate, "safety_ratings", None) or []:
                    if getattr(rating, "blocked", False):
                        category_name = getattr(rating.category, "name", str(rating.category))
                        blocked_categories.append(category_name)
                self.logger.warning(f"Response blocked with finish_reason: {finish_reason_name}")
                raise GeminiSafetyException(
                    f"Content blocked by safety filters: {finish_reason_name}",
                    finish_reason=finish_reason_name,
                    blocked_categories=blocked_categories,
                )

        content = (response.text or "").strip()
        if not content:
            raise GenerationError("No content could be extracted from the response")
        return content

    async def continue_session(self, session: StorySession, prompt: str) -> str:
        """Async wrapper for a chat turn"""
        return await self._run_in_executor(self._continue_session_sync, session, prompt)

    # --- illustration ---

    def _generate_image_sync(self, prompt: str) -> Optional[str]:
        model = self.model_preferences.image_model.value
        start_time = time.time()
        self._log_request("image_generation", model, prompt_length=len(prompt))

        if self.use_dummy_ai:
            self._log_response("image_generation", model, time.time() - start_time, len(_DUMMY_PNG))
            return f"data:image/png;base64,{_DUMMY_PNG}"

        response = self.client.models.generate_images(
            model=model,
            prompt=AppConfig.get_value("image_prompt").format(text=prompt),
            config=types.GenerateImagesConfig(
                number_of_images=1,
                aspect_ratio=AppConfig.get_value("image_aspect_ratio"),
            ),
        )

        if not response.generated_images:
            self.logger.warning("Gemini returned no images")
            self._log_response("image_generation", model, time.time() - start_time, 0)
            return None

        image_bytes = response.generated_images[0].image.image_bytes
        encoded = base64.b64encode(image_bytes).decode("ascii")
        self._log_response("image_generation", model, time.time() - start_time, len(image_bytes))
        return f"data:image/png;base64,{encoded}"

    async def generate_image(self, prompt: str) -> GenerationResult:
        try:
            image = await self._run_in_executor(self._generate_image_sync, prompt)
        except Exception as e:
            self.logger.error(f"Error generating image: {str(e)}")
            return GenerationResult.failure(AssetError(f"Image generation failed: {str(e)}"))
        if image is None:
            return GenerationResult.absent()
        return GenerationResult.success(image)

    # --- narration ---

    def _generate_speech_sync(self, text: str) -> Optional[bytes]:
        """Synchronous TTS call returning raw PCM bytes"""
        model = self.model_preferences.audio_model.value
        start_time = time.time()
        self._log_request("audio_generation", model, prompt_length=len(text))

        if self.use_dummy_ai:
            # One second of silence
            pcm_data = bytes(2 * AppConfig.get_int("sample_rate", 24000))
            self._log_response("audio_generation", model, time.time() - start_time, len(pcm_data))
            return pcm_data

        voice_name = AppConfig.get_value("voice_name")
        speech_config = types.SpeechConfig(
            voice_config=types.VoiceConfig(
                prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=voice_name)
            )
        )

        response = self.client.models.generate_content(
            model=model,
            contents=AppConfig.get_value("speech_prompt").format(text=text),
            config=types.GenerateContentConfig(
                response_modalities=["AUDIO"],
                speech_config=speech_config,
            ),
        )

        if not response.candidates or not response.candidates[0].content or not response.candidates[0].content.parts:
            self.logger.warning("No audio data returned from Gemini TTS")
            return None

        audio_part = response.candidates[0].content.parts[0]
        if not getattr(audio_part, "inline_data", None) or not audio_part.inline_data.data:
            self.logger.warning("No inline_data found in TTS response")
            return None

        audio_data = audio_part.inline_data.data
        if isinstance(audio_data, str):
            # If it's base64 encoded, decode it
            pcm_data = base64.b64decode(audio_data)
        else:
            pcm_data = audio_data

        self._log_response("audio_generation", model, time.time() - start_time, len(pcm_data))
        return pcm_data

    async def generate_speech(self, prompt: str) -> GenerationResult:
        try:
            pcm_data = await self._run_in_executor(self._generate_speech_sync, prompt)
        except Exception as e:
            self.logger.error(f"Error generating speech: {str(e)}")
            return GenerationResult.failure(AssetError(f"Speech generation failed: {str(e)}"))
        if not pcm_data:
            return GenerationResult.absent()
        return GenerationResult.success(pcm_data)

    def close(self):
        self._executor.shutdown(wait=False)

    def __del__(self):
        """Cleanup thread pool on deletion"""
        if hasattr(self, "_executor"):
            self._executor.shutdown(wait=False)
