import enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from storyweaver.audio import AudioBuffer


class NavigationDirection(str, enum.Enum):
    PREV = "prev"
    NEXT = "next"


class Page(BaseModel):
    """One page of the story, filled in place as its parts arrive"""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: int  # position in the story, assigned at creation
    text: str = ""
    image: Optional[str] = None  # data URI of the illustration
    audio: Optional[AudioBuffer] = None  # decoded narration

    @property
    def has_image(self) -> bool:
        return self.image is not None

    @property
    def has_audio(self) -> bool:
        return self.audio is not None


class LoadingState(BaseModel):
    """Per-story generation flags shown by the renderer"""

    text: bool = False
    image: bool = False
    audio: bool = False

    @property
    def is_loading(self) -> bool:
        return self.text or self.image or self.audio

    def set_all(self, value: bool) -> None:
        self.text = value
        self.image = value
        self.audio = value

    def clear(self) -> None:
        self.set_all(False)
