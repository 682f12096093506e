import base64
import logging
from pathlib import Path
from typing import Iterable, List, Union

from storyweaver.models import Page

logger = logging.getLogger("story-weaver")


def decode_data_uri(uri: str) -> bytes:
    """
    Return the payload of a base64 data URI such as data:image/png;base64,...
    """
    header, sep, payload = uri.partition(",")
    if not sep or not header.startswith("data:") or not header.endswith(";base64"):
        raise ValueError("Not a base64 data URI")
    return base64.b64decode(payload)


def save_story(
    pages: Iterable[Page], directory: Union[str, Path], audio_format: str = "wav"
) -> List[Path]:
    """
    Writes each page's text, illustration and narration under directory.
    Returns the paths written; absent images or narration are skipped.
    """
    target = Path(directory)
    target.mkdir(parents=True, exist_ok=True)
    written: List[Path] = []

    for page in pages:
        stem = f"page_{page.id:02d}"

        text_path = target / f"{stem}.txt"
        text_path.write_text(page.text, encoding="utf-8")
        written.append(text_path)

        if page.image is not None:
            try:
                image_path = target / f"{stem}.png"
                image_path.write_bytes(decode_data_uri(page.image))
                written.append(image_path)
            except ValueError as e:
                logger.error(f"Could not save illustration for page {page.id}: {e}")

        if page.audio is not None:
            audio_path = target / f"{stem}.{audio_format}"
            audio_path.write_bytes(page.audio.export(audio_format))
            written.append(audio_path)

    logger.info(f"Saved {len(written)} files to {target}")
    return written
