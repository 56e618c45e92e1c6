"""
Attachment classification for outbound messages.

Images and PDFs become base64 data URLs, text-like files are decoded to
UTF-8. A file that cannot be read is logged and dropped so the question
itself still goes out.
"""

import asyncio
import base64
import logging
import mimetypes
from pathlib import Path
from typing import Optional, Union

from encyclopedia.types import Attachment

logger = logging.getLogger(__name__)


BINARY_MIME_TYPES = {
    "image/jpeg",
    "image/png",
    "image/webp",
    "application/pdf",
}

# mimetypes does not know every extension on every platform
_EXTENSION_TYPES = {
    ".md": "text/markdown",
    ".markdown": "text/markdown",
    ".csv": "text/csv",
    ".json": "application/json",
    ".txt": "text/plain",
    ".webp": "image/webp",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".pdf": "application/pdf",
}


def guess_mime_type(path: Path) -> str:
    suffix = path.suffix.lower()
    if suffix in _EXTENSION_TYPES:
        return _EXTENSION_TYPES[suffix]
    guessed, _ = mimetypes.guess_type(path.name)
    return guessed or "application/octet-stream"


def is_binary_type(mime_type: str) -> bool:
    return mime_type in BINARY_MIME_TYPES or mime_type.startswith("image/")


def classify_bytes(name: str, raw: bytes, mime_type: Optional[str] = None) -> Attachment:
    """
    Build an Attachment from file bytes.

    Raises:
        UnicodeDecodeError: a non-binary file is not valid UTF-8
    """
    mime = mime_type or guess_mime_type(Path(name))
    if is_binary_type(mime):
        payload = base64.b64encode(raw).decode("ascii")
        return Attachment(
            is_binary=True,
            mime_type=mime,
            data=f"data:{mime};base64,{payload}",
            name=name,
        )
    return Attachment(is_binary=False, mime_type=mime, data=raw.decode("utf-8"), name=name)


async def load_attachment(path: Union[str, Path]) -> Optional[Attachment]:
    """
    Read and classify a file off the event loop.

    Returns:
        The Attachment, or None when the file cannot be read or decoded
    """
    file_path = Path(path)
    try:
        raw = await asyncio.to_thread(file_path.read_bytes)
        attachment = classify_bytes(file_path.name, raw)
    except (OSError, UnicodeDecodeError) as e:
        logger.error("File read error for %s: %s", file_path, e)
        return None

    logger.info(
        "Attached %s (%s, %s)",
        attachment.name,
        attachment.mime_type,
        "binary" if attachment.is_binary else "text",
    )
    return attachment


class PendingAttachment:
    """Holds at most one attachment waiting for the next send."""

    def __init__(self):
        self._current: Optional[Attachment] = None

    @property
    def current(self) -> Optional[Attachment]:
        return self._current

    def attach(self, attachment: Optional[Attachment]) -> None:
        if self._current is not None and attachment is not None:
            logger.info("Replacing pending attachment %s with %s", self._current.name, attachment.name)
        self._current = attachment

    def take(self) -> Optional[Attachment]:
        attachment, self._current = self._current, None
        return attachment
