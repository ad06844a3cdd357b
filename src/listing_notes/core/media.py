# src/listing_notes/core/media.py

"""
Session-only media attached to a submission.

Blobs never go into a Task record or the key-value store. The task store keeps
them in an in-memory side table keyed by task id, so they survive a retry
within the same session and are gone after a restart.
"""

from __future__ import annotations

import base64
import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

logger = logging.getLogger(__name__)

MediaKind = Literal["image", "audio"]

DEFAULT_AUDIO_MIME = "audio/webm"


class MediaError(Exception):
    """Media could not be captured (unreadable file, wrong type, ...)."""


@dataclass(slots=True, frozen=True)
class MediaBlob:
    data: bytes
    mime_type: str
    name: str = ""

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.to_base64()}"

    def __repr__(self) -> str:
        return f"MediaBlob(name={self.name!r}, mime_type={self.mime_type!r}, size={len(self.data)})"


@dataclass(slots=True)
class SessionMedia:
    image: MediaBlob | None = None
    audio: MediaBlob | None = None

    def __bool__(self) -> bool:
        return self.image is not None or self.audio is not None


def load_media_file(
    path: str | Path,
    *,
    kind: MediaKind,
    default_audio_mime: str = DEFAULT_AUDIO_MIME,
) -> MediaBlob:
    """Read an image or audio clip from disk. Raises MediaError."""
    p = Path(path).expanduser()
    try:
        data = p.read_bytes()
    except OSError as e:
        logger.info("Media read failed path=%s: %s", p, e)
        raise MediaError(f"无法读取文件: {p}") from e

    if not data:
        raise MediaError(f"文件为空: {p}")

    mime, _ = mimetypes.guess_type(p.name)

    if kind == "image":
        if not mime or not mime.startswith("image/"):
            raise MediaError(f"不是图片文件: {p}")
        return MediaBlob(data=data, mime_type=mime, name=p.name)

    # Browser recordings are usually .webm, which mimetypes reports as video/webm.
    if mime == "video/webm":
        mime = "audio/webm"
    if not mime or not mime.startswith("audio/"):
        mime = default_audio_mime or DEFAULT_AUDIO_MIME
    return MediaBlob(data=data, mime_type=mime, name=p.name)
