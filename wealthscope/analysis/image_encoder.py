from __future__ import annotations

import asyncio
import base64
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Sequence, Union

from wealthscope.core.errors import ReadError

DEFAULT_MEDIA_TYPE = "image/png"

ImageSource = Union[bytes, bytearray, str, Path, Any]


@dataclass(frozen=True)
class ImageBlob:
    """An uploaded image: raw bytes, a file path, or a readable file-like object."""

    name: str
    source: ImageSource
    media_type: Optional[str] = None

    @classmethod
    def from_path(cls, path: Union[str, Path], media_type: Optional[str] = None) -> "ImageBlob":
        p = Path(path)
        return cls(name=p.name, source=p, media_type=media_type)

    @classmethod
    def from_upload(cls, uploaded: Any) -> "ImageBlob":
        # Streamlit UploadedFile: .name, .type, .getvalue()
        return cls(name=getattr(uploaded, "name", "upload"), source=uploaded, media_type=getattr(uploaded, "type", None))


@dataclass(frozen=True)
class EncodedImage:
    name: str
    media_type: str
    content: bytes
    data: str  # base64 text

    @property
    def data_uri(self) -> str:
        return f"data:{self.media_type};base64,{self.data}"


def normalize_media_type(declared: Optional[str], name: str = "") -> str:
    mt = (declared or "").strip().lower()
    if mt:
        return mt
    guessed, _ = mimetypes.guess_type(name)
    if isinstance(guessed, str) and guessed.startswith("image/"):
        return guessed
    return DEFAULT_MEDIA_TYPE


def _read_bytes(blob: ImageBlob) -> bytes:
    src = blob.source
    if isinstance(src, (bytes, bytearray)):
        return bytes(src)
    if isinstance(src, (str, Path)):
        return Path(src).read_bytes()
    if hasattr(src, "getvalue"):
        return bytes(src.getvalue())
    if hasattr(src, "read"):
        if hasattr(src, "seek"):
            src.seek(0)
        return bytes(src.read())
    raise TypeError(f"Unsupported image source type: {type(src).__name__}")


async def encode_image(blob: ImageBlob) -> EncodedImage:
    try:
        if isinstance(blob.source, (bytes, bytearray)):
            raw = bytes(blob.source)
        else:
            raw = await asyncio.to_thread(_read_bytes, blob)
    except (OSError, ValueError, TypeError) as e:
        raise ReadError(f"Failed to read image '{blob.name}': {e}", image_name=blob.name) from e

    if not raw:
        raise ReadError(f"Failed to read image '{blob.name}': no data", image_name=blob.name)

    return EncodedImage(
        name=blob.name,
        media_type=normalize_media_type(blob.media_type, blob.name),
        content=raw,
        data=base64.b64encode(raw).decode("ascii"),
    )


async def encode_images(blobs: Sequence[ImageBlob]) -> List[EncodedImage]:
    """Encode all images concurrently; output order matches input order."""
    return list(await asyncio.gather(*(encode_image(b) for b in blobs)))
