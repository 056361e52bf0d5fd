from __future__ import annotations

import asyncio
import base64
import io

import pytest

from wealthscope.analysis.image_encoder import ImageBlob, encode_image, encode_images, normalize_media_type
from wealthscope.core.errors import ReadError


def test_bytes_are_base64_encoded():
    enc = asyncio.run(encode_image(ImageBlob(name="a.png", source=b"abc", media_type="image/png")))
    assert enc.data == base64.b64encode(b"abc").decode()
    assert enc.data_uri == "data:image/png;base64,YWJj"
    assert enc.content == b"abc"


def test_path_source(tmp_path):
    p = tmp_path / "shot.jpg"
    p.write_bytes(b"\xff\xd8data")
    enc = asyncio.run(encode_image(ImageBlob.from_path(p)))
    assert enc.name == "shot.jpg"
    assert enc.media_type == "image/jpeg"
    assert enc.content == b"\xff\xd8data"


def test_file_like_source_is_rewound():
    buf = io.BytesIO(b"payload")
    buf.read()
    enc = asyncio.run(encode_image(ImageBlob(name="x.webp", source=buf)))
    assert enc.content == b"payload"


def test_upload_object():
    class Upload:
        name = "phone.png"
        type = "IMAGE/PNG"

        def getvalue(self):
            return b"png-bytes"

    enc = asyncio.run(encode_image(ImageBlob.from_upload(Upload())))
    assert enc.name == "phone.png"
    assert enc.media_type == "image/png"


@pytest.mark.parametrize(
    "declared, name, expected",
    [
        (None, "a.gif", "image/gif"),
        ("", "noext", "image/png"),
        (None, "notes.txt", "image/png"),
        (" image/webp ", "a.png", "image/webp"),
    ],
)
def test_media_type_defaults(declared, name, expected):
    assert normalize_media_type(declared, name) == expected


def test_missing_file_is_read_error(tmp_path):
    with pytest.raises(ReadError) as ei:
        asyncio.run(encode_image(ImageBlob.from_path(tmp_path / "missing.png")))
    assert ei.value.image_name == "missing.png"


def test_empty_image_is_read_error():
    with pytest.raises(ReadError):
        asyncio.run(encode_image(ImageBlob(name="empty.png", source=b"")))


def test_unsupported_source_is_read_error():
    with pytest.raises(ReadError):
        asyncio.run(encode_image(ImageBlob(name="weird", source=42)))


def test_encode_images_preserves_order():
    blobs = [ImageBlob(name=f"{i}.png", source=f"img{i}".encode()) for i in range(5)]
    out = asyncio.run(encode_images(blobs))
    assert [e.name for e in out] == [b.name for b in blobs]
