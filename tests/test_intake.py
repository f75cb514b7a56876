import base64

import pytest
from PIL import Image

from conftest import make_png, make_upload
from intake import IntakeError, WasteImage, read_image, strip_data_url_prefix, to_data_url


def test_read_image(png_bytes):
    image = read_image(make_upload(png_bytes, filename="../my waste.png"))
    assert image.filename == "my_waste.png"
    assert image.mimetype == "image/png"
    assert image.data == png_bytes


def test_preview_and_payload(png_bytes):
    image = WasteImage("w.png", "image/png", png_bytes)
    assert image.preview.startswith("data:image/png;base64,")
    assert base64.b64decode(image.base64_payload()) == png_bytes
    assert "," not in image.base64_payload()


def test_mimetype_inferred_when_browser_sends_none():
    upload = make_upload(make_png(), filename="photo", content_type="application/octet-stream")
    assert read_image(upload).mimetype == "image/png"


@pytest.mark.parametrize("upload", [
    None,
    make_upload(filename=""),
    make_upload(b"", filename="empty.png"),
    make_upload(b"definitely not an image", filename="notes.png"),
])
def test_rejected_uploads(upload):
    with pytest.raises(IntakeError):
        read_image(upload)


def test_strip_data_url_prefix():
    assert strip_data_url_prefix("data:image/jpeg;base64,QUJD") == "QUJD"
    assert strip_data_url_prefix("QUJD") == "QUJD"
    assert to_data_url(b"ABC", "image/jpeg") == "data:image/jpeg;base64,QUJD"


def test_oversized_image_is_rejected(monkeypatch):
    # a 4x4 picture counts as a decompression bomb once the pixel limit is tiny
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 4)
    with pytest.raises(IntakeError, match="not a readable image"):
        read_image(make_upload(make_png(), filename="huge.png"))
