import io
from pathlib import Path

import pytest
from PIL import Image

from app.services.vision_client import VisionProvider


class FakeProvider(VisionProvider):
    """In-process provider that records its calls."""

    def __init__(self, name="fake", text="", error=None):
        super().__init__()
        self.name = name
        self.text = text
        self.error = error
        self.calls = []

    async def describe(self, prompt, image, mime_type):
        self.calls.append({"prompt": prompt, "image": image, "mime_type": mime_type})
        if self.error is not None:
            raise self.error
        return self.text


def _image(size, color, mode):
    return Image.new(mode, size, color)


@pytest.fixture
def make_png(tmp_path):
    def _make(name="frame.png", size=(64, 48), color=(255, 0, 0), mode="RGB", directory=None) -> Path:
        path = Path(directory or tmp_path) / name
        path.parent.mkdir(parents=True, exist_ok=True)
        _image(size, color, mode).save(path, format="PNG")
        return path

    return _make


@pytest.fixture
def png_bytes():
    def _make(size=(64, 48), color=(0, 128, 255)) -> bytes:
        buf = io.BytesIO()
        _image(size, color, "RGB").save(buf, format="PNG")
        return buf.getvalue()

    return _make


@pytest.fixture
def fake_provider_cls():
    return FakeProvider
