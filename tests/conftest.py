from __future__ import annotations

from pathlib import Path

import pytest
from PIL import Image


def write_image(path: Path, size=(64, 48), mode="RGB", color=(200, 120, 40)) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    fmt = {".png": "PNG", ".jpg": "JPEG", ".jpeg": "JPEG", ".gif": "GIF"}[path.suffix.lower()]
    image = Image.new(mode, size, color)
    # A gradient keeps the encoders honest about size.
    for x in range(0, size[0], 4):
        for y in range(0, size[1], 4):
            value = (x * 7 + y * 3) % 256
            if mode == "RGBA":
                image.putpixel((x, y), (value, 255 - value, 90, 128))
            elif mode == "RGB":
                image.putpixel((x, y), (value, 255 - value, 90))
    image.save(path, format=fmt)
    return path


@pytest.fixture
def make_image():
    return write_image


@pytest.fixture
def site(tmp_path: Path, make_image):
    """A tiny site: originals, an empty WebP root and a source tree."""
    images = tmp_path / "public" / "images"
    webp = tmp_path / "public" / "images-webp"
    src = tmp_path / "src"
    make_image(images / "hero.png", size=(120, 80))
    make_image(images / "gallery" / "one.jpg")
    src.mkdir(parents=True)
    return {"root": tmp_path, "images": images, "webp": webp, "src": src}
