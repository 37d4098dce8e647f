import io
from pathlib import Path

import pytest
from PIL import Image, ImageDraw

from settings import Settings


def make_image_bytes(
    width: int = 400,
    height: int = 400,
    color=(255, 255, 255),
    rects: list[tuple[int, int, int, int]] | None = None,
    fmt: str = "JPEG",
) -> bytes:
    """Light background with dark filled rectangles (left, top, right, bottom)."""
    img = Image.new("RGB", (width, height), color)
    draw = ImageDraw.Draw(img)
    for rect in rects or []:
        draw.rectangle(rect, fill=(40, 60, 90))
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def scan_image() -> bytes:
    """A 400x400 raw scan; large enough for 150px regions in every quadrant."""
    return make_image_bytes()


@pytest.fixture
def tmp_settings(tmp_path: Path) -> Settings:
    """Settings writing into a fresh temp directory.

    Layout:
        out/        batch folders and raw/ scans
        scans/      folder the folder scanner reads from
    """
    (tmp_path / "scans").mkdir()
    return Settings(
        output_dir=tmp_path / "out",
        scan_source_dir=tmp_path / "scans",
        discovery_timeout_s=1.0,
        scan_timeout_s=5.0,
    )


@pytest.fixture
def image_factory():
    """Build in-memory scan images: `image_factory(width, height, rects=[...])`."""
    return make_image_bytes
