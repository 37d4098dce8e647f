"""Photo detection on a 2x2 flatbed layout.

The scanner bed holds up to four photos, one per quadrant, on a light
background (the open lid). For each quadrant the detector thresholds the
grayscale image and takes the bounding box of everything darker than the
background. Regions smaller than `min_photo_inches` on either side are
ignored as dust or shadows.
"""
import asyncio
import io
import logging
import time

from PIL import Image, UnidentifiedImageError

from models.photos import POSITION_ORDER, Bounds, DetectedPhoto, GridPosition
from models.processing import DetectionResult

logger = logging.getLogger(__name__)

SUPPORTED_DPI = frozenset({300, 600})

# Grayscale level above which a pixel counts as scanner background.
_BACKGROUND_THRESHOLD = 235


def assign_grid_position(bounds: Bounds, image_width: int, image_height: int) -> GridPosition:
    """Quadrant of the region's centre relative to the scan midlines."""
    center_x = bounds.x + bounds.width / 2
    center_y = bounds.y + bounds.height / 2
    is_left = center_x < image_width / 2
    is_top = center_y < image_height / 2
    if is_top:
        return "top-left" if is_left else "top-right"
    return "bottom-left" if is_left else "bottom-right"


def region_confidence(bounds: Bounds) -> float:
    """Typical photo aspect ratios score higher than long thin strips."""
    if bounds.height == 0:
        return 0.0
    aspect = bounds.width / bounds.height
    return 0.8 if 0.5 < aspect < 2.0 else 0.6


class QuadrantDetector:
    def __init__(self, min_photo_inches: float = 1.0, background_threshold: int = _BACKGROUND_THRESHOLD):
        self.min_photo_inches = min_photo_inches
        self.background_threshold = background_threshold

    async def detect(self, raw_image: bytes, dpi: int) -> DetectionResult:
        return await asyncio.to_thread(self.detect_sync, raw_image, dpi)

    def detect_sync(self, raw_image: bytes, dpi: int) -> DetectionResult:
        if dpi not in SUPPORTED_DPI:
            raise ValueError(f"Unsupported resolution {dpi} dpi; expected one of {sorted(SUPPORTED_DPI)}")

        start = time.perf_counter()
        try:
            with Image.open(io.BytesIO(raw_image)) as img:
                gray = img.convert("L")
        except (UnidentifiedImageError, OSError) as exc:
            raise ValueError(f"Unreadable scan image: {exc}") from exc

        width, height = gray.size
        mid_x, mid_y = width // 2, height // 2
        min_side = int(self.min_photo_inches * dpi)
        threshold = self.background_threshold
        # Foreground mask: 255 where darker than the background.
        mask = gray.point(lambda v: 255 if v < threshold else 0)

        quadrants = {
            "top-left": (0, 0, mid_x, mid_y),
            "top-right": (mid_x, 0, width, mid_y),
            "bottom-left": (0, mid_y, mid_x, height),
            "bottom-right": (mid_x, mid_y, width, height),
        }

        photos: list[DetectedPhoto] = []
        warnings: list[str] = []
        for position in POSITION_ORDER:
            left, top, right, bottom = quadrants[position]
            bbox = mask.crop((left, top, right, bottom)).getbbox()
            if bbox is None:
                continue
            bounds = Bounds(
                x=left + bbox[0],
                y=top + bbox[1],
                width=bbox[2] - bbox[0],
                height=bbox[3] - bbox[1],
            )
            if bounds.width < min_side or bounds.height < min_side:
                warnings.append(
                    f"Ignored {bounds.width}x{bounds.height} region at {position}: "
                    f"smaller than {min_side}px"
                )
                continue
            photos.append(DetectedPhoto(
                position=assign_grid_position(bounds, width, height),
                bounds=bounds,
                confidence=region_confidence(bounds),
            ))

        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info("Detected %d photo(s) in %.0f ms", len(photos), elapsed_ms)
        return DetectionResult(photos=photos, processing_time_ms=elapsed_ms, warnings=warnings)
