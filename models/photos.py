from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

GridPosition = Literal["top-left", "top-right", "bottom-left", "bottom-right"]

# Canonical ordering used for pairing output and detector results.
POSITION_ORDER: tuple[GridPosition, ...] = (
    "top-left",
    "top-right",
    "bottom-left",
    "bottom-right",
)


class Bounds(BaseModel):
    """Pixel rectangle inside a raw scan."""

    model_config = ConfigDict(frozen=True)

    x: int = Field(ge=0)
    y: int = Field(ge=0)
    width: int = Field(ge=0)
    height: int = Field(ge=0)

    @property
    def box(self) -> tuple[int, int, int, int]:
        """(left, upper, right, lower) as Pillow expects it."""
        return (self.x, self.y, self.x + self.width, self.y + self.height)


class DetectedPhoto(BaseModel):
    """One photo region found on a scan.

    Immutable: the crop/enhance step produces a new value via
    `model_copy(update={"image": ...})` instead of mutating this one.
    `image` is empty until the region has been cropped.
    """

    model_config = ConfigDict(frozen=True)

    image: bytes = b""
    position: GridPosition
    bounds: Bounds
    confidence: float = Field(ge=0.0, le=1.0)


class ScanOptions(BaseModel):
    resolution: Literal[300, 600] = 300
    color_mode: Literal["RGB24", "Grayscale8"] = "RGB24"
    format: Literal["image/jpeg", "image/png"] = "image/jpeg"

    @property
    def file_extension(self) -> str:
        return "png" if self.format == "image/png" else "jpg"


class ScanResult(BaseModel):
    scan_id: str
    photos_detected: int = Field(ge=0)
    raw_image_path: Path
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    detected_photos: list[DetectedPhoto] = Field(default_factory=list)


class PhotoPair(BaseModel):
    """A front photo with its back, if one was scanned at the same position."""

    position: GridPosition
    front: DetectedPhoto
    back: DetectedPhoto | None = None


class PairingResult(BaseModel):
    pairs: list[PhotoPair] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class BatchResult(BaseModel):
    batch_id: str
    pairs_saved: int = Field(ge=0)
    total_photos: int = Field(ge=0)  # fronts + backs
    output_directory: Path
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
