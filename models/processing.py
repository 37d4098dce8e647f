from typing import Literal

from pydantic import BaseModel, Field

from models.photos import DetectedPhoto


class DetectionResult(BaseModel):
    """Detector output for one raw scan."""

    photos: list[DetectedPhoto] = Field(default_factory=list)
    processing_time_ms: float = Field(default=0.0, ge=0.0)
    warnings: list[str] = Field(default_factory=list)


class SharpenParams(BaseModel):
    radius: float = Field(default=1.5, gt=0.0)
    percent: int = Field(default=150, ge=0)
    threshold: int = Field(default=3, ge=0)


class EnhancementOptions(BaseModel):
    sharpen: bool | SharpenParams = False
    normalize: bool = False
    gamma: float | None = Field(default=None, gt=0.0)
    rotation: float = 0.0  # degrees, positive = clockwise
    white_balance: bool = False


class AppliedEnhancement(BaseModel):
    type: Literal["sharpen", "normalize", "gamma", "rotation", "whiteBalance", "format"]
    description: str
    parameters: dict[str, float | int | bool | str] = Field(default_factory=dict)


class Dimensions(BaseModel):
    width: int = Field(ge=0)
    height: int = Field(ge=0)


class EnhancementResult(BaseModel):
    image: bytes
    applied_enhancements: list[AppliedEnhancement] = Field(default_factory=list)
    processing_time_ms: float = Field(default=0.0, ge=0.0)
    input_format: str | None = None
    output_format: str = "jpeg"
    dimensions: Dimensions
