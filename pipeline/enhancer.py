"""Pillow enhancement for cropped photos.

Processing order:
  1. rotation (clockwise degrees, white fill)
  2. white balance (per-channel autocontrast)
  3. normalize (luminance-preserving autocontrast)
  4. gamma correction
  5. unsharp-mask sharpening
  6. encode as JPEG (quality 95)

The work is CPU bound, so `PillowEnhancer.enhance()` runs it in a worker
thread; several regions can be enhanced at once.
"""
import asyncio
import io
import logging
import time

from PIL import Image, ImageFilter, ImageOps

from models.processing import (
    AppliedEnhancement,
    Dimensions,
    EnhancementOptions,
    EnhancementResult,
    SharpenParams,
)

logger = logging.getLogger(__name__)

_JPEG_QUALITY = 95

PRESET_LIGHT = EnhancementOptions(sharpen=True)

PRESET_STANDARD = EnhancementOptions(normalize=True, sharpen=True, white_balance=True)

# Old, faded photos: stronger sharpening and a gamma lift.
PRESET_VINTAGE = EnhancementOptions(
    normalize=True,
    sharpen=SharpenParams(radius=1.2, percent=180, threshold=2),
    white_balance=True,
    gamma=1.3,
)


class PillowEnhancer:
    async def enhance(self, image: bytes, options: EnhancementOptions) -> EnhancementResult:
        return await asyncio.to_thread(enhance_photo, image, options)


def enhance_photo(image: bytes, options: EnhancementOptions | None = None) -> EnhancementResult:
    """Apply `options` to `image` and return JPEG bytes plus what was done."""
    options = options or EnhancementOptions()
    if not image:
        raise ValueError("Invalid image buffer: buffer is empty")

    start = time.perf_counter()
    applied: list[AppliedEnhancement] = []

    with Image.open(io.BytesIO(image)) as src:
        input_format = (src.format or "unknown").lower()
        img = src.convert("L" if src.mode in ("L", "1") else "RGB")

    if options.rotation:
        # Pillow rotates counter-clockwise for positive angles.
        img = img.rotate(-options.rotation, expand=True, fillcolor=_white(img))
        applied.append(AppliedEnhancement(
            type="rotation",
            description=f"Rotated image by {options.rotation:g} degrees",
            parameters={"degrees": options.rotation},
        ))

    if options.white_balance:
        img = ImageOps.autocontrast(img, cutoff=0.5)
        applied.append(AppliedEnhancement(
            type="whiteBalance",
            description="Applied automatic white balance correction",
            parameters={"method": "autocontrast"},
        ))

    if options.normalize:
        img = ImageOps.autocontrast(img, preserve_tone=True)
        applied.append(AppliedEnhancement(
            type="normalize",
            description="Normalized contrast and brightness",
        ))

    if options.gamma is not None and options.gamma != 1.0:
        img = _apply_gamma(img, options.gamma)
        applied.append(AppliedEnhancement(
            type="gamma",
            description=f"Applied gamma correction (gamma={options.gamma:g})",
            parameters={"gamma": options.gamma},
        ))

    if options.sharpen:
        params = options.sharpen if isinstance(options.sharpen, SharpenParams) else SharpenParams()
        img = img.filter(ImageFilter.UnsharpMask(
            radius=params.radius, percent=params.percent, threshold=params.threshold,
        ))
        applied.append(AppliedEnhancement(
            type="sharpen",
            description="Applied sharpening filter",
            parameters=params.model_dump(),
        ))

    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=_JPEG_QUALITY)
    applied.append(AppliedEnhancement(
        type="format",
        description=f"Converted to JPEG (quality: {_JPEG_QUALITY})",
        parameters={"quality": _JPEG_QUALITY, "format": "jpeg"},
    ))

    elapsed_ms = (time.perf_counter() - start) * 1000
    logger.debug("Enhanced %dx%d image in %.1f ms", img.width, img.height, elapsed_ms)

    return EnhancementResult(
        image=buf.getvalue(),
        applied_enhancements=applied,
        processing_time_ms=elapsed_ms,
        input_format=input_format,
        output_format="jpeg",
        dimensions=Dimensions(width=img.width, height=img.height),
    )


def _apply_gamma(img: Image.Image, gamma: float) -> Image.Image:
    # gamma > 1 brightens midtones
    table = [round(255 * (i / 255) ** (1 / gamma)) for i in range(256)]
    return img.point(table * len(img.getbands()))


def _white(img: Image.Image) -> int | tuple[int, int, int]:
    return 255 if img.mode == "L" else (255, 255, 255)
