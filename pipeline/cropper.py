"""Cut single photo regions out of a raw scan with Pillow."""
import io

from PIL import Image

from models.photos import Bounds

# Regions smaller than this in either dimension are noise, not photos.
MIN_PHOTO_SIZE = 100

_JPEG_QUALITY = 92


def crop_photo(raw_image: bytes, bounds: Bounds) -> bytes:
    """Extract `bounds` from `raw_image` and return it as JPEG bytes.

    Bounds that run past the right/bottom edge are clamped to the image.
    Raises ValueError for empty input, bounds starting outside the image,
    or a region smaller than MIN_PHOTO_SIZE after clamping.
    """
    if not raw_image:
        raise ValueError("Invalid image buffer: buffer is empty")

    with Image.open(io.BytesIO(raw_image)) as img:
        clamped = clamp_bounds(bounds, img.width, img.height)
        region = img.crop(clamped.box)
        if region.mode not in ("RGB", "L"):
            region = region.convert("RGB")

    buf = io.BytesIO()
    region.save(buf, format="JPEG", quality=_JPEG_QUALITY)
    return buf.getvalue()


def clamp_bounds(bounds: Bounds, image_width: int, image_height: int) -> Bounds:
    if bounds.width <= 0 or bounds.height <= 0:
        raise ValueError(
            f"Invalid bounds: dimensions must be positive "
            f"(width: {bounds.width}, height: {bounds.height})"
        )
    if bounds.x >= image_width or bounds.y >= image_height:
        raise ValueError(
            f"Invalid bounds: starting position ({bounds.x}, {bounds.y}) is beyond "
            f"image dimensions ({image_width}x{image_height})"
        )

    width = min(bounds.width, image_width - bounds.x)
    height = min(bounds.height, image_height - bounds.y)
    if width < MIN_PHOTO_SIZE or height < MIN_PHOTO_SIZE:
        raise ValueError(
            f"Region too small after clamping: {width}x{height} "
            f"(minimum: {MIN_PHOTO_SIZE}x{MIN_PHOTO_SIZE})"
        )
    return Bounds(x=bounds.x, y=bounds.y, width=width, height=height)
