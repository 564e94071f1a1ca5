"""
Thumbnail and debug-highlight rendering with Pillow.

Functions here take an in-memory image plus a CropPlan and return encoded
bytes. Nothing is written to disk; output placement belongs to the
pipeline.
"""
from __future__ import annotations

import io

from PIL import Image, ImageDraw, ImageFilter

from domain.errors import RenderError
from domain.models import CropPlan

THUMBNAIL_SIZE = 256
THUMBNAIL_QUALITY = 95
HIGHLIGHT_COLOR = (255, 0, 0)

_FORMATS = {
    "jpeg": ("JPEG", "jpg"),
    "jpg": ("JPEG", "jpg"),
    "webp": ("WEBP", "webp"),
}


def register_heif_opener() -> bool:
    """
    Register HEIF/HEIC opener with Pillow if pillow-heif is available.

    Safe to call multiple times or if pillow-heif is not installed.
    """
    try:
        from pillow_heif import register_heif_opener as _register
    except ImportError:
        return False
    _register()
    return True


def extension_for(fmt: str) -> str:
    try:
        return _FORMATS[fmt.lower()][1]
    except KeyError:
        raise ValueError(f"unsupported output format {fmt!r}") from None


def decode_image(raw: bytes) -> Image.Image:
    """Decode raw bytes into a fully loaded image, raising RenderError on bad input."""
    try:
        img = Image.open(io.BytesIO(raw))
        img.load()
    except Exception as exc:
        raise RenderError(f"unable to decode image: {exc}") from exc
    return img


def _strip_metadata(img: Image.Image) -> Image.Image:
    # a fresh image carries no EXIF, ICC or text chunks
    return Image.frombytes(img.mode, img.size, img.tobytes())


def encode_image(img: Image.Image, fmt: str = "jpeg", quality: int = THUMBNAIL_QUALITY) -> bytes:
    try:
        pil_format = _FORMATS[fmt.lower()][0]
    except KeyError:
        raise RenderError(f"unsupported output format {fmt!r}") from None
    buf = io.BytesIO()
    try:
        img.save(buf, format=pil_format, quality=quality)
    except Exception as exc:
        raise RenderError(f"unable to encode {pil_format}: {exc}") from exc
    return buf.getvalue()


def render_thumbnail(
    img: Image.Image,
    plan: CropPlan,
    *,
    size: int = THUMBNAIL_SIZE,
    fmt: str = "jpeg",
    quality: int = THUMBNAIL_QUALITY,
) -> bytes:
    """
    Crop `img` to `plan`, resize to `size`x`size` and encode.

    A full-image plan skips the crop and the whole image is resized to the
    square, so non-square originals are squashed rather than letterboxed.
    """
    try:
        region = img if plan.full_image else img.crop(plan.box())
        region = region.convert("RGB")
        thumb = region.resize((size, size), Image.LANCZOS)
        thumb = thumb.filter(ImageFilter.UnsharpMask(radius=0.5, percent=100, threshold=0))
    except Exception as exc:
        raise RenderError(f"unable to render thumbnail: {exc}") from exc
    return encode_image(_strip_metadata(thumb), fmt=fmt, quality=quality)


def render_highlight(
    img: Image.Image,
    plan: CropPlan,
    *,
    fmt: str = "jpeg",
    quality: int = THUMBNAIL_QUALITY,
) -> bytes:
    """Draw the crop rectangle onto a full-size copy of `img` and encode it."""
    try:
        canvas = img.convert("RGB")
        w, h = canvas.size
        line_width = max(3, min(w, h) // 200)
        left, top, right, bottom = plan.box()
        draw = ImageDraw.Draw(canvas)
        draw.rectangle([left, top, right - 1, bottom - 1], outline=HIGHLIGHT_COLOR, width=line_width)
    except Exception as exc:
        raise RenderError(f"unable to render highlight: {exc}") from exc
    return encode_image(_strip_metadata(canvas), fmt=fmt, quality=quality)
