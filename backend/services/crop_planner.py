"""
Square crop planning around a detected face.

The crop is three face-heights tall, centered horizontally on the face,
with the face's top edge one third of the way down the crop. The square is
clamped to the image by shifting it inward, never by shrinking it further,
so faces near an edge end up off-center. That is accepted.
"""
from __future__ import annotations

import math

from domain.models import BoundingBox, CropPlan

CROP_TO_FACE_RATIO = 3
FACE_TOP_RATIO = 1 / 3


def _round(value: float) -> int:
    # nearest integer, halves away from zero for the non-negative values used here
    return int(math.floor(value + 0.5))


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def full_image_plan(img_width: int, img_height: int) -> CropPlan:
    """Plan covering the whole image, used when no face was found."""
    return CropPlan(x=0, y=0, width=img_width, height=img_height, full_image=True)


def plan_crop(box: BoundingBox, img_width: int, img_height: int) -> CropPlan:
    if img_width <= 0 or img_height <= 0:
        raise ValueError(f"image dimensions must be positive, got {img_width}x{img_height}")
    if box.no_face:
        return full_image_plan(img_width, img_height)

    crop_size = min(box.height * CROP_TO_FACE_RATIO, img_width, img_height)
    crop_size = max(1, int(crop_size))

    crop_x = _clamp(box.center_x - crop_size / 2, 0, img_width - crop_size)
    crop_y = _clamp(box.y - crop_size * FACE_TOP_RATIO, 0, img_height - crop_size)

    return CropPlan(x=_round(crop_x), y=_round(crop_y), width=crop_size, height=crop_size)
