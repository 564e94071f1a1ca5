"""
Core domain models for the portrait thumbnail pipeline.
These are framework-agnostic and can be used across all services.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple


class PipelineState(str, Enum):
    """Phases of a single thumbnail pipeline run."""
    IDLE = "idle"
    WALKING = "walking"
    CACHE_LOADED = "cache_loaded"
    DETECTING = "detecting"
    CACHE_PERSISTED = "cache_persisted"
    RENDERING = "rendering"
    DONE = "done"


@dataclass(frozen=True)
class BoundingBox:
    """
    A detected face rectangle in source-image pixels (origin top-left).

    When `no_face` is set, detection ran but found nothing usable and the
    coordinates carry no meaning.
    """
    x: int = 0
    y: int = 0
    width: int = 0
    height: int = 0
    no_face: bool = False

    @classmethod
    def none(cls) -> "BoundingBox":
        return cls(no_face=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "noFace": self.no_face,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BoundingBox":
        if not isinstance(data, dict):
            raise ValueError(f"bounding box must be an object, got {type(data).__name__}")
        no_face = data.get("noFace", False)
        if not isinstance(no_face, bool):
            raise ValueError(f"noFace must be a boolean, got {no_face!r}")
        if no_face:
            return cls.none()
        values = []
        for name in ("x", "y", "width", "height"):
            value = data.get(name, 0)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{name} must be a number, got {value!r}")
            values.append(int(value))
        return cls(*values)

    @property
    def center_x(self) -> float:
        return self.x + self.width / 2


@dataclass(frozen=True)
class CropPlan:
    """
    A region of the source image, in source pixels.

    Thumbnail plans are squares. `full_image` marks the no-face plan that
    spans the whole image; it is the only plan allowed to be non-square.
    """
    x: int
    y: int
    width: int
    height: int
    full_image: bool = False

    @property
    def size(self) -> int:
        return self.width

    def box(self) -> Tuple[int, int, int, int]:
        """Pillow-style (left, upper, right, lower) tuple."""
        return (self.x, self.y, self.x + self.width, self.y + self.height)


@dataclass
class RenderedAsset:
    """Output files written for one source image."""
    source: Path
    thumbnail_path: Path
    highlight_path: Optional[Path] = None


@dataclass
class ImageFailure:
    """A recoverable, per-image failure recorded during rendering."""
    source: Path
    stage: str  # "read" | "decode" | "render" | "write" | "record"
    message: str


@dataclass
class PipelineResult:
    """Summary of one pipeline run."""
    images: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    detection_batches: int = 0
    dry_run: bool = False
    state: PipelineState = PipelineState.IDLE
    rendered: List[RenderedAsset] = field(default_factory=list)
    failures: List[ImageFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def summary(self) -> str:
        return (
            f"images={self.images} hits={self.cache_hits} misses={self.cache_misses} "
            f"batches={self.detection_batches} rendered={len(self.rendered)} "
            f"failures={len(self.failures)} dry_run={self.dry_run}"
        )


@dataclass
class ThumbnailRecord:
    """Where the thumbnail for a source image was published."""
    source_key: str
    thumbnail_path: str
    highlight_path: Optional[str] = None
    updated_at: datetime = field(default_factory=datetime.utcnow)
