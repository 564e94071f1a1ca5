import os
import tempfile
from pathlib import Path

# Basic settings helper to read environment configuration.

BACKEND_ROOT = Path(__file__).resolve().parent


def _as_bool(val: str | None, default: bool = False) -> bool:
    if val is None:
        return default
    return val.lower() in ("1", "true", "yes", "on")


def _as_int(val: str | None, default: int) -> int:
    if val is None or not val.strip():
        return default
    return int(val)


def _as_float(val: str | None, default: float) -> float:
    if val is None or not val.strip():
        return default
    return float(val)


class Settings:
    def __init__(self) -> None:
        # Face detection
        self.FACE_DETECTOR: str = os.getenv("FACE_DETECTOR", "vision").lower()
        self.VISION_API_KEY: str | None = os.getenv("VISION_API_KEY")
        self.VISION_API_URL: str = os.getenv(
            "VISION_API_URL", "https://vision.googleapis.com/v1/images:annotate"
        )
        self.FACE_DETECT_BATCH_SIZE: int = _as_int(os.getenv("FACE_DETECT_BATCH_SIZE"), 10)
        self.FACE_DETECT_TIMEOUT: float = _as_float(os.getenv("FACE_DETECT_TIMEOUT"), 30.0)
        self.FACE_DETECT_MIN_INTERVAL: float = _as_float(os.getenv("FACE_DETECT_MIN_INTERVAL"), 0.5)
        self.FACE_DETECT_MAX_RETRIES: int = _as_int(os.getenv("FACE_DETECT_MAX_RETRIES"), 2)
        self.FACE_DETECT_BACKOFF: float = _as_float(os.getenv("FACE_DETECT_BACKOFF"), 1.0)

        # Face cache
        self.FACE_CACHE_FILENAME: str = os.getenv("FACE_CACHE_FILENAME", ".faces.json")
        self.FACE_CACHE_PERSIST_EACH_BATCH: bool = _as_bool(os.getenv("FACE_CACHE_PERSIST_EACH_BATCH"), False)

        # Rendering
        self.THUMBNAIL_SIZE: int = _as_int(os.getenv("THUMBNAIL_SIZE"), 256)
        self.THUMBNAIL_QUALITY: int = _as_int(os.getenv("THUMBNAIL_QUALITY"), 95)
        self.THUMBNAIL_FORMAT: str = os.getenv("THUMBNAIL_FORMAT", "jpeg").lower()
        self.THUMBNAIL_SCRATCH_DIR: str = os.getenv(
            "THUMBNAIL_SCRATCH_DIR", os.path.join(tempfile.gettempdir(), "thumbnails-dry-run")
        )
        self.DEBUG_FACE_CROPS: bool = _as_bool(os.getenv("DEBUG_FACE_CROPS"), False)

        # Pipeline
        self.PIPELINE_DEADLINE_SECONDS: float = _as_float(os.getenv("PIPELINE_DEADLINE_SECONDS"), 0.0)

        # Record store
        self.THUMBNAIL_RECORDS_ENABLED: bool = _as_bool(os.getenv("THUMBNAIL_RECORDS_ENABLED"), False)
        self.THUMBNAIL_DB_URL: str = os.getenv(
            "THUMBNAIL_DB_URL", f"sqlite:///{BACKEND_ROOT / 'thumbnails.db'}"
        )


settings = Settings()
