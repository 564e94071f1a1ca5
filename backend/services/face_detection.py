"""
Face detection boundary.

A DetectionClient takes a batch of raw image bytes and returns exactly one
BoundingBox per image, in input order. Chunking into batches is the
caller's job. Two implementations are provided:

- VisionFaceDetectionClient: the remote batch annotate API (one HTTP call
  per batch), rate limited and retried on transient failures.
- MediaPipeFaceDetectionClient: local detection for offline runs.

Both keep only the most confident face per image; on equal confidence the
first face reported wins. An image with no face yields BoundingBox.none().
"""
from __future__ import annotations

import base64
import io
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

import requests

from domain.errors import DetectionBatchMismatch, DetectionError
from domain.models import BoundingBox
from settings import settings

logger = logging.getLogger(__name__)

_TRANSIENT_STATUS = {429, 500, 502, 503, 504}


class DetectionClient(Protocol):
    def detect(self, images: Sequence[bytes], timeout: Optional[float] = None) -> List[BoundingBox]:
        ...


def vertices_to_box(vertices: Sequence[Dict[str, Any]]) -> BoundingBox:
    """Reduce polygon vertices to an axis-aligned box. Omitted coordinates are 0."""
    if not vertices:
        return BoundingBox.none()
    xs = [int(v.get("x", 0) or 0) for v in vertices]
    ys = [int(v.get("y", 0) or 0) for v in vertices]
    left, top = min(xs), min(ys)
    return BoundingBox(x=left, y=top, width=max(xs) - left, height=max(ys) - top)


def _annotation_confidence(ann: Dict[str, Any]) -> float:
    return float(ann.get("detectionConfidence", 0.0) or 0.0)


def pick_primary_face(faces: Sequence[Any], score: Callable[[Any], float] = _annotation_confidence) -> Optional[Any]:
    """Return the highest-scoring face; ties keep the earliest one."""
    best = None
    best_score = 0.0
    for face in faces:
        face_score = score(face)
        if best is None or face_score > best_score:
            best = face
            best_score = face_score
    return best


def box_from_response(response: Dict[str, Any]) -> BoundingBox:
    """Convert one per-image annotate response into a BoundingBox."""
    error = response.get("error")
    if error:
        raise DetectionError(f"face detection failed for image: {error.get('message', error)}")
    face = pick_primary_face(response.get("faceAnnotations") or [])
    if face is None:
        return BoundingBox.none()
    return vertices_to_box((face.get("boundingPoly") or {}).get("vertices") or [])


class VisionFaceDetectionClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
        min_interval: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff: Optional[float] = None,
        max_results: int = 10,
    ):
        self.api_key = api_key if api_key is not None else settings.VISION_API_KEY
        self.url = url or settings.VISION_API_URL
        self.session = session or requests.Session()
        self.timeout = timeout if timeout is not None else settings.FACE_DETECT_TIMEOUT
        self.min_interval = min_interval if min_interval is not None else settings.FACE_DETECT_MIN_INTERVAL
        self.max_retries = max_retries if max_retries is not None else settings.FACE_DETECT_MAX_RETRIES
        self.backoff = backoff if backoff is not None else settings.FACE_DETECT_BACKOFF
        self.max_results = max_results
        self._lock = threading.Lock()
        self._last_request_ts = 0.0

    def _build_payload(self, images: Sequence[bytes]) -> Dict[str, Any]:
        return {
            "requests": [
                {
                    "image": {"content": base64.b64encode(raw).decode("ascii")},
                    "features": [{"type": "FACE_DETECTION", "maxResults": self.max_results}],
                }
                for raw in images
            ]
        }

    def _throttled_post(self, payload: Dict[str, Any], timeout: float) -> requests.Response:
        """POST with a minimum interval between consecutive calls."""
        with self._lock:
            delta = time.time() - self._last_request_ts
            if delta < self.min_interval:
                time.sleep(self.min_interval - delta)
            self._last_request_ts = time.time()
        params = {"key": self.api_key} if self.api_key else None
        return self.session.post(self.url, params=params, json=payload, timeout=timeout)

    def _post_with_retries(self, payload: Dict[str, Any], timeout: float) -> Dict[str, Any]:
        last_problem = ""
        for attempt in range(self.max_retries + 1):
            if attempt:
                delay = self.backoff * (2 ** (attempt - 1))
                logger.warning(
                    "face detection attempt %d/%d failed (%s); retrying in %.1fs",
                    attempt, self.max_retries + 1, last_problem, delay,
                )
                time.sleep(delay)
            try:
                resp = self._throttled_post(payload, timeout)
            except (requests.ConnectionError, requests.Timeout) as exc:
                last_problem = str(exc)
                continue
            except requests.RequestException as exc:
                raise DetectionError(f"face detection request failed: {exc}") from exc

            if resp.status_code in _TRANSIENT_STATUS:
                last_problem = f"HTTP {resp.status_code}"
                continue
            if resp.status_code >= 400:
                raise DetectionError(f"face detection rejected the request: HTTP {resp.status_code} {resp.text[:200]}")
            try:
                return resp.json()
            except ValueError as exc:
                raise DetectionError(f"face detection returned invalid JSON: {exc}") from exc

        raise DetectionError(f"face detection failed after {self.max_retries + 1} attempts: {last_problem}")

    def detect(self, images: Sequence[bytes], timeout: Optional[float] = None) -> List[BoundingBox]:
        if not images:
            return []
        effective_timeout = self.timeout if timeout is None else min(self.timeout, timeout)
        data = self._post_with_retries(self._build_payload(images), effective_timeout)
        responses = data.get("responses") if isinstance(data, dict) else None
        if not isinstance(responses, list):
            raise DetectionError("face detection response has no 'responses' list")
        if len(responses) != len(images):
            raise DetectionBatchMismatch(len(images), len(responses))
        boxes = [box_from_response(r or {}) for r in responses]
        logger.debug(
            "VisionFaceDetectionClient.detect: %d images, %d with faces",
            len(images), sum(1 for b in boxes if not b.no_face),
        )
        return boxes


def _detection_score(det: Any) -> float:
    return float(det.score[0]) if det.score else 0.0


class MediaPipeFaceDetectionClient:
    """Local face detection. Requires the optional `mediapipe` dependency."""

    def __init__(self, min_confidence: float = 0.5, model_selection: int = 1, face_module: Any = None):
        if face_module is None:
            try:
                import mediapipe as mp
            except ImportError as exc:
                raise DetectionError("mediapipe is not installed; install the 'local' extra") from exc
            face_module = mp.solutions.face_detection
        self._mp_face = face_module
        self.min_confidence = min_confidence
        self.model_selection = model_selection

    def _detect_one(self, detector, raw: bytes) -> BoundingBox:
        import numpy as np
        from PIL import Image

        try:
            with Image.open(io.BytesIO(raw)) as img:
                rgb = img.convert("RGB")
        except Exception as exc:
            raise DetectionError(f"unable to decode image for detection: {exc}") from exc
        w, h = rgb.size
        results = detector.process(np.array(rgb))
        best = pick_primary_face(results.detections or [], score=_detection_score)
        if best is None:
            return BoundingBox.none()
        rbox = best.location_data.relative_bounding_box
        left = int(max(0, rbox.xmin * w))
        top = int(max(0, rbox.ymin * h))
        right = int(min(w, (rbox.xmin + rbox.width) * w))
        bottom = int(min(h, (rbox.ymin + rbox.height) * h))
        if right <= left or bottom <= top:
            return BoundingBox.none()
        return BoundingBox(x=left, y=top, width=right - left, height=bottom - top)

    def detect(self, images: Sequence[bytes], timeout: Optional[float] = None) -> List[BoundingBox]:
        with self._mp_face.FaceDetection(
            model_selection=self.model_selection, min_detection_confidence=self.min_confidence
        ) as detector:
            return [self._detect_one(detector, raw) for raw in images]


def get_detection_client(name: Optional[str] = None) -> DetectionClient:
    """Select the configured detection client (`vision` or `mediapipe`)."""
    name = (name or settings.FACE_DETECTOR).lower()
    if name == "vision":
        if not settings.VISION_API_KEY:
            logger.warning("VISION_API_KEY not set; requests will likely be rejected")
        return VisionFaceDetectionClient()
    if name == "mediapipe":
        return MediaPipeFaceDetectionClient()
    raise ValueError(f"unknown face detector {name!r}; expected 'vision' or 'mediapipe'")
