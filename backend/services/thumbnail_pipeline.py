"""
Face-aware thumbnail pipeline.

Pipeline stages:
1. Walk the input directory (hidden entries skipped)
2. Load the face cache
3. Split images into cache hits and misses
4. Detect faces for misses in fixed-size batches, merge, persist the cache
5. Plan a crop and render a thumbnail for every image
6. Write outputs in place, or under a scratch directory in dry-run mode

Anything that goes wrong before rendering aborts the run without touching
the cache. Rendering failures are per image and the run carries on.
"""
from __future__ import annotations

import logging
import os
import time
from collections import Counter
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Tuple

from domain.errors import DetectionBatchMismatch, PipelineTimeout, RenderError, WalkError
from domain.models import BoundingBox, ImageFailure, PipelineResult, PipelineState, RenderedAsset
from services.batching import chunked
from services.crop_planner import plan_crop
from services.face_cache import FaceCache
from services.face_detection import DetectionClient
from services.thumbnail_renderer import decode_image, extension_for, render_highlight, render_thumbnail
from settings import settings
from storage.file_storage import FileStorage, is_output_name

logger = logging.getLogger(__name__)


class ThumbnailRecordStore(Protocol):
    def record(self, source_key: str, asset: RenderedAsset) -> None:
        ...


class Deadline:
    """Run-scoped deadline; `seconds` of None or <= 0 means unbounded."""

    def __init__(self, seconds: Optional[float] = None):
        self.expires_at = time.monotonic() + seconds if seconds and seconds > 0 else None

    def remaining(self) -> Optional[float]:
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - time.monotonic())

    def check(self, phase: str) -> None:
        if self.expires_at is not None and time.monotonic() >= self.expires_at:
            raise PipelineTimeout(f"deadline expired during {phase}")


def list_source_images(root: Path, *, exclude: Tuple[Path, ...] = ()) -> List[Path]:
    """
    Return every visible file under `root`, sorted.

    Hidden files and directories are skipped, as are files this pipeline
    writes itself and anything under `exclude`.
    """
    root = Path(root)
    if not root.is_dir():
        raise WalkError(f"input directory {root} does not exist or is not a directory")
    excluded = {p.resolve() for p in exclude}

    def _raise(err: OSError) -> None:
        raise WalkError(f"unable to read {err.filename}: {err.strerror}") from err

    found: List[Path] = []
    for dirpath, dirnames, filenames in os.walk(root, onerror=_raise):
        current = Path(dirpath)
        dirnames[:] = sorted(
            d for d in dirnames
            if not d.startswith(".") and (current / d).resolve() not in excluded
        )
        for name in filenames:
            if name.startswith("."):
                continue
            if is_output_name(name):
                logger.debug("thumbnails: skipping %s, named like a generated output", current / name)
                continue
            path = current / name
            if path.resolve() in excluded:
                continue
            found.append(path)
    return sorted(found)


def cache_key(root: Path, source: Path) -> str:
    return source.relative_to(root).as_posix()


class ThumbnailPipeline:
    def __init__(
        self,
        detector: DetectionClient,
        *,
        batch_size: Optional[int] = None,
        thumbnail_size: Optional[int] = None,
        quality: Optional[int] = None,
        output_format: Optional[str] = None,
        scratch_dir: Optional[Path] = None,
        debug: Optional[bool] = None,
        record_store: Optional[ThumbnailRecordStore] = None,
        deadline_seconds: Optional[float] = None,
        persist_each_batch: Optional[bool] = None,
    ):
        self.detector = detector
        self.batch_size = batch_size or settings.FACE_DETECT_BATCH_SIZE
        self.thumbnail_size = thumbnail_size or settings.THUMBNAIL_SIZE
        self.quality = quality or settings.THUMBNAIL_QUALITY
        self.output_format = output_format or settings.THUMBNAIL_FORMAT
        self.extension = extension_for(self.output_format)
        self.scratch_dir = Path(scratch_dir or settings.THUMBNAIL_SCRATCH_DIR)
        self.debug = settings.DEBUG_FACE_CROPS if debug is None else debug
        self.record_store = record_store
        self.deadline_seconds = (
            settings.PIPELINE_DEADLINE_SECONDS if deadline_seconds is None else deadline_seconds
        )
        self.persist_each_batch = (
            settings.FACE_CACHE_PERSIST_EACH_BATCH if persist_each_batch is None else persist_each_batch
        )
        self.state = PipelineState.IDLE

    def _enter(self, state: PipelineState, result: PipelineResult) -> None:
        logger.debug("thumbnails: %s -> %s", self.state.value, state.value)
        self.state = state
        result.state = state

    def run(self, input_dir: Path, cache_path: Optional[Path] = None, dry_run: bool = False) -> PipelineResult:
        """
        Run the pipeline over `input_dir`.

        Without an explicit `cache_path` the cache lives at
        `<input_dir>/<FACE_CACHE_FILENAME>`. A dry run never writes that file:
        it reads it as a seed and persists to the same name under the
        scratch directory instead.
        """
        root = Path(input_dir)
        in_tree_cache = root / settings.FACE_CACHE_FILENAME
        seed_path: Optional[Path] = None
        if cache_path:
            cache_path = Path(cache_path)
        elif dry_run:
            cache_path = self.scratch_dir / settings.FACE_CACHE_FILENAME
            seed_path = in_tree_cache
        else:
            cache_path = in_tree_cache
        deadline = Deadline(self.deadline_seconds)
        result = PipelineResult(dry_run=dry_run)
        self.state = PipelineState.IDLE

        self._enter(PipelineState.WALKING, result)
        sources = list_source_images(root, exclude=(cache_path, in_tree_cache, self.scratch_dir))
        keys: Dict[str, Path] = {cache_key(root, p): p for p in sources}
        result.images = len(sources)
        logger.info("thumbnails: found %d images under %s", len(sources), root)

        cache = FaceCache.load(cache_path)
        if seed_path is not None:
            seeded = FaceCache.load(seed_path)
            seeded.merge({key: cache.get(key) for key in cache})
            cache = seeded
        self._enter(PipelineState.CACHE_LOADED, result)
        misses = cache.missing(keys)
        result.cache_misses = len(misses)
        result.cache_hits = len(keys) - len(misses)
        logger.info("thumbnails: cache hits=%d misses=%d", result.cache_hits, result.cache_misses)

        skipped: Dict[str, ImageFailure] = {}
        if misses:
            self._enter(PipelineState.DETECTING, result)
            self._detect_missing(misses, keys, cache, cache_path, deadline, result, skipped)
            self._enter(PipelineState.CACHE_PERSISTED, result)

        self._enter(PipelineState.RENDERING, result)
        storage = FileStorage(
            root,
            extension=self.extension,
            dry_run=dry_run,
            scratch_dir=self.scratch_dir if dry_run else None,
        )
        per_dir = Counter(p.parent for p in sources)
        for key, source in keys.items():
            deadline.check("rendering")
            if key in skipped:
                continue
            box = cache.get(key)
            if box is None:
                continue
            self._render_one(key, source, box, storage, per_dir[source.parent] > 1, dry_run, result)

        self._enter(PipelineState.DONE, result)
        logger.info("thumbnails: done %s", result.summary())
        return result

    def _read_for_detection(self, source: Path) -> bytes:
        raw = source.read_bytes()
        # full decode; verify() lets truncated files through
        decode_image(raw)
        return raw

    def _detect_missing(
        self,
        misses: List[str],
        keys: Dict[str, Path],
        cache: FaceCache,
        cache_path: Path,
        deadline: Deadline,
        result: PipelineResult,
        skipped: Dict[str, ImageFailure],
    ) -> None:
        detected: Dict[str, BoundingBox] = {}
        batches = list(chunked(misses, self.batch_size))
        for index, batch_keys in enumerate(batches, start=1):
            deadline.check("detection")
            batch: List[Tuple[str, bytes]] = []
            for key in batch_keys:
                try:
                    batch.append((key, self._read_for_detection(keys[key])))
                except (RenderError, OSError) as exc:
                    failure = ImageFailure(keys[key], "read", f"unreadable image: {exc}")
                    logger.warning("thumbnails: skipping %s: %s", keys[key], failure.message)
                    skipped[key] = failure
                    result.failures.append(failure)
            if not batch:
                continue

            logger.info("thumbnails: detection batch %d/%d (%d images)", index, len(batches), len(batch))
            boxes = self.detector.detect([raw for _, raw in batch], timeout=deadline.remaining())
            if len(boxes) != len(batch):
                raise DetectionBatchMismatch(len(batch), len(boxes))
            found = {key: box for (key, _), box in zip(batch, boxes)}
            result.detection_batches += 1

            if self.persist_each_batch:
                cache.merge(found)
                cache.persist(cache_path)
            else:
                detected.update(found)

        if not self.persist_each_batch and detected:
            cache.merge(detected)
            cache.persist(cache_path)

    def _render_one(
        self,
        key: str,
        source: Path,
        box: BoundingBox,
        storage: FileStorage,
        shares_directory: bool,
        dry_run: bool,
        result: PipelineResult,
    ) -> None:
        stage = "read"
        try:
            raw = storage.read_bytes(source)
            stage = "decode"
            img = decode_image(raw)
            stage = "render"
            plan = plan_crop(box, img.width, img.height)
            thumb_bytes = render_thumbnail(
                img, plan, size=self.thumbnail_size, fmt=self.output_format, quality=self.quality
            )
            highlight_bytes = None
            if dry_run or self.debug:
                highlight_bytes = render_highlight(img, plan, fmt=self.output_format, quality=self.quality)

            stage = "write"
            thumb_path, highlight_path = storage.output_paths(source, shares_directory=shares_directory)
            storage.write_bytes(thumb_path, thumb_bytes)
            logger.info("thumbnails: wrote %s", thumb_path)
            asset = RenderedAsset(source=source, thumbnail_path=thumb_path)
            if highlight_bytes is not None:
                storage.write_bytes(highlight_path, highlight_bytes)
                asset.highlight_path = highlight_path
                logger.info("thumbnails: wrote %s", highlight_path)
        except (RenderError, OSError, ValueError) as exc:
            failure = ImageFailure(source, stage, str(exc))
            logger.warning("thumbnails: failed %s at %s: %s", source, stage, exc)
            result.failures.append(failure)
            return

        result.rendered.append(asset)
        if self.record_store is not None and not dry_run:
            try:
                self.record_store.record(key, asset)
            except Exception as exc:
                logger.exception("thumbnails: unable to record output for %s", source)
                result.failures.append(ImageFailure(source, "record", str(exc)))
