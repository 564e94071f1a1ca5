"""
Durable face-detection cache.

A single JSON snapshot maps a source-image key to its detected bounding box:

    {"people/jane/original.jpg": {"x": 10, "y": 20, "width": 80, "height": 80, "noFace": false}}

A key that is absent has not been detected yet; a key stored with
`noFace: true` was detected and found nothing, and is authoritative. The
snapshot is read once at the start of a run and written back as a whole
(temp file + rename) after a successful detection pass.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Union

from domain.errors import FaceCacheError
from domain.models import BoundingBox

logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]


class FaceCache:
    def __init__(self, entries: Optional[Mapping[str, BoundingBox]] = None):
        self._entries: Dict[str, BoundingBox] = dict(entries or {})

    @classmethod
    def load(cls, path: PathLike) -> "FaceCache":
        """
        Read a snapshot from `path`.

        A missing file is the first-run case and yields an empty cache. Any
        other read or parse failure raises FaceCacheError.
        """
        src = Path(path)
        try:
            raw = src.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.info("face cache %s not found; starting empty", src)
            return cls()
        except OSError as exc:
            raise FaceCacheError(f"unable to read face cache {src}: {exc}") from exc

        try:
            payload = json.loads(raw)
        except ValueError as exc:
            raise FaceCacheError(f"face cache {src} is not valid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise FaceCacheError(f"face cache {src} must contain a JSON object")

        entries: Dict[str, BoundingBox] = {}
        for key, value in payload.items():
            try:
                entries[key] = BoundingBox.from_dict(value)
            except ValueError as exc:
                raise FaceCacheError(f"face cache {src} has a bad entry for {key!r}: {exc}") from exc
        logger.info("face cache %s loaded with %d entries", src, len(entries))
        return cls(entries)

    def missing(self, keys: Iterable[str]) -> List[str]:
        """Return the requested keys that have never been detected, in input order."""
        return [k for k in keys if k not in self._entries]

    def merge(self, entries: Mapping[str, BoundingBox]) -> None:
        for key, box in entries.items():
            if key in self._entries:
                logger.debug("face cache: overwriting %s", key)
            self._entries[key] = box

    def get(self, key: str) -> Optional[BoundingBox]:
        return self._entries.get(key)

    def persist(self, path: PathLike) -> None:
        """Write the whole cache as one snapshot, replacing any previous file."""
        dst = Path(path)
        payload = {key: self._entries[key].to_dict() for key in sorted(self._entries)}
        tmp_name = None
        try:
            dst.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{dst.name}.", suffix=".tmp", dir=str(dst.parent))
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2, sort_keys=True)
                fh.write("\n")
            os.replace(tmp_name, dst)
            tmp_name = None
        except OSError as exc:
            raise FaceCacheError(f"unable to write face cache {dst}: {exc}") from exc
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
        logger.info("face cache %s persisted with %d entries", dst, len(self._entries))

    def to_dict(self) -> Dict[str, Dict]:
        return {key: box.to_dict() for key, box in self._entries.items()}

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)
