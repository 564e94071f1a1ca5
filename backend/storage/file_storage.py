"""
File storage for generated thumbnails.

Outputs are organized as:
- normal mode: next to the source image
    people/jane/original.jpg -> people/jane/thumbnail.jpg (+ highlighted.jpg)
  or, when the directory holds several source images,
    people/group/a.jpg -> people/group/a-thumbnail.jpg
- dry-run mode: under a scratch directory mirroring the input tree, always
  prefixed with the source's base name
    <scratch>/people/jane/original-thumbnail.jpg

In-place names depend on how many sources a directory holds when the run
starts. A directory that grows from one source to several switches to
prefixed names; the earlier unprefixed `thumbnail.jpg` is left where it is
and is never read back as a source.
"""
import os
import re
from pathlib import Path
from typing import Optional, Tuple

THUMBNAIL_NAME = "thumbnail"
HIGHLIGHT_NAME = "highlighted"

_OUTPUT_NAME_RE = re.compile(
    rf"^(?:.+-)?(?:{THUMBNAIL_NAME}|{HIGHLIGHT_NAME})\.(?:jpg|jpeg|webp)$", re.IGNORECASE
)


def is_output_name(filename: str) -> bool:
    """True for file names this pipeline writes, so they are never re-ingested."""
    return bool(_OUTPUT_NAME_RE.match(filename))


class FileStorage:
    """Resolves output locations for a run and writes encoded bytes."""

    def __init__(
        self,
        input_root: Path,
        *,
        extension: str = "jpg",
        dry_run: bool = False,
        scratch_dir: Optional[Path] = None,
    ):
        self.input_root = Path(input_root)
        self.extension = extension
        self.dry_run = dry_run
        if dry_run and scratch_dir is None:
            raise ValueError("dry-run mode needs a scratch directory")
        self.scratch_dir = Path(scratch_dir) if scratch_dir is not None else None

    def _names(self, source: Path, prefixed: bool) -> Tuple[str, str]:
        if prefixed:
            return (
                f"{source.stem}-{THUMBNAIL_NAME}.{self.extension}",
                f"{source.stem}-{HIGHLIGHT_NAME}.{self.extension}",
            )
        return f"{THUMBNAIL_NAME}.{self.extension}", f"{HIGHLIGHT_NAME}.{self.extension}"

    def output_paths(self, source: Path, *, shares_directory: bool = False) -> Tuple[Path, Path]:
        """
        Return (thumbnail_path, highlight_path) for a source image.

        Args:
            source: Absolute path of the source image
            shares_directory: Whether other source images live in the same directory
        """
        if self.dry_run:
            rel_dir = source.parent.relative_to(self.input_root)
            out_dir = self.scratch_dir / rel_dir
            thumb, highlight = self._names(source, prefixed=True)
        else:
            out_dir = source.parent
            thumb, highlight = self._names(source, prefixed=shares_directory)
        return out_dir / thumb, out_dir / highlight

    def write_bytes(self, path: Path, data: bytes) -> Path:
        """Write `data` to `path` via a temp file so readers never see a partial image."""
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(f".{path.name}.tmp")
        try:
            with open(tmp, "wb") as f:
                f.write(data)
            os.replace(tmp, path)
        finally:
            if tmp.exists():
                tmp.unlink()
        return path

    def read_bytes(self, path: Path) -> bytes:
        with open(path, "rb") as f:
            return f.read()
