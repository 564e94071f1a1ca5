"""Generate face-centered portrait thumbnails for a directory of images.

Usage:
    python -m scripts.generate_thumbnails <input_dir> [--cache PATH] [--dry-run] [--debug]

Faces are detected once per image and cached in a JSON dotfile (by default
`<input_dir>/.faces.json`); later runs only detect new images. In normal
mode `thumbnail.jpg` is written next to each source. With --dry-run the
outputs (plus a `highlighted` preview of the crop box) go to a scratch
directory and the source tree is left alone; the default cache is then read
from the input directory but written under the scratch directory.

Exit status: 0 on success, 1 on a fatal error, 2 when --strict is given
and at least one image failed.
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from backend/.env (optional) before imports that read settings
load_dotenv(Path(__file__).resolve().parents[1] / ".env")

from db import make_session_factory  # noqa: E402
from domain.errors import ThumbnailPipelineError  # noqa: E402
from repositories import SqlThumbnailRecordStore  # noqa: E402
from services.face_detection import get_detection_client  # noqa: E402
from services.thumbnail_pipeline import ThumbnailPipeline  # noqa: E402
from services.thumbnail_renderer import register_heif_opener  # noqa: E402
from settings import settings  # noqa: E402

logger = logging.getLogger("generate_thumbnails")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate face-centered portrait thumbnails.")
    parser.add_argument("input_dir", help="Directory of source portraits (searched recursively).")
    parser.add_argument("--cache", default=None, help=f"Face cache file (default: <input_dir>/{settings.FACE_CACHE_FILENAME}, or under the scratch directory with --dry-run).")
    parser.add_argument("--dry-run", action="store_true", help="Write outputs to the scratch directory instead of in place.")
    parser.add_argument("--scratch-dir", default=settings.THUMBNAIL_SCRATCH_DIR, help="Output directory for --dry-run.")
    parser.add_argument("--debug", action="store_true", help="Also write highlighted crop previews in normal mode.")
    parser.add_argument("--detector", choices=["vision", "mediapipe"], default=settings.FACE_DETECTOR)
    parser.add_argument("--batch-size", type=int, default=settings.FACE_DETECT_BATCH_SIZE, help="Images per detection call.")
    parser.add_argument("--deadline", type=float, default=settings.PIPELINE_DEADLINE_SECONDS, help="Abort the run after this many seconds (0 = no limit).")
    parser.add_argument("--record", action="store_true", default=settings.THUMBNAIL_RECORDS_ENABLED, help="Store output locations in the thumbnails database.")
    parser.add_argument("--strict", action="store_true", help="Exit with status 2 when any image fails.")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if register_heif_opener():
        logger.debug("HEIF/HEIC support enabled")

    record_store = None
    if args.record and not args.dry_run:
        record_store = SqlThumbnailRecordStore(make_session_factory())

    try:
        pipeline = ThumbnailPipeline(
            get_detection_client(args.detector),
            batch_size=args.batch_size,
            scratch_dir=Path(args.scratch_dir),
            debug=args.debug or settings.DEBUG_FACE_CROPS,
            record_store=record_store,
            deadline_seconds=args.deadline,
        )
        result = pipeline.run(
            Path(args.input_dir),
            cache_path=Path(args.cache) if args.cache else None,
            dry_run=args.dry_run,
        )
    except (ThumbnailPipelineError, ValueError) as exc:
        logger.error("thumbnail run aborted: %s", exc)
        return 1

    for failure in result.failures:
        logger.warning("failed: %s (%s): %s", failure.source, failure.stage, failure.message)
    print(f"Thumbnails: {result.summary()}")
    if args.dry_run:
        print(f"Scratch dir: {args.scratch_dir}")
    if args.strict and not result.ok:
        return 2
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
