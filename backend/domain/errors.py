"""
Error taxonomy for the thumbnail pipeline.

Everything except RenderError aborts a run. RenderError is reported per
image and never escapes the orchestrator.
"""


class ThumbnailPipelineError(Exception):
    """Base class for pipeline errors."""


class WalkError(ThumbnailPipelineError):
    """The input directory could not be enumerated."""


class FaceCacheError(ThumbnailPipelineError):
    """The face cache snapshot could not be read, parsed or written."""


class DetectionError(ThumbnailPipelineError):
    """The face detection service failed or returned an unusable response."""


class DetectionBatchMismatch(DetectionError):
    """The detection response does not line up with the request batch."""

    def __init__(self, expected: int, got: int):
        super().__init__(f"detection returned {got} results for a batch of {expected} images")
        self.expected = expected
        self.got = got


class PipelineTimeout(ThumbnailPipelineError):
    """The run-scoped deadline expired."""


class RenderError(ThumbnailPipelineError):
    """A single image could not be decoded, cropped, resized or encoded."""
