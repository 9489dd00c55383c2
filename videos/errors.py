"""Failure taxonomy for the processing pipeline.

The worker is the only place these are translated into asset state:
``InputError`` fails the asset immediately, ``TransientError`` is retried
until the attempt cap is reached.
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for everything the pipeline raises on purpose."""


class InputError(PipelineError):
    """Retrying cannot change the outcome (bad or missing input)."""


class TransientError(PipelineError):
    """Execution failed in a way a later attempt may not repeat."""


class EmptySourceListError(InputError):
    def __init__(self):
        super().__init__("A processing job needs at least one source file.")


class MissingSourceError(InputError):
    def __init__(self, path):
        self.path = str(path)
        super().__init__(f"Source file not found: {self.path}")


class TrackLayoutMismatchError(InputError):
    """Merge inputs do not share the same video/audio track layout."""


class InvalidPlanError(InputError):
    """An encoding plan references something outside the fixed catalogs."""


class AlreadyProcessingError(PipelineError):
    """The asset already has a job queued or running."""

    def __init__(self, video_id, status: str):
        self.video_id = str(video_id)
        self.status = status
        super().__init__(f"Video {self.video_id} is already {status}")


class VideoNotFoundError(PipelineError):
    def __init__(self, video_id):
        self.video_id = str(video_id)
        super().__init__(f"Video {self.video_id} not found")


class EncoderError(TransientError):
    """ffmpeg exited nonzero. ``stderr_tail`` is kept verbatim for operators."""

    def __init__(self, returncode: Optional[int], stderr_tail: str, *, stage: str = "encode"):
        self.returncode = returncode
        self.stderr_tail = stderr_tail
        self.stage = stage
        message = f"ffmpeg {stage} exited with code {returncode}"
        if stderr_tail:
            message = f"{message}: {stderr_tail}"
        super().__init__(message)


class UndecodableInputError(InputError):
    """ffmpeg rejected the input itself (corrupt or unsupported media)."""

    def __init__(self, returncode: Optional[int], stderr_tail: str, *, stage: str = "encode"):
        self.returncode = returncode
        self.stderr_tail = stderr_tail
        self.stage = stage
        super().__init__(f"ffmpeg {stage} rejected the input (exit {returncode}): {stderr_tail}")


class SpawnError(TransientError):
    """The encoder binary could not be started."""
