"""
Failure kinds raised by the index pipeline.

Every error carries a ``kind`` tag so HTTP handlers and export flows can branch
on it without inspecting messages. "No imagery" is deliberately absent: it is a
normal result (see ``NoImagery`` in ``vegindex.models.domain``), not an error.
"""

from typing import Optional


class IndexPipelineError(Exception):
    """Base class for all pipeline failures."""

    kind = "pipeline_error"
    retryable = False

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.stage = stage

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "message": self.message,
            "stage": self.stage,
            "retryable": self.retryable,
        }


class InvalidInput(IndexPipelineError):
    """Polygon or index type rejected at the boundary."""

    kind = "invalid_input"


class RemoteTimeout(IndexPipelineError):
    """A remote compute call exceeded its deadline."""

    kind = "remote_timeout"
    retryable = True

    def __init__(self, operation: str, timeout: float):
        super().__init__(
            f"{operation} timed out after {timeout:g} seconds", stage=operation
        )
        self.operation = operation
        self.timeout = timeout


class RemoteComputeError(IndexPipelineError):
    """The remote compute service rejected or failed a call."""

    kind = "remote_error"
    retryable = True


class StatisticsMissingKeys(IndexPipelineError):
    """Reducer succeeded but produced no usable min/max (no valid pixels)."""

    kind = "no_valid_pixels"

    def __init__(self, index_name: str, received_keys):
        keys = ", ".join(sorted(received_keys)) or "none"
        super().__init__(
            f"Statistics missing {index_name}_min/{index_name}_max. Received: {keys}",
            stage="statistics",
        )
        self.received_keys = list(received_keys)


class RenderingFailed(IndexPipelineError):
    """Both the primary render and the fallback composite failed."""

    kind = "rendering_failed"


class CacheWriteFailed(IndexPipelineError):
    """Result cache write failed. Logged, never surfaced to callers."""

    kind = "cache_write_failed"


class ImageStoreError(IndexPipelineError):
    """Export image store upload or lookup failed."""

    kind = "image_store_error"
