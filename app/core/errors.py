"""
Error taxonomy for the media-to-product-list pipeline.

Every stage raises a subclass of PipelineError; the HTTP layer maps each class
to a status code via ``status_code``. CleanupWarning sits outside that
hierarchy: cleanup failures are logged and collected, never raised.
"""

from __future__ import annotations

from typing import Optional


class PipelineError(Exception):
    """Base class for failures that abort one pipeline invocation."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class UnsupportedMediaType(PipelineError):
    status_code = 415

    def __init__(self, mime_type: Optional[str]) -> None:
        super().__init__(f"Unsupported file type {mime_type!r} (must be image or video)")
        self.mime_type = mime_type


class UploadTooLarge(PipelineError):
    status_code = 413

    def __init__(self, limit: int) -> None:
        super().__init__(f"Upload exceeds the {limit} byte limit")
        self.limit = limit


class ExtractionError(PipelineError):
    """ffmpeg failed or produced no frames."""

    status_code = 422


class CopyError(PipelineError):
    """A still image could not be staged as a frame."""


class CompositeError(PipelineError):
    """None of the selected frames could be decoded."""

    status_code = 422


class ProviderError(PipelineError):
    """A single vision provider failed (transport, status, or payload)."""

    status_code = 502

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class NoFallbackConfigured(PipelineError):
    status_code = 502

    def __init__(self, primary_error: Exception) -> None:
        super().__init__(f"Primary provider failed and no fallback is configured ({primary_error})")
        self.primary_error = primary_error


class BothProvidersFailed(PipelineError):
    status_code = 502

    def __init__(self, primary_error: Exception, fallback_error: Exception) -> None:
        super().__init__(
            f"Both vision providers failed. primary: {primary_error}; fallback: {fallback_error}"
        )
        self.primary_error = primary_error
        self.fallback_error = fallback_error


class InvalidMergeMode(PipelineError):
    status_code = 422

    def __init__(self, mode: str) -> None:
        super().__init__(f"Unknown inventory mode {mode!r} (expected 'append' or 'replace')")
        self.mode = mode


class CleanupWarning(UserWarning):
    """A temporary path could not be removed. Logged, never raised."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Failed to remove {path}: {reason}")
        self.path = path
        self.reason = reason
