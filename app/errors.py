"""Exception taxonomy shared by adapters, workers, and routes."""

from typing import Optional


class ClipScoutError(Exception):
    """Base class for application errors."""


class ConfigValidationError(ClipScoutError):
    """Source configuration rejected before it is persisted."""

    def __init__(self, errors: list[str], warnings: Optional[list[str]] = None):
        self.errors = errors
        self.warnings = warnings or []
        super().__init__("; ".join(errors) or "Invalid configuration")


class FetchError(ClipScoutError):
    """Transport, HTTP, or parse failure inside a source adapter."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class CooldownError(ClipScoutError):
    """Manual trigger refused because a run is in flight or too recent."""


class EnqueueError(ClipScoutError):
    """The job queue refused a job after its run record was created."""


class PipelineFatal(ClipScoutError):
    """A query run failed outside per-video error handling."""
