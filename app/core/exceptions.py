"""
Application-level exception types.

Input errors are raised before any network I/O and map to client errors.
Provider errors are terminal for a generation request and map to upstream
errors. Upload and history errors are absorbed where they occur.
"""

from __future__ import annotations


class AppError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, *, detail: str | None = None) -> None:
        self.detail = detail or message
        super().__init__(message)


class ConfigurationError(AppError):
    """Raised when required configuration is missing or invalid."""


class InputError(AppError):
    """Raised when a generation request is rejected before dispatch."""


class InvalidStyleError(InputError):
    """Raised when the requested style does not exist."""

    def __init__(self, style_id: str) -> None:
        super().__init__(f"Style '{style_id}' not found", detail="Invalid style")
        self.style_id = style_id


class InvalidEngineError(InputError):
    """Raised when the engine is not supported for the requested style."""

    def __init__(self, engine: str, style_id: str, supported: list[str] | tuple[str, ...]) -> None:
        supported_text = ", ".join(supported) or "none"
        super().__init__(
            f"Engine '{engine}' is not supported for style '{style_id}'. Supported engines: {supported_text}",
            detail="Invalid engine",
        )
        self.engine = engine
        self.style_id = style_id
        self.supported = list(supported)


class UploadError(AppError):
    """Raised when a reference image cannot be uploaded."""

    def __init__(self, message: str, *, local_path: str | None = None) -> None:
        super().__init__(message)
        self.local_path = local_path


class ProviderError(AppError):
    """Base for terminal failures reported by (or about) a remote engine."""

    def __init__(self, message: str, *, engine: str, task_id: str | None = None) -> None:
        super().__init__(message)
        self.engine = engine
        self.task_id = task_id


class ProviderSubmitError(ProviderError):
    """Raised when an engine rejects task creation."""


class ProviderPollError(ProviderError):
    """Raised when an engine reports failure or returns an unusable result."""


class ProviderTimeoutError(ProviderError):
    """Raised when the poll budget is exhausted without a terminal state."""

    def __init__(self, message: str, *, engine: str, task_id: str | None = None, attempts: int = 0) -> None:
        super().__init__(message, engine=engine, task_id=task_id)
        self.attempts = attempts


class HistoryPersistError(AppError):
    """Raised when a generation history record cannot be stored."""
