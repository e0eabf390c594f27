"""
Error taxonomy and the single exception classification table.

Every boundary in the service converts failures through classify_exception(),
so the user-facing text for a failure is defined here and nowhere else.
"""

from enum import Enum
from typing import Optional

import httpx
from pydantic import ValidationError


class ErrorKind(str, Enum):
    """Closed set of failure categories surfaced to callers."""
    SERVER_UNAVAILABLE = "server_unavailable"
    NO_MODELS_LOADED = "no_models_loaded"
    MODEL_NOT_FOUND = "model_not_found"
    INVALID_REQUEST = "invalid_request"
    UNKNOWN = "unknown"

    @property
    def user_message(self) -> str:
        return _USER_MESSAGES[self]

    @property
    def status_description(self) -> str:
        return _STATUS_DESCRIPTIONS[self]


_USER_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.SERVER_UNAVAILABLE: (
        "LM Studio server is not running or not accessible. "
        "Please start LM Studio and enable the local server."
    ),
    ErrorKind.NO_MODELS_LOADED: (
        "No models are loaded in LM Studio. Please load a model and try again."
    ),
    ErrorKind.MODEL_NOT_FOUND: (
        "The requested model was not found. "
        "Please check the model name or load it in LM Studio."
    ),
    ErrorKind.INVALID_REQUEST: (
        "The request was rejected as invalid. Please check your input and try again."
    ),
    ErrorKind.UNKNOWN: (
        "An unexpected error occurred while communicating with LM Studio."
    ),
}

_STATUS_DESCRIPTIONS: dict[ErrorKind, str] = {
    ErrorKind.SERVER_UNAVAILABLE: "❌ LM Studio server is not accessible",
    ErrorKind.NO_MODELS_LOADED: "⚠️ LM Studio is running but no models are loaded",
    ErrorKind.MODEL_NOT_FOUND: "⚠️ Requested model is not available",
    ErrorKind.INVALID_REQUEST: "⚠️ Request rejected by LM Studio",
    ErrorKind.UNKNOWN: "❌ LM Studio status unknown",
}


# ─────────────────────────────────────────────────────────────────────
# EXCEPTIONS
# ─────────────────────────────────────────────────────────────────────

class LMStudioError(Exception):
    """Human-readable error from LM Studio API."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ServerUnavailableError(LMStudioError):
    kind = ErrorKind.SERVER_UNAVAILABLE


class NoModelsLoadedError(LMStudioError):
    kind = ErrorKind.NO_MODELS_LOADED


class ModelNotFoundError(LMStudioError):
    kind = ErrorKind.MODEL_NOT_FOUND


class InvalidRequestError(LMStudioError):
    kind = ErrorKind.INVALID_REQUEST


class NoModelAvailableError(ModelNotFoundError):
    """Raised when no model is pinned and the server lists none."""

    def __init__(self, message: str = "No model available"):
        super().__init__(message)


# ─────────────────────────────────────────────────────────────────────
# CLASSIFICATION
# ─────────────────────────────────────────────────────────────────────

_STATUS_MAP: dict[int, ErrorKind] = {
    400: ErrorKind.INVALID_REQUEST,
    404: ErrorKind.MODEL_NOT_FOUND,
    422: ErrorKind.INVALID_REQUEST,
    502: ErrorKind.SERVER_UNAVAILABLE,
    503: ErrorKind.SERVER_UNAVAILABLE,
    504: ErrorKind.SERVER_UNAVAILABLE,
}

# Checked in order against the lowercased exception text.
_MESSAGE_PATTERNS: tuple[tuple[ErrorKind, tuple[str, ...]], ...] = (
    (ErrorKind.NO_MODELS_LOADED, ("no models loaded", "no model loaded")),
    (ErrorKind.MODEL_NOT_FOUND, ("model not found", "does not exist", "not found")),
    (ErrorKind.SERVER_UNAVAILABLE, ("connection refused", "connection", "unavailable", "timed out")),
    (ErrorKind.INVALID_REQUEST, ("invalid", "malformed", "validation")),
)


def _extract_status(exc: BaseException) -> Optional[int]:
    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        return status
    response = getattr(exc, "response", None)
    status = getattr(response, "status_code", None)
    if isinstance(status, int):
        return status
    return None


def classify_exception(exc: BaseException) -> ErrorKind:
    """Map any exception raised by the chat client to an ErrorKind."""
    if isinstance(exc, LMStudioError) and exc.kind is not ErrorKind.UNKNOWN:
        return exc.kind

    if isinstance(exc, (httpx.TransportError, ConnectionError, TimeoutError)):
        return ErrorKind.SERVER_UNAVAILABLE

    status = _extract_status(exc)
    if status is not None and status in _STATUS_MAP:
        return _STATUS_MAP[status]

    if isinstance(exc, (ValidationError, ValueError)):
        return ErrorKind.INVALID_REQUEST

    text = str(exc).lower()
    for kind, patterns in _MESSAGE_PATTERNS:
        if any(p in text for p in patterns):
            return kind
    return ErrorKind.UNKNOWN


def user_message_for(exc: BaseException) -> str:
    """User-facing message for an exception."""
    return classify_exception(exc).user_message


_KIND_ERRORS: dict[ErrorKind, type[LMStudioError]] = {
    ErrorKind.SERVER_UNAVAILABLE: ServerUnavailableError,
    ErrorKind.NO_MODELS_LOADED: NoModelsLoadedError,
    ErrorKind.MODEL_NOT_FOUND: ModelNotFoundError,
    ErrorKind.INVALID_REQUEST: InvalidRequestError,
}


def error_for_status(status_code: int, message: str) -> LMStudioError:
    """Build the LMStudioError subclass matching an HTTP status."""
    error_type = _KIND_ERRORS.get(_STATUS_MAP.get(status_code), LMStudioError)
    return error_type(message, status_code)


def is_retryable_error(exception: BaseException) -> bool:
    """
    Determine if an exception is retryable.

    Retryable errors include:
    - Model loading failures (LM Studio swapping models)
    - Connection errors (transient network issues)
    - Timeout errors (server overloaded)
    """
    if isinstance(exception, (httpx.ConnectError, httpx.TimeoutException)):
        return True
    # Client errors wrap the transport failure that caused them
    if isinstance(exception.__cause__, (httpx.ConnectError, httpx.TimeoutException)):
        return True
    if _extract_status(exception) in (502, 503):
        return True
    error_msg = str(exception).lower()
    retryable_patterns = [
        "failed to load model",
        "model loading",
        "server busy",
    ]
    return any(pattern in error_msg for pattern in retryable_patterns)
