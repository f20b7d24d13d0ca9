# speech_agent/errors.py

"""Error taxonomy and failure classification for the speech agent."""
import asyncio
from typing import Any, Dict, Optional, Union

import httpx
from google.genai import errors as genai_errors

from .models import ClassifiedError

# HTTP statuses treated as transient by the backoff retry wrapper.
TRANSIENT_STATUS_CODES = frozenset({408, 409, 425, 429, 500, 502, 503, 504, 520, 522, 523, 524})

# Lower-cased substrings that mark a status-less failure as transient.
TRANSIENT_MESSAGE_MARKERS = (
    "timeout",
    "timed out",
    "rate limit",
    "too many requests",
    "resource_exhausted",
    "gateway",
    "upstream",
    "econnreset",
    "connection reset",
    "socket hang up",
)


class TTSError(Exception):
    """Base class for every failure raised by the speech agent."""

    classified: Optional[ClassifiedError] = None


class ConfigurationError(TTSError):
    """Missing credential, empty roster or script; raised before any I/O."""


class UnsupportedOperationError(TTSError):
    """The caller routed a request to a backend that cannot serve it."""


class ProviderError(TTSError):
    def __init__(
        self,
        provider: str,
        message: str,
        original_exception: Optional[BaseException] = None,
        status: Optional[int] = None,
        code: Optional[Union[int, str]] = None,
    ):
        self.provider = provider
        self.message = message
        self.original_exception = original_exception
        self.status = status
        self.code = code
        super().__init__(f"Provider '{provider}' error: {message}" + (f" (Original: {type(original_exception).__name__})" if original_exception else ""))


class EmptyAudioError(ProviderError):
    """The backend answered but the response carried no audio payload."""


_FATAL_ERROR_TYPES = (ConfigurationError, UnsupportedOperationError, EmptyAudioError)


def _own_status(error: BaseException) -> Optional[int]:
    if isinstance(error, ProviderError):
        return error.status
    if isinstance(error, genai_errors.APIError):
        return error.code
    return None


def _response_status(error: BaseException) -> Optional[int]:
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    return None


def _cause_of(error: BaseException) -> Optional[BaseException]:
    if error.__cause__ is not None:
        return error.__cause__
    if isinstance(error, ProviderError):
        return error.original_exception
    return None


def extract_status(error: BaseException) -> Optional[int]:
    """Status from the error itself, then its response, then its cause."""
    status = _own_status(error)
    if status is None:
        status = _response_status(error)
    if status is None:
        cause = _cause_of(error)
        if cause is not None:
            status = _own_status(cause)
            if status is None:
                status = _response_status(cause)
    return status


def _is_timeout(error: BaseException) -> bool:
    timeout_types = (httpx.TimeoutException, asyncio.TimeoutError)
    if isinstance(error, timeout_types):
        return True
    cause = _cause_of(error)
    return isinstance(cause, timeout_types)


def extract_code(error: BaseException) -> Optional[Union[int, str]]:
    if isinstance(error, ProviderError) and error.code is not None:
        return error.code
    if isinstance(error, genai_errors.APIError):
        return error.status
    if _is_timeout(error):
        return "timeout"
    return None


def error_message(error: BaseException) -> str:
    return str(error) or type(error).__name__


def classify_error(error: BaseException) -> ClassifiedError:
    """Normalize an arbitrary failure into a ClassifiedError."""
    status = extract_status(error)
    message = error_message(error)

    if isinstance(error, _FATAL_ERROR_TYPES):
        retryable = False
    elif status is not None:
        retryable = status in TRANSIENT_STATUS_CODES
    elif _is_timeout(error):
        retryable = True
    else:
        lowered = message.lower()
        retryable = any(marker in lowered for marker in TRANSIENT_MESSAGE_MARKERS)

    return ClassifiedError(status=status, code=extract_code(error), message=message, retryable=retryable)


def is_retryable(error: BaseException) -> bool:
    return classify_error(error).retryable


def describe_error(error: BaseException) -> Dict[str, Any]:
    """Log-friendly summary of a failure."""
    cause = _cause_of(error)
    return {
        "name": type(error).__name__,
        "message": error_message(error),
        "status": extract_status(error),
        "code": extract_code(error),
        "cause": f"{type(cause).__name__}: {cause}" if cause is not None else None,
    }
