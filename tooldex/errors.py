import sqlite3


class ToolDexError(Exception):
    """Base class for all tooldex errors."""


class ConfigurationError(ToolDexError, ValueError):
    """Unknown partition or vector type, or an invalid registry table."""


class ValidationError(ToolDexError, ValueError):
    """Malformed call-time input (fusion/dedup config, search options, query)."""


class StoreError(ToolDexError):
    """Failure talking to the embedding provider, vector store or document store."""


class TransientStoreError(StoreError):
    """Timeout, connection reset, rate limit. Safe to retry."""


class StoreTimeoutError(TransientStoreError):
    """A single store or embedding call exceeded its deadline."""


class PermanentStoreError(StoreError):
    """Auth failure, shape mismatch, bad request. Retrying will not help."""


_TRANSIENT_MARKERS = ("locked", "busy", "timeout", "timed out", "rate limit", "connection reset", "429", "503")


def classify_error(exc: BaseException) -> StoreError:
    if isinstance(exc, StoreError):
        return exc
    if isinstance(exc, TimeoutError):
        return StoreTimeoutError(str(exc) or "timed out")
    if isinstance(exc, ConnectionError):
        return TransientStoreError(str(exc) or type(exc).__name__)
    if isinstance(exc, sqlite3.OperationalError):
        message = str(exc).lower()
        if any(marker in message for marker in _TRANSIENT_MARKERS):
            return TransientStoreError(str(exc))
        return PermanentStoreError(str(exc))

    # provider SDK errors (litellm, openai) carry an HTTP status
    status_code = getattr(exc, "status_code", None)
    if isinstance(status_code, int):
        if status_code in {408, 409, 429} or status_code >= 500:
            return TransientStoreError(describe_error(exc))
        return PermanentStoreError(describe_error(exc))

    message = str(exc)
    if any(marker in message.lower() for marker in _TRANSIENT_MARKERS):
        return TransientStoreError(message)
    return PermanentStoreError(message or type(exc).__name__)


def describe_error(exc: BaseException) -> str:
    message = str(exc)
    return f"{type(exc).__name__}: {message}" if message else type(exc).__name__
