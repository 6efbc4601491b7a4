"""Resilience patterns for the transport layer using hyx.

The connection manager owns the reconnect policy (fixed delay, bounded
attempts). This module covers the individual network operations beneath it:

- Timeout on the open handshake
- Retry with exponential backoff when posting a turn
- Classification of httpx failures into transient and permanent errors

Usage:
    from copilot_stream.core.resilience import open_timeout, send_retry

    guarded_open = open_timeout(10.0)(transport_open)

    @send_retry
    @wrap_httpx_errors
    async def post_turn(...):
        ...
"""

from functools import wraps
from typing import Any, Callable, TypeVar

from hyx.retry.api import retry
from hyx.retry.backoffs import expo
from hyx.timeout.api import timeout
from hyx.timeout.exceptions import MaxDurationExceeded

from copilot_stream.core.exceptions import TransportError

# Alias for clarity
MaxTimeoutExceeded = MaxDurationExceeded

__all__ = [
    # Exceptions
    "MaxTimeoutExceeded",
    "TransientError",
    "RateLimitError",
    # Patterns
    "open_timeout",
    "send_retry",
    "wrap_httpx_errors",
    "classify_http_error",
    # Configuration
    "ResilienceConfig",
]


# =============================================================================
# CUSTOM EXCEPTIONS
# =============================================================================


class TransientError(TransportError):
    """Error that is likely to succeed on retry (network issues, timeouts)."""
    pass


class RateLimitError(TransientError):
    """Error indicating rate limiting (HTTP 429, throttling)."""
    pass


# =============================================================================
# CONFIGURATION
# =============================================================================


class ResilienceConfig:
    """Configuration for per-operation resilience patterns."""

    SEND_RETRY_ATTEMPTS: int = 3
    SEND_RETRY_BACKOFF_BASE: float = 0.25  # seconds
    SEND_RETRY_BACKOFF_MAX: float = 2.0  # seconds


# =============================================================================
# PATTERNS
# =============================================================================


# Retry for posting a turn; the stream itself is never retried here
send_retry = retry(
    on=(TransientError,),
    attempts=ResilienceConfig.SEND_RETRY_ATTEMPTS,
    backoff=expo(
        min_delay_secs=ResilienceConfig.SEND_RETRY_BACKOFF_BASE,
        max_delay_secs=ResilienceConfig.SEND_RETRY_BACKOFF_MAX,
    ),
)

F = TypeVar("F", bound=Callable[..., Any])


def open_timeout(max_seconds: float) -> Callable[[F], F]:
    """
    Create a timeout decorator for the connection handshake.

    Built at call time rather than import time so the timeout manager is
    created while an event loop is running.
    """
    return timeout(max_delay_secs=max_seconds)


# =============================================================================
# ERROR CLASSIFICATION
# =============================================================================


def classify_http_error(status_code: int) -> TransportError:
    """
    Classify HTTP status codes into transport exceptions.

    Args:
        status_code: HTTP status code

    Returns:
        RateLimitError for 429, TransientError for 5xx, and a
        non-recoverable TransportError for anything else
    """
    if status_code == 429:
        return RateLimitError(f"Rate limited (HTTP {status_code})", status_code)
    if status_code >= 500:
        return TransientError(f"Server error (HTTP {status_code})", status_code)
    if status_code >= 400:
        return TransportError(
            f"Client error (HTTP {status_code})", status_code, recoverable=False
        )
    return TransportError(f"Unexpected status (HTTP {status_code})", status_code)


def wrap_httpx_errors(func: F) -> F:
    """
    Decorator to convert httpx exceptions to resilience-aware exceptions.

    This allows the retry pattern and the connection manager to tell
    transient from permanent failures.
    """
    @wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        import httpx

        try:
            return await func(*args, **kwargs)
        except httpx.TimeoutException as e:
            raise TransientError(f"Request timeout: {e}") from e
        except httpx.HTTPStatusError as e:
            raise classify_http_error(e.response.status_code) from e
        except httpx.TransportError as e:
            raise TransientError(f"Connection error: {e}") from e

    return wrapper  # type: ignore
