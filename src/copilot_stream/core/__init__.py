"""Core domain modules."""

from copilot_stream.core.exceptions import (
    CopilotStreamError,
    TransportError,
    FrameDecodeError,
)
from copilot_stream.core.resilience import TransientError, RateLimitError

__all__ = [
    # Exceptions
    "CopilotStreamError",
    "TransportError",
    "FrameDecodeError",
    "TransientError",
    "RateLimitError",
]
