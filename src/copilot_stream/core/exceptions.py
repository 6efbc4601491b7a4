"""Domain exceptions for the copilot stream client."""


class CopilotStreamError(Exception):
    """Base exception for all copilot stream errors."""

    def __init__(self, message: str, recoverable: bool = True):
        super().__init__(message)
        self.recoverable = recoverable


class TransportError(CopilotStreamError):
    """Error opening, reading from or writing to the connection."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        recoverable: bool = True,
    ):
        super().__init__(message, recoverable)
        self.status_code = status_code


class FrameDecodeError(CopilotStreamError):
    """A raw frame could not be decoded into a server event."""

    def __init__(self, message: str, raw: str | None = None):
        super().__init__(message, recoverable=True)
        self.raw = raw

