"""Transports carrying server events and user turns.

The connection manager only needs three operations from a transport:
open a channel that delivers raw frames in order, send a turn, and close.
``HttpEventStreamTransport`` implements them over HTTP: a long-lived
streaming GET delivers server-sent-event frames and turns are POSTed as
JSON.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Callable

import httpx

from copilot_stream.config.settings import Settings
from copilot_stream.core.exceptions import TransportError
from copilot_stream.core.resilience import TransientError, send_retry, wrap_httpx_errors
from copilot_stream.utils.logging import get_logger


logger = get_logger(__name__)


FrameHandler = Callable[[str], None]
CloseHandler = Callable[[Exception | None], None]


class Transport(ABC):
    """
    Transport interface.

    Design Pattern: Strategy

    Current implementation: HTTP event stream (HttpEventStreamTransport)
    Any channel that delivers discrete frames in order can be plugged in.
    """

    @abstractmethod
    async def open(self, on_frame: FrameHandler, on_close: CloseHandler) -> None:
        """
        Open the channel.

        Returns once frames can flow. ``on_frame`` is called with each raw
        frame in arrival order; ``on_close`` once when the channel ends
        without ``close()`` having been called.

        Raises:
            TransportError: If the channel cannot be opened
        """
        ...

    @abstractmethod
    async def send(self, payload: dict[str, Any]) -> None:
        """Send a JSON payload to the backend."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the channel. Safe to call more than once."""
        ...


class EventStreamParser:
    """
    Incremental parser for server-sent-event framing.

    ``data:`` lines accumulate until a blank line ends the frame;
    comment lines (``:``) and other fields are ignored.
    """

    def __init__(self):
        self._data_lines: list[str] = []

    def feed(self, line: str) -> str | None:
        """Feed one line. Returns a complete frame when the line ends one."""
        line = line.rstrip("\r")

        if not line:
            if not self._data_lines:
                return None
            frame = "\n".join(self._data_lines)
            self._data_lines = []
            return frame

        if line.startswith(":"):
            return None

        field, _, value = line.partition(":")
        if field == "data":
            self._data_lines.append(value[1:] if value.startswith(" ") else value)
        return None


class HttpEventStreamTransport(Transport):
    """
    HTTP transport: streaming GET for events, POST for turns.

    Features:
    - One long-lived event stream per open()
    - Frames dispatched from a single reader task, in order
    - Turn delivery retried with exponential backoff on transient errors
    """

    def __init__(
        self,
        base_url: str,
        events_path: str = "/ws/chat/events",
        chat_path: str = "/ws/chat",
        timeout: float = 30.0,
    ):
        """
        Initialize transport.

        Args:
            base_url: Base URL of the copilot backend
            events_path: Path of the event stream endpoint
            chat_path: Path that accepts user turns
            timeout: Connect/write timeout in seconds (reads never time out)
        """
        self._base_url = base_url.rstrip("/")
        self._events_path = events_path
        self._chat_path = chat_path
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None
        self._response: httpx.Response | None = None
        self._reader: asyncio.Task | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpEventStreamTransport":
        return cls(
            base_url=settings.base_url,
            events_path=settings.events_path,
            chat_path=settings.chat_path,
            timeout=settings.request_timeout_seconds,
        )

    @property
    def is_open(self) -> bool:
        return self._reader is not None and not self._reader.done()

    async def open(self, on_frame: FrameHandler, on_close: CloseHandler) -> None:
        if self.is_open:
            raise TransportError("Transport is already open", recoverable=False)

        # Release what a previous, ended stream left behind
        await self.close()

        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(self._timeout, read=None),
        )
        self._response = await self._open_stream(self._client)
        self._reader = asyncio.get_running_loop().create_task(
            self._read_frames(self._response, on_frame, on_close)
        )
        logger.debug("Event stream opened", url=f"{self._base_url}{self._events_path}")

    @wrap_httpx_errors
    async def _open_stream(self, client: httpx.AsyncClient) -> httpx.Response:
        request = client.build_request(
            "GET", self._events_path, headers={"Accept": "text/event-stream"}
        )
        response = await client.send(request, stream=True)
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError:
            await response.aclose()
            raise
        return response

    async def _read_frames(
        self,
        response: httpx.Response,
        on_frame: FrameHandler,
        on_close: CloseHandler,
    ) -> None:
        """Read frames until the stream ends; cancelled by close()."""
        parser = EventStreamParser()
        error: Exception | None = None

        try:
            async for line in response.aiter_lines():
                frame = parser.feed(line)
                if frame is not None:
                    on_frame(frame)
        except httpx.HTTPError as e:
            error = TransientError(f"Event stream interrupted: {e}")
        finally:
            await response.aclose()

        logger.debug("Event stream ended", error=str(error) if error else None)
        on_close(error)

    async def send(self, payload: dict[str, Any]) -> None:
        if self._client is None:
            raise TransportError("Transport is not open")
        await self._post(self._client, payload)

    @send_retry
    @wrap_httpx_errors
    async def _post(self, client: httpx.AsyncClient, payload: dict[str, Any]) -> None:
        response = await client.post(self._chat_path, json=payload)
        response.raise_for_status()

    async def close(self) -> None:
        reader, self._reader = self._reader, None
        if reader is not None and not reader.done():
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass

        if self._response is not None:
            await self._response.aclose()
            self._response = None

        if self._client is not None:
            await self._client.aclose()
            self._client = None
