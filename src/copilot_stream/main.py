"""Command-line entry point.

Connects to the copilot backend, sends one message, prints blocks as they
complete and exits when the turn ends.

    copilot-stream "How did AAPL do today?" --ticker AAPL
"""

import argparse
import asyncio
import sys

from copilot_stream import __version__
from copilot_stream.client.session import ChatSession
from copilot_stream.config.settings import Settings, get_settings
from copilot_stream.events.models import SessionEvent
from copilot_stream.events.types import SessionEventType
from copilot_stream.stream.markers import strip_markers
from copilot_stream.stream.models import BlockType, ContentBlock
from copilot_stream.utils.logging import get_logger, setup_logging


logger = get_logger(__name__)

TERMINAL_EVENTS = {
    SessionEventType.TURN_COMPLETED,
    SessionEventType.TURN_ERROR,
    SessionEventType.TURN_ABANDONED,
    SessionEventType.CONNECTION_FAILED,
}


def render_block(block: ContentBlock) -> str:
    """Plain-text rendering of one block."""
    if block.type == BlockType.TEXT:
        return strip_markers(block.content or "").strip()
    if block.type == BlockType.HORIZONTAL_RULE:
        return "-" * 40
    data = block.data or {}
    if block.type == BlockType.CHART:
        return f"[chart] {data.get('symbol', '?')} ({data.get('timeRange', '1D')})"
    title = data.get("title") or data.get("headline") or data.get("name") or data.get("id", "")
    return f"[{block.type.value}] {title}"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="copilot-stream",
        description="Send one message to the copilot backend and print the streamed answer.",
    )
    parser.add_argument("message", help="Message to send.")
    parser.add_argument("--base-url", help="Backend base URL (default from COPILOT_BASE_URL).")
    parser.add_argument(
        "--ticker",
        action="append",
        dest="tickers",
        default=None,
        help="Selected ticker; may be repeated.",
    )
    parser.add_argument("--timezone", help="IANA timezone sent with the turn.")
    parser.add_argument("--log-level", help="Log level (default from COPILOT_LOG_LEVEL).")
    parser.add_argument("--json-logs", action="store_true", help="Write logs as JSON lines.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def settings_from_args(args: argparse.Namespace) -> Settings:
    update = {}
    if args.base_url:
        update["base_url"] = args.base_url
    if args.tickers:
        update["selected_tickers"] = args.tickers
    if args.timezone:
        update["timezone"] = args.timezone
    if args.log_level:
        update["log_level"] = args.log_level
    if args.json_logs:
        update["log_json"] = True
    return get_settings().model_copy(update=update)


async def run(message: str, settings: Settings) -> int:
    """Send one message and stream the answer to stdout. Returns the exit code."""
    session = ChatSession(settings)
    finished: asyncio.Future[SessionEvent] = asyncio.get_running_loop().create_future()

    def on_blocks(event: SessionEvent) -> None:
        for block in event.data.get("blocks", []):
            text = render_block(block)
            if text:
                print(text, flush=True)

    def on_notice(event: SessionEvent) -> None:
        print(event.data.get("message", ""), file=sys.stderr)

    def on_any(event: SessionEvent) -> None:
        if event.event_type in TERMINAL_EVENTS and not finished.done():
            finished.set_result(event)

    session.emitter.subscribe("turn.blocks", on_blocks)
    session.emitter.subscribe("connection.notice", on_notice)
    session.emitter.subscribe("*", on_any)

    async with session:
        if not await session.send_message(message):
            logger.error("Message was not sent", state=session.connection_state.value)
            return 1

        event = await finished

    if event.event_type == SessionEventType.TURN_COMPLETED:
        return 0
    if event.event_type == SessionEventType.TURN_ERROR:
        print(f"Error: {event.data.get('error')}", file=sys.stderr)
    else:
        print("Error: connection lost", file=sys.stderr)
    return 1


def main(argv: list[str] | None = None) -> None:
    """Entry point for the copilot-stream command."""
    args = build_parser().parse_args(argv)
    settings = settings_from_args(args)
    setup_logging(settings.log_level, json_output=settings.log_json)

    try:
        exit_code = asyncio.run(run(args.message, settings))
    except KeyboardInterrupt:
        exit_code = 130
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
