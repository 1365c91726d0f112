"""
Command line entry point for update-stream.

Configures logging and runs one of the bundled commands against the bot
configured through the environment (``BOT_TOKEN`` etc.).
"""

import argparse
import asyncio
import logging
import signal
import sys
from collections.abc import Callable
from typing import Any

import structlog

from .bot import Bot
from .config import Settings, get_settings
from .exceptions import ConfigurationError
from .methods import ParseMode, parse_receiver
from .result import Failure, Result

logger = structlog.get_logger(__name__)


def setup_logging(settings: Settings) -> None:
    """Configure structured logging."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(message)s",
        stream=sys.stderr,
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            (
                structlog.processors.JSONRenderer()
                if settings.log_format == "json"
                else structlog.dev.ConsoleRenderer()
            ),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _receiver(value: str) -> Any:
    try:
        return parse_receiver(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="update-stream",
        description="Long-poll a bot API and work with its update stream.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("whoami", help="Print the bot's own user record")

    listen = commands.add_parser("listen", help="Print incoming updates as JSON lines")
    listen.add_argument(
        "--count",
        type=int,
        default=0,
        help="Stop after this many updates (0 = run until interrupted)",
    )

    send = commands.add_parser("send", help="Send a text message")
    send.add_argument("text", help="Message text")
    send.add_argument(
        "--to",
        type=_receiver,
        default=None,
        help="Chat id or @username (defaults to OWNER_CHAT)",
    )
    send.add_argument(
        "--parse-mode",
        choices=[mode.value for mode in ParseMode],
        default=None,
    )
    return parser


async def _await_result(
    start: Callable[[Callable[[Result[Any]], None]], None],
) -> Result[Any]:
    future: asyncio.Future[Result[Any]] = asyncio.get_running_loop().create_future()
    start(future.set_result)
    return await future


async def run_whoami(bot: Bot) -> int:
    loop = asyncio.get_running_loop()
    result = await _await_result(lambda done: bot.get_me(done, delivery=loop))
    if isinstance(result, Failure):
        logger.error("getMe failed", error=str(result.error))
        return 1
    print(result.value.model_dump_json(by_alias=True, exclude_none=True))
    return 0


async def run_send(
    bot: Bot, text: str, to: Any, parse_mode: ParseMode | None
) -> int:
    loop = asyncio.get_running_loop()
    result = await _await_result(
        lambda done: bot.send_message(
            text, to, done, parse_mode=parse_mode, delivery=loop
        )
    )
    if isinstance(result, Failure):
        logger.error("sendMessage failed", error=str(result.error), to=to)
        return 1
    logger.info("Message sent", message_id=result.value.message_id, to=to)
    return 0


async def run_listen(bot: Bot, count: int) -> int:
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[Result[Any]] = asyncio.Queue()
    stop = asyncio.Event()

    signals = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
            signals.append(sig)
        except (NotImplementedError, RuntimeError):
            logger.debug("Signal handlers unavailable", signal=sig)

    received = 0
    try:
        with bot.subscribe_to_updates(queue.put_nowait, delivery=loop):
            logger.info("Listening for updates", count=count or None)
            while not stop.is_set():
                next_result = asyncio.ensure_future(queue.get())
                stopped = asyncio.ensure_future(stop.wait())
                done, pending = await asyncio.wait(
                    {next_result, stopped}, return_when=asyncio.FIRST_COMPLETED
                )
                for task in pending:
                    task.cancel()
                if next_result not in done:
                    break

                result = next_result.result()
                if isinstance(result, Failure):
                    logger.warning("Update poll failed", error=str(result.error))
                    continue

                for update in result.value:
                    print(
                        update.model_dump_json(by_alias=True, exclude_none=True),
                        flush=True,
                    )
                    received += 1
                    if count and received >= count:
                        stop.set()
                        break
    finally:
        for sig in signals:
            loop.remove_signal_handler(sig)

    logger.info("Stopped listening", received=received)
    return 0


async def run(args: argparse.Namespace, settings: Settings) -> int:
    """Run the selected command on the current event loop."""
    loop = asyncio.get_running_loop()
    bot = Bot.from_settings(settings, loop=loop, delivery=loop)
    try:
        if args.command == "whoami":
            return await run_whoami(bot)
        if args.command == "send":
            to = args.to if args.to is not None else settings.owner_receiver
            if to is None:
                logger.error("No receiver given and OWNER_CHAT is not set")
                return 1
            mode = ParseMode(args.parse_mode) if args.parse_mode else None
            return await run_send(bot, args.text, to, mode)
        return await run_listen(bot, args.count)
    finally:
        await bot.aclose()


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        settings = get_settings()
    except ConfigurationError as e:
        print(f"update-stream: {e}", file=sys.stderr)
        return 1

    setup_logging(settings)

    try:
        return asyncio.run(run(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 1


if __name__ == "__main__":
    sys.exit(main())
