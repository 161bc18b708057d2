import argparse
import asyncio
import logging
import sys

from pydantic import ValidationError

from chatline.config import load_config, prompt_idle_timeout
from chatline.server import ChatServer

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chatline", description="Run a line-based multi-client chat server."
    )
    parser.add_argument("--host", help="interface to bind (default: localhost)")
    parser.add_argument("--port", type=int, help="port to listen on (default: 8000)")
    parser.add_argument(
        "--idle-timeout",
        type=int,
        help="seconds of inactivity before a client is dropped; "
        "asked interactively when not set",
    )
    parser.add_argument(
        "--queue-size",
        type=int,
        dest="outbound_queue_size",
        help="lines buffered per client before the oldest is dropped",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser


async def serve(server: ChatServer) -> None:
    try:
        await server.serve_forever()
    finally:
        await server.close()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=args.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(
            idle_timeout_prompt=prompt_idle_timeout,
            host=args.host,
            port=args.port,
            idle_timeout=args.idle_timeout,
            outbound_queue_size=args.outbound_queue_size,
        )
    except ValidationError as e:
        print(f"Invalid configuration:\n{e}", file=sys.stderr)
        return 2
    except EOFError as e:
        print(e, file=sys.stderr)
        return 2

    try:
        asyncio.run(serve(ChatServer(config)))
    except KeyboardInterrupt:
        pass
    except OSError as e:
        logger.error(f"Failed to start server: {e}")
        return 1
    return 0
