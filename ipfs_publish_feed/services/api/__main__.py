"""Module entrypoint running the feed server with settings and command-line overrides."""

import argparse
import logging
import signal
from collections.abc import Sequence

import uvicorn

from ipfs_publish_feed.core.config import Settings, get_settings, parse_listen_address
from ipfs_publish_feed.core.logging import configure_logging
from ipfs_publish_feed.services.api.main import create_app

logger = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve an Atom feed of IPFS pubsub publishes.")
    parser.add_argument("--addr", help="address to serve HTTP server on, e.g. :8080")
    parser.add_argument("--api", help="base URL of the IPFS HTTP API")
    parser.add_argument("--topic", help="pubsub topic to subscribe to")
    parser.add_argument(
        "--feedsize",
        type=int,
        help="maximum number of publishes to keep track of",
    )
    return parser.parse_args(argv)


def build_settings(argv: Sequence[str] | None = None) -> Settings:
    """Return shared settings with any command-line flags applied on top."""

    args = _parse_args(argv)
    overrides: dict[str, object] = {}
    if args.addr:
        overrides["HOST"], overrides["PORT"] = parse_listen_address(args.addr)
    if args.api:
        overrides["IPFS_API_URL"] = args.api
    if args.topic:
        overrides["PUBSUB_TOPIC"] = args.topic
    if args.feedsize is not None:
        overrides["FEED_SIZE"] = args.feedsize
    return get_settings().model_copy(update=overrides)


def _raise_interrupt(signum: int, frame: object) -> None:
    raise KeyboardInterrupt


def main(argv: Sequence[str] | None = None) -> int:
    """Run the feed server until interrupted; non-zero if it never started."""

    try:
        settings = build_settings(argv)
    except ValueError as exc:
        configure_logging()
        logger.error("api_invalid_arguments", extra={"error": str(exc)})
        return 2

    configure_logging(settings.LOG_LEVEL)
    config = uvicorn.Config(
        create_app(settings),
        host=settings.HOST,
        port=settings.PORT,
        log_config=None,
        access_log=False,
        timeout_graceful_shutdown=int(settings.SHUTDOWN_GRACE_S),
    )
    server = uvicorn.Server(config)
    # uvicorn re-raises the signal it caught once the graceful shutdown is done.
    signal.signal(signal.SIGTERM, _raise_interrupt)
    try:
        server.run()
    except KeyboardInterrupt:
        logger.info("api_exit", extra={"host": settings.HOST, "port": settings.PORT})
        return 0
    except SystemExit as exc:
        logger.error("api_start_failed", extra={"code": exc.code})
        return 1

    if not server.started:
        logger.error("api_start_failed", extra={"host": settings.HOST, "port": settings.PORT})
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
