"""IPFS pubsub subscriber that streams notifications and reconnects until shutdown."""

import asyncio
import enum
import json
import logging
import signal
import sys
from dataclasses import asdict

import httpx

from ipfs_publish_feed.core.channels import (
    ShutdownRequested,
    race_shutdown,
    receive_or_cancel,
    send_or_cancel,
)
from ipfs_publish_feed.core.config import get_settings
from ipfs_publish_feed.core.errors import ProtocolDecodeError, SubscribeError
from ipfs_publish_feed.core.ipfs_api import parse_notification, subscribe_request
from ipfs_publish_feed.core.logging import configure_logging
from ipfs_publish_feed.core.types import Notification

logger = logging.getLogger(__name__)

_RECONNECT_DELAY_S = 10.0


class SessionState(enum.Enum):
    """Connection state of a :class:`Subscriber`."""

    ABSENT = "absent"
    ACTIVE = "active"
    TERMINATED = "terminated"


class Subscriber:
    """Streams notifications for one topic into a queue, reconnecting on failure.

    Connect failures are retried after a fixed delay with no attempt limit.
    A malformed record, a read error or the stream ending drops the
    connection and reconnects right away. Shutdown interrupts any pending
    connect, read, delivery or backoff, and the open response is always
    closed on the way out.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        api: str,
        topic: str,
        shutdown_event: asyncio.Event,
        reconnect_delay_s: float = _RECONNECT_DELAY_S,
    ) -> None:
        self._client = client
        self._api = api
        self._topic = topic
        self._shutdown = shutdown_event
        self._reconnect_delay_s = reconnect_delay_s
        self.state = SessionState.ABSENT

    async def run(self, out: asyncio.Queue[Notification]) -> None:
        """Deliver notifications to ``out`` until shutdown is requested."""

        try:
            while not self._shutdown.is_set():
                try:
                    await race_shutdown(self._consume_stream(out), self._shutdown)
                except ShutdownRequested:
                    break
                except SubscribeError as exc:
                    logger.warning(
                        "subscriber_connect_failed",
                        extra={"error": str(exc), "reconnect_in_s": self._reconnect_delay_s},
                    )
                    if not await self._backoff():
                        break
                except (ProtocolDecodeError, httpx.HTTPError) as exc:
                    logger.warning(
                        "subscriber_stream_failed",
                        extra={"error": str(exc), "topic": self._topic},
                    )
        finally:
            self.state = SessionState.TERMINATED
            logger.info("subscriber_stopped", extra={"topic": self._topic})

    async def _backoff(self) -> bool:
        """Wait out the reconnect delay; return False if shutdown fired meanwhile."""

        try:
            await asyncio.wait_for(self._shutdown.wait(), timeout=self._reconnect_delay_s)
        except asyncio.TimeoutError:
            return True
        return False

    async def _consume_stream(self, out: asyncio.Queue[Notification]) -> None:
        request = subscribe_request(self._client, self._api, self._topic)
        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as exc:
            raise SubscribeError(f"request failed: {exc!r}") from exc

        try:
            if response.is_error:
                await response.aread()
                raise SubscribeError(f"HTTP {response.status_code}: {response.text[:200]}")

            self.state = SessionState.ACTIVE
            logger.info(
                "subscriber_connected",
                extra={"url": str(request.url), "topic": self._topic},
            )

            async for line in response.aiter_lines():
                if not line.strip():
                    continue
                if not await send_or_cancel(out, parse_notification(line), self._shutdown):
                    return

            raise ProtocolDecodeError("subscribe stream closed by server")
        finally:
            self.state = SessionState.ABSENT
            await response.aclose()


def _request_shutdown(shutdown_event: asyncio.Event, signal_name: str) -> None:
    if shutdown_event.is_set():
        return
    logger.info("subscriber_shutdown_signal", extra={"signal": signal_name})
    shutdown_event.set()


def _install_signal_handlers(shutdown_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _request_shutdown, shutdown_event, sig.name)
        except NotImplementedError:
            signal_name = sig.name
            signal.signal(
                sig,
                lambda *_, signal_name=signal_name: _request_shutdown(shutdown_event, signal_name),
            )


def _emit_notification(notification: Notification) -> None:
    line = json.dumps(asdict(notification), ensure_ascii=True, separators=(",", ":"))
    sys.stdout.write(line + "\n")
    sys.stdout.flush()


async def _run() -> int:
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    shutdown_event = asyncio.Event()
    _install_signal_handlers(shutdown_event)

    logger.info(
        "subscriber_startup",
        extra={"api": settings.api_base(), "topic": settings.PUBSUB_TOPIC},
    )

    notifications: asyncio.Queue[Notification] = asyncio.Queue(maxsize=1)
    async with httpx.AsyncClient() as client:
        subscriber = Subscriber(
            client,
            settings.api_base(),
            settings.PUBSUB_TOPIC,
            shutdown_event,
            reconnect_delay_s=settings.RECONNECT_DELAY_S,
        )
        task = asyncio.create_task(subscriber.run(notifications))
        while True:
            try:
                notification = await receive_or_cancel(notifications, shutdown_event)
            except ShutdownRequested:
                break
            _emit_notification(notification)
        await task

    logger.info("subscriber_shutdown")
    return 0


def main() -> int:
    """Print notifications for the configured topic as JSON lines until interrupted."""

    try:
        return asyncio.run(_run())
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
