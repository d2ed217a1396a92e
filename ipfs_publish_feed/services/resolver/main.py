"""Resolver that turns pubsub notifications into file metadata on background tasks."""

import asyncio
import base64
import binascii
import logging
from collections.abc import Callable

import httpx
from multiformats import CID

from ipfs_publish_feed.core.channels import ShutdownRequested, receive_or_cancel
from ipfs_publish_feed.core.errors import CidDecodeError, PayloadDecodeError, StatError
from ipfs_publish_feed.core.ipfs_api import stat
from ipfs_publish_feed.core.types import Notification, ResolvedItem

logger = logging.getLogger(__name__)

_DEFAULT_MAX_IN_FLIGHT = 64


def decode_payload(notification: Notification) -> str:
    """Return the canonical CID string carried by a notification's base64 payload."""

    try:
        raw = base64.b64decode(notification.data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise PayloadDecodeError(f"invalid base64 payload: {exc}") from exc

    try:
        text = raw.decode("utf-8").strip()
    except UnicodeDecodeError as exc:
        raise CidDecodeError("payload is not UTF-8 text") from exc
    if not text:
        raise CidDecodeError("payload is empty")

    try:
        cid = CID.decode(text)
    except Exception as exc:  # noqa: BLE001
        raise CidDecodeError(f"invalid CID {text[:64]!r}: {exc}") from exc
    return str(cid)


class Resolver:
    """Dispatches one stat task per notification and publishes the results.

    Tasks are never awaited by the dispatcher; a failure only ends its own
    task. At most ``max_in_flight`` lookups run at once and notifications
    arriving beyond that are dropped rather than queued.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        api: str,
        publish: Callable[[ResolvedItem], bool],
        shutdown_event: asyncio.Event,
        max_in_flight: int = _DEFAULT_MAX_IN_FLIGHT,
        stat_timeout_s: float | None = 30.0,
    ) -> None:
        self._client = client
        self._api = api
        self._publish = publish
        self._shutdown = shutdown_event
        self._max_in_flight = max(1, max_in_flight)
        self._stat_timeout_s = stat_timeout_s
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def in_flight(self) -> int:
        """Return the number of stat lookups currently running."""

        return len(self._tasks)

    async def run(self, notifications: asyncio.Queue[Notification]) -> None:
        """Consume notifications until shutdown, then cancel outstanding lookups."""

        try:
            while True:
                try:
                    notification = await receive_or_cancel(notifications, self._shutdown)
                except ShutdownRequested:
                    break
                self.dispatch(notification)
        finally:
            await self.cancel_pending()

    def dispatch(self, notification: Notification) -> bool:
        """Decode a notification and start its stat lookup; return whether a task was spawned."""

        try:
            cid = decode_payload(notification)
        except PayloadDecodeError as exc:
            logger.warning(
                "resolver_payload_invalid",
                extra={"error": str(exc), "from": notification.from_peer, "seqno": notification.seqno},
            )
            return False
        except CidDecodeError as exc:
            logger.warning(
                "resolver_cid_invalid",
                extra={"error": str(exc), "from": notification.from_peer, "seqno": notification.seqno},
            )
            return False

        if len(self._tasks) >= self._max_in_flight:
            logger.warning(
                "resolver_saturated",
                extra={"cid": cid, "in_flight": len(self._tasks)},
            )
            return False

        logger.info("resolver_publish", extra={"cid": cid, "from": notification.from_peer})
        task = asyncio.create_task(self._resolve(cid, notification.from_peer))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def cancel_pending(self) -> None:
        """Cancel every outstanding stat lookup and wait for them to finish."""

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.wait(tasks)

    async def _resolve(self, cid: str, publisher: str) -> None:
        try:
            item = await stat(
                self._client,
                self._api,
                cid,
                publisher=publisher,
                timeout=self._stat_timeout_s,
            )
        except StatError as exc:
            logger.warning("resolver_stat_failed", extra={"cid": cid, "error": str(exc)})
            return

        if not self._publish(item):
            logger.debug("resolver_item_dropped", extra={"cid": cid})
