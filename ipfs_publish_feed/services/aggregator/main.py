"""Single-owner aggregator holding the bounded window of recently resolved items."""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass

from ipfs_publish_feed.core.channels import ShutdownRequested, race_shutdown, receive_or_cancel
from ipfs_publish_feed.core.errors import AggregatorUnavailable
from ipfs_publish_feed.core.types import ResolvedItem

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class _Append:
    item: ResolvedItem


@dataclass(frozen=True, slots=True)
class _SnapshotRequest:
    reply: asyncio.Future[tuple[ResolvedItem, ...]]


class WindowAggregator:
    """Owns the feed window and serializes every mutation and read through one inbox.

    Only the task running :meth:`run` touches the window. Producers call
    :meth:`publish` and readers await :meth:`snapshot`; both just enqueue a
    message, so a snapshot always reflects every append processed before it
    and none after.
    """

    def __init__(self, feed_size: int, shutdown_event: asyncio.Event) -> None:
        if feed_size < 1:
            raise ValueError("feed_size must be at least 1")
        self.feed_size = feed_size
        self._shutdown = shutdown_event
        self._inbox: asyncio.Queue[_Append | _SnapshotRequest] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        """Return whether the aggregator has stopped or shutdown was requested."""

        return self._closed or self._shutdown.is_set()

    def publish(self, item: ResolvedItem) -> bool:
        """Queue ``item`` for appending without blocking; False once the aggregator is closed."""

        if self.closed:
            return False
        self._inbox.put_nowait(_Append(item))
        return True

    async def snapshot(self) -> tuple[ResolvedItem, ...]:
        """Return an immutable copy of the window as of this request's turn in the inbox."""

        if self.closed:
            raise AggregatorUnavailable("aggregator is not running")

        reply: asyncio.Future[tuple[ResolvedItem, ...]] = asyncio.get_running_loop().create_future()
        self._inbox.put_nowait(_SnapshotRequest(reply))
        try:
            return await race_shutdown(reply, self._shutdown)
        except ShutdownRequested as exc:
            raise AggregatorUnavailable("aggregator shut down before replying") from exc

    async def run(self) -> None:
        """Process inbox messages until shutdown."""

        window: deque[ResolvedItem] = deque(maxlen=self.feed_size)
        logger.info("aggregator_started", extra={"feed_size": self.feed_size})
        try:
            while True:
                try:
                    message = await receive_or_cancel(self._inbox, self._shutdown)
                except ShutdownRequested:
                    break

                if isinstance(message, _Append):
                    window.append(message.item)
                    logger.debug(
                        "aggregator_item_added",
                        extra={"cid": message.item.cid, "window": len(window)},
                    )
                elif not message.reply.done():
                    message.reply.set_result(tuple(window))
        finally:
            self._closed = True
            self._fail_pending()
            logger.info("aggregator_stopped", extra={"window": len(window)})

    def _fail_pending(self) -> None:
        while not self._inbox.empty():
            message = self._inbox.get_nowait()
            if isinstance(message, _SnapshotRequest) and not message.reply.done():
                message.reply.set_exception(AggregatorUnavailable("aggregator stopped"))
