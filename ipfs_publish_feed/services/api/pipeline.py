"""Wires the subscriber, resolver and aggregator into background tasks sharing one shutdown event."""

import asyncio
import logging

import httpx

from ipfs_publish_feed.core.config import Settings
from ipfs_publish_feed.core.types import Notification
from ipfs_publish_feed.services.aggregator.main import WindowAggregator
from ipfs_publish_feed.services.resolver.main import Resolver
from ipfs_publish_feed.services.subscriber.main import Subscriber

logger = logging.getLogger(__name__)


class FeedPipeline:
    """Owns the long-running tasks behind the feed endpoint."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient) -> None:
        self.shutdown_event = asyncio.Event()
        self.aggregator = WindowAggregator(settings.feed_window(), self.shutdown_event)
        self.subscriber = Subscriber(
            client,
            settings.api_base(),
            settings.PUBSUB_TOPIC,
            self.shutdown_event,
            reconnect_delay_s=settings.RECONNECT_DELAY_S,
        )
        self.resolver = Resolver(
            client,
            settings.api_base(),
            self.aggregator.publish,
            self.shutdown_event,
            max_in_flight=settings.max_in_flight(),
            stat_timeout_s=settings.STAT_TIMEOUT_S,
        )
        self._notifications: asyncio.Queue[Notification] = asyncio.Queue(maxsize=1)
        self._tasks: list[asyncio.Task[None]] = []

    def start(self) -> None:
        """Spawn the aggregator, resolver and subscriber tasks."""

        if self._tasks:
            raise RuntimeError("pipeline already started")
        self._tasks = [
            asyncio.create_task(self.aggregator.run(), name="aggregator"),
            asyncio.create_task(self.resolver.run(self._notifications), name="resolver"),
            asyncio.create_task(self.subscriber.run(self._notifications), name="subscriber"),
        ]

    async def stop(self) -> None:
        """Signal shutdown and wait for every task to finish."""

        self.shutdown_event.set()
        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for task, result in zip(self._tasks, results):
            if isinstance(result, Exception):
                logger.error(
                    "pipeline_task_failed",
                    extra={"task": task.get_name()},
                    exc_info=result,
                )
        self._tasks = []
