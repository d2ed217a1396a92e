"""FastAPI service serving the pubsub publish window as an Atom feed."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request, Response

from ipfs_publish_feed.core.config import Settings, get_settings
from ipfs_publish_feed.core.errors import AggregatorUnavailable
from ipfs_publish_feed.core.logging import configure_logging
from ipfs_publish_feed.services.api.feed import ATOM_MEDIA_TYPE, render_atom
from ipfs_publish_feed.services.api.pipeline import FeedPipeline

logger = logging.getLogger(__name__)

_FEED_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def _request_target(request: Request) -> str:
    target = request.url.path
    if request.url.query:
        target = f"{target}?{request.url.query}"
    return target


def create_app(
    settings: Settings | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Build the feed app; ``http_client`` replaces the IPFS API client, e.g. in tests."""

    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Run the subscription pipeline for as long as the server is up."""

        client = http_client or httpx.AsyncClient()
        pipeline = FeedPipeline(settings, client)
        app.state.pipeline = pipeline
        logger.info(
            "api_startup",
            extra={
                "env": settings.ENV,
                "version": settings.VERSION,
                "api": settings.api_base(),
                "topic": settings.PUBSUB_TOPIC,
                "feed_size": settings.feed_window(),
            },
        )
        pipeline.start()
        try:
            yield
        finally:
            await pipeline.stop()
            if http_client is None:
                await client.aclose()
            logger.info("api_shutdown")

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.VERSION,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    @app.get("/health")
    def health() -> dict[str, str]:
        """Return process liveness status."""

        return {"status": "ok"}

    @app.get("/version")
    def version() -> dict[str, str]:
        """Return application metadata from shared settings."""

        return {
            "name": settings.APP_NAME,
            "version": settings.VERSION,
            "env": settings.ENV,
        }

    @app.api_route("/{target:path}", methods=_FEED_METHODS, include_in_schema=False)
    async def feed(request: Request) -> Response:
        """Render a fresh snapshot of the window for every request."""

        logger.info(
            "feed_request",
            extra={"method": request.method, "target": _request_target(request)},
        )
        pipeline: FeedPipeline = request.app.state.pipeline
        try:
            items = await pipeline.aggregator.snapshot()
        except AggregatorUnavailable:
            return Response(status_code=503)

        body = render_atom(
            items,
            title=settings.APP_NAME,
            feed_id=f"urn:ipfs-publish-feed:{settings.PUBSUB_TOPIC}",
            gateway_url=settings.gateway_base(),
        )
        return Response(content=body, media_type=ATOM_MEDIA_TYPE)

    return app


app = create_app()
