"""Shared fixtures for the feed pipeline tests."""

import asyncio
import base64
from collections.abc import AsyncIterator, Callable

import pytest

from ipfs_publish_feed.core.types import ResolvedItem

CID_V0 = "QmbWqxBEKC3P8tqsKc98xmWNzrzDtRLMiMPL8wBuTGsMnR"
CID_V1 = "bafybeigdyrzt5sfp7udm7hu76uh7y26nf3efuylqabf3oclgtqy55fbzdi"


@pytest.fixture
def shutdown_event() -> asyncio.Event:
    return asyncio.Event()


@pytest.fixture
def make_item() -> Callable[..., ResolvedItem]:
    """Build a resolved item whose CID doubles as a readable label."""

    def _make(cid: str, size: int = 1) -> ResolvedItem:
        return ResolvedItem(
            cid=cid,
            size=size,
            cumulative_size=size,
            blocks=1,
            type="file",
            publisher="12D3KooWPeer",
        )

    return _make


@pytest.fixture
def encode_payload() -> Callable[[str], str]:
    def _encode(text: str) -> str:
        return base64.b64encode(text.encode("utf-8")).decode("ascii")

    return _encode


@pytest.fixture
def open_stream() -> Callable[..., AsyncIterator[bytes]]:
    """Return a body factory that yields lines and then stays open like a live subscription."""

    async def _stream(*lines: str) -> AsyncIterator[bytes]:
        for line in lines:
            yield (line + "\n").encode("utf-8")
        await asyncio.Event().wait()

    return _stream
