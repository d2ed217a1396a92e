"""Subscription client reconnect, delivery and shutdown behavior against a fake IPFS API."""

import asyncio
import json

import httpx
import pytest

from ipfs_publish_feed.services.subscriber.main import SessionState, Subscriber

API = "http://ipfs.test:5001"


def _record(seqno: int) -> str:
    return json.dumps(
        {"from": "12D3KooWPeer", "seqno": str(seqno), "topicIDs": ["publish"], "data": "cGF5bG9hZA=="}
    )


async def _wait_for(predicate, timeout: float = 1.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


@pytest.mark.asyncio
async def test_malformed_record_reconnects_without_duplicates(shutdown_event, open_stream) -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 1:
            body = "\n".join([_record(1), "", _record(2), "{not json", _record(99)]) + "\n"
            return httpx.Response(200, content=body.encode())
        return httpx.Response(200, content=open_stream(_record(3)))

    out: asyncio.Queue = asyncio.Queue(maxsize=1)
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        subscriber = Subscriber(client, API, "publish", shutdown_event, reconnect_delay_s=5.0)
        task = asyncio.create_task(subscriber.run(out))

        received = [await asyncio.wait_for(out.get(), timeout=1.0) for _ in range(3)]
        assert subscriber.state is SessionState.ACTIVE

        shutdown_event.set()
        await asyncio.wait_for(task, timeout=1.0)

    assert [n.seqno for n in received] == ["1", "2", "3"]
    assert received[0].topic_ids == ("publish",)
    assert len(calls) == 2
    assert calls[0].method == "POST"
    assert calls[0].url.path == "/api/v0/pubsub/sub"
    assert calls[0].url.params["arg"] == "publish"
    assert subscriber.state is SessionState.TERMINATED


@pytest.mark.asyncio
@pytest.mark.parametrize("failure", ["connect_error", "http_500"])
async def test_connect_failure_backs_off_then_retries(shutdown_event, open_stream, failure) -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 1:
            if failure == "connect_error":
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(500, content=b"daemon not running")
        return httpx.Response(200, content=open_stream(_record(7)))

    out: asyncio.Queue = asyncio.Queue(maxsize=1)
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        subscriber = Subscriber(client, API, "publish", shutdown_event, reconnect_delay_s=0.01)
        task = asyncio.create_task(subscriber.run(out))

        notification = await asyncio.wait_for(out.get(), timeout=1.0)

        shutdown_event.set()
        await asyncio.wait_for(task, timeout=1.0)

    assert notification.seqno == "7"
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_shutdown_interrupts_backoff(shutdown_event) -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        subscriber = Subscriber(client, API, "publish", shutdown_event, reconnect_delay_s=30.0)
        task = asyncio.create_task(subscriber.run(asyncio.Queue(maxsize=1)))
        await _wait_for(lambda: len(calls) == 1)

        shutdown_event.set()
        await asyncio.wait_for(task, timeout=1.0)

    assert len(calls) == 1
    assert subscriber.state is SessionState.TERMINATED


@pytest.mark.asyncio
async def test_shutdown_interrupts_read_and_closes_stream(shutdown_event) -> None:
    closed = asyncio.Event()

    async def body():
        try:
            yield (_record(1) + "\n").encode()
            await asyncio.Event().wait()
        finally:
            closed.set()

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=body())

    out: asyncio.Queue = asyncio.Queue(maxsize=1)
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        subscriber = Subscriber(client, API, "publish", shutdown_event)
        task = asyncio.create_task(subscriber.run(out))
        await asyncio.wait_for(out.get(), timeout=1.0)

        shutdown_event.set()
        await asyncio.wait_for(task, timeout=1.0)

    assert closed.is_set()
    assert subscriber.state is SessionState.TERMINATED


@pytest.mark.asyncio
async def test_shutdown_drops_undelivered_notification(shutdown_event, open_stream) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=open_stream(_record(1), _record(2)))

    out: asyncio.Queue = asyncio.Queue(maxsize=1)
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        subscriber = Subscriber(client, API, "publish", shutdown_event)
        task = asyncio.create_task(subscriber.run(out))
        # The consumer never reads, so the second record waits on a full queue.
        await _wait_for(out.full)

        shutdown_event.set()
        await asyncio.wait_for(task, timeout=1.0)

    assert out.qsize() == 1
    assert out.get_nowait().seqno == "1"
