"""Contracts for the IPFS HTTP API endpoints the feed depends on (pubsub/sub and files/stat)."""

import json
from typing import Any

import httpx

from ipfs_publish_feed.core.errors import ProtocolDecodeError, StatError
from ipfs_publish_feed.core.types import Notification, ResolvedItem

SUBSCRIBE_ENDPOINT = "pubsub/sub"
STAT_ENDPOINT = "files/stat"


def api_url(api: str, endpoint: str) -> str:
    """Return the full URL of an ``/api/v0`` endpoint under the given base URL."""

    return f"{api.rstrip('/')}/api/v0/{endpoint}"


def _as_str(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key, "")
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ProtocolDecodeError(f"field {key!r} is not a string")
    return value


def parse_notification(line: str | bytes) -> Notification:
    """Decode one subscribe stream record into a :class:`Notification`.

    Missing fields fall back to empty values; malformed JSON, non-object
    records and fields of the wrong type raise :class:`ProtocolDecodeError`.
    """

    try:
        payload = json.loads(line)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ProtocolDecodeError(f"invalid JSON record: {exc}") from exc

    if not isinstance(payload, dict):
        raise ProtocolDecodeError("record is not a JSON object")

    raw_topics = payload.get("topicIDs") or []
    if not isinstance(raw_topics, list) or not all(isinstance(t, str) for t in raw_topics):
        raise ProtocolDecodeError("field 'topicIDs' is not a list of strings")

    return Notification(
        from_peer=_as_str(payload, "from"),
        seqno=_as_str(payload, "seqno"),
        topic_ids=tuple(raw_topics),
        data=_as_str(payload, "data"),
    )


def parse_file_stat(payload: Any, publisher: str = "") -> ResolvedItem:
    """Build a :class:`ResolvedItem` from a files/stat response body."""

    if not isinstance(payload, dict):
        raise StatError("stat response is not a JSON object")

    try:
        cid = str(payload["Hash"])
        size = int(payload.get("Size", 0))
        cumulative_size = int(payload.get("CumulativeSize", 0))
        blocks = int(payload.get("Blocks", 0))
        file_type = str(payload.get("Type", ""))
    except (KeyError, TypeError, ValueError) as exc:
        raise StatError(f"malformed stat response: {exc!r}") from exc

    if not cid:
        raise StatError("stat response has an empty Hash")

    return ResolvedItem(
        cid=cid,
        size=size,
        cumulative_size=cumulative_size,
        blocks=blocks,
        type=file_type,
        publisher=publisher,
    )


def subscribe_request(client: httpx.AsyncClient, api: str, topic: str) -> httpx.Request:
    """Build the streaming subscribe request; the stream itself has no read timeout."""

    return client.build_request(
        "POST",
        api_url(api, SUBSCRIBE_ENDPOINT),
        params={"arg": topic},
        timeout=httpx.Timeout(10.0, read=None),
    )


async def stat(
    client: httpx.AsyncClient,
    api: str,
    cid: str,
    publisher: str = "",
    timeout: float | None = 30.0,
) -> ResolvedItem:
    """Fetch file metadata for ``cid`` from the files/stat endpoint."""

    try:
        response = await client.post(
            api_url(api, STAT_ENDPOINT),
            params={"arg": f"/ipfs/{cid}"},
            timeout=timeout,
        )
    except httpx.HTTPError as exc:
        raise StatError(f"request failed: {exc!r}") from exc

    if response.is_error:
        raise StatError(f"HTTP {response.status_code}: {response.text[:200]}")

    try:
        payload = response.json()
    except ValueError as exc:
        raise StatError(f"invalid JSON body: {exc}") from exc

    return parse_file_stat(payload, publisher=publisher)
