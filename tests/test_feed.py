"""Atom rendering of the feed window."""

import xml.etree.ElementTree as ET
from datetime import datetime, timezone

from ipfs_publish_feed.core.types import ResolvedItem
from ipfs_publish_feed.services.api.feed import ATOM_NS, render_atom

NS = {"atom": ATOM_NS}


def _item(cid: str, minute: int) -> ResolvedItem:
    return ResolvedItem(
        cid=cid,
        size=10,
        cumulative_size=1234567,
        blocks=2,
        type="file",
        publisher="12D3KooWPeer",
        resolved_at=datetime(2024, 5, 1, 12, minute, tzinfo=timezone.utc),
    )


def test_entries_follow_window_order() -> None:
    body = render_atom(
        [_item("QmOld", 1), _item("QmNew", 2)],
        title="IPFS Publish Feed",
        feed_id="urn:ipfs-publish-feed:publish",
        gateway_url="https://ipfs.io",
    )

    assert body.startswith(b"<?xml")
    root = ET.fromstring(body)
    assert root.tag == f"{{{ATOM_NS}}}feed"
    assert root.findtext("atom:title", namespaces=NS) == "IPFS Publish Feed"
    assert root.findtext("atom:updated", namespaces=NS) == "2024-05-01T12:02:00Z"

    entries = root.findall("atom:entry", NS)
    assert [e.findtext("atom:title", namespaces=NS) for e in entries] == ["QmOld", "QmNew"]

    first = entries[0]
    assert first.find("atom:link", NS).get("href") == "https://ipfs.io/ipfs/QmOld"
    assert first.findtext("atom:id", namespaces=NS) == "ipfs://QmOld"
    assert first.findtext("atom:summary", namespaces=NS) == "Type: file Size: 1MB 234KB 567B"
    assert first.findtext("atom:author/atom:name", namespaces=NS) == "12D3KooWPeer"


def test_empty_window_uses_current_time() -> None:
    now = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    root = ET.fromstring(
        render_atom([], title="Feed", feed_id="urn:x", gateway_url="https://ipfs.io", now=now)
    )

    assert root.findall("atom:entry", NS) == []
    assert root.findtext("atom:updated", namespaces=NS) == "2024-01-02T03:04:05Z"
