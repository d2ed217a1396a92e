"""Atom 1.0 rendering of the feed window."""

import xml.etree.ElementTree as ET
from collections.abc import Sequence
from datetime import datetime

from ipfs_publish_feed.core.time_utils import rfc3339, utc_now
from ipfs_publish_feed.core.types import ResolvedItem, format_size

ATOM_NS = "http://www.w3.org/2005/Atom"
ATOM_MEDIA_TYPE = "application/atom+xml"

ET.register_namespace("", ATOM_NS)


def _tag(name: str) -> str:
    return f"{{{ATOM_NS}}}{name}"


def _text(parent: ET.Element, name: str, value: str) -> ET.Element:
    element = ET.SubElement(parent, _tag(name))
    element.text = value
    return element


def render_atom(
    items: Sequence[ResolvedItem],
    *,
    title: str,
    feed_id: str,
    gateway_url: str,
    now: datetime | None = None,
) -> bytes:
    """Render window items, in window order, as an Atom document."""

    updated = max((item.resolved_at for item in items), default=now or utc_now())

    feed = ET.Element(_tag("feed"))
    _text(feed, "title", title)
    _text(feed, "id", feed_id)
    _text(feed, "updated", rfc3339(updated))

    for item in items:
        entry = ET.SubElement(feed, _tag("entry"))
        _text(entry, "title", item.cid)
        _text(entry, "id", f"ipfs://{item.cid}")
        _text(entry, "updated", rfc3339(item.resolved_at))
        author = ET.SubElement(entry, _tag("author"))
        _text(author, "name", item.publisher or "unknown")
        ET.SubElement(entry, _tag("link"), href=f"{gateway_url}/ipfs/{item.cid}")
        _text(entry, "summary", f"Type: {item.type} Size: {format_size(item.cumulative_size)}")

    return ET.tostring(feed, encoding="utf-8", xml_declaration=True)
