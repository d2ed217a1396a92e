"""Shared lightweight types passed between the subscriber, resolver and aggregator."""

from dataclasses import dataclass, field
from datetime import datetime

from ipfs_publish_feed.core.time_utils import utc_now

_SIZE_SUFFIXES = ("B", "KB", "MB", "GB")


@dataclass(frozen=True, slots=True)
class Notification:
    """One pubsub message as delivered by the subscribe stream."""

    from_peer: str
    seqno: str
    topic_ids: tuple[str, ...]
    data: str


@dataclass(frozen=True, slots=True)
class ResolvedItem:
    """File metadata fetched for a published CID."""

    cid: str
    size: int
    cumulative_size: int
    blocks: int
    type: str
    publisher: str = ""
    resolved_at: datetime = field(default_factory=utc_now)


def format_size(num_bytes: int) -> str:
    """Render a byte count as decimal thousands groups, e.g. ``1MB 234KB 567B``.

    Groups beyond gigabytes are not rendered.
    """

    if num_bytes <= 0:
        return "0B"

    groups: list[str] = []
    remaining = num_bytes
    for suffix in _SIZE_SUFFIXES:
        if remaining <= 0:
            break
        groups.append(f"{remaining % 1000}{suffix}")
        remaining //= 1000

    return " ".join(reversed(groups))
