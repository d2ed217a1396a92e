"""Error taxonomy for per-item and per-connection failures."""


class FeedError(Exception):
    """Base class for recoverable feed pipeline failures."""


class ProtocolDecodeError(FeedError):
    """A stream record or payload could not be decoded."""


class PayloadDecodeError(ProtocolDecodeError):
    """A notification payload is not valid base64."""


class CidDecodeError(ProtocolDecodeError):
    """A decoded payload is not a valid content identifier."""


class SubscribeError(FeedError):
    """The subscribe request could not be established."""


class StatError(FeedError):
    """A files/stat lookup failed or returned an unusable body."""


class AggregatorUnavailable(FeedError):
    """The window aggregator has stopped and can no longer serve snapshots."""
