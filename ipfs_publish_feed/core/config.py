"""Environment-driven settings for the feed service, overridable from the command line."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_PORT = 8080


class Settings(BaseSettings):
    """Application settings loaded from environment variables or a local .env file."""

    APP_NAME: str = "IPFS Publish Feed"
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"
    VERSION: str = "0.1.0"
    HOST: str = "0.0.0.0"
    PORT: int = _DEFAULT_PORT
    IPFS_API_URL: str = "http://localhost:5001"
    PUBSUB_TOPIC: str = "publish"
    FEED_SIZE: int = 10
    GATEWAY_URL: str = "https://ipfs.io"
    RECONNECT_DELAY_S: float = 10.0
    STAT_TIMEOUT_S: float = 30.0
    MAX_IN_FLIGHT_RESOLUTIONS: int = 64
    SHUTDOWN_GRACE_S: float = 60.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def api_base(self) -> str:
        """Return the IPFS API base URL without a trailing slash."""

        return self.IPFS_API_URL.strip().rstrip("/")

    def gateway_base(self) -> str:
        """Return the gateway base URL used for feed entry links."""

        return self.GATEWAY_URL.strip().rstrip("/")

    def feed_window(self) -> int:
        """Return the window capacity, never smaller than one entry."""

        return max(1, self.FEED_SIZE)

    def max_in_flight(self) -> int:
        """Return the cap on concurrent stat lookups, never smaller than one."""

        return max(1, self.MAX_IN_FLIGHT_RESOLUTIONS)


def parse_listen_address(addr: str) -> tuple[str, int]:
    """Split a ``host:port`` listen address, defaulting an empty host to all interfaces.

    Accepts the Go-style ``:8080`` shorthand as well as bracketed IPv6 hosts.
    """

    host, sep, port = addr.strip().rpartition(":")
    if not sep:
        raise ValueError(f"listen address {addr!r} is missing a port")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    try:
        port_number = int(port)
    except ValueError as exc:
        raise ValueError(f"listen address {addr!r} has an invalid port") from exc
    if not 0 <= port_number <= 65535:
        raise ValueError(f"listen address {addr!r} has an out-of-range port")
    return host or "0.0.0.0", port_number


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings to avoid repeated environment parsing."""

    return Settings()
