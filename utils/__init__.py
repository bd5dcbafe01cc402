from .helpers import configure_logging, fetch_bytes, now_ms

__all__ = ["configure_logging", "fetch_bytes", "now_ms"]
