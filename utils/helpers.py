"""
Shared helpers: structured logging setup, clock and remote fetches.
"""

import logging
import sys
import time

import requests
import structlog


def configure_logging(level: str = "INFO"):
    """Configure structlog with JSON output on stdout"""
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level.upper())
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def now_ms() -> int:
    return int(time.time() * 1000)


def fetch_bytes(url: str, timeout: int = 30) -> bytes:
    with requests.get(url, stream=True, timeout=timeout) as r:
        r.raise_for_status()
        chunks = []
        for chunk in r.iter_content(chunk_size=8192):
            chunks.append(chunk)
    return b"".join(chunks)
