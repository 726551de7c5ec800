"""Logging setup for the OurSpace API: UTC timestamps to stderr, configured secrets masked."""
import logging
import os
import sys
from datetime import datetime, timezone

LOG_FORMAT = "%(asctime)s.%(msecs)03dZ [%(levelname)s] %(name)s: %(message)s"
DATE_FMT = "%Y-%m-%dT%H:%M:%S"
REDACTED = "***"


class UTCTimeFormatter(logging.Formatter):
    def formatTime(self, record, datefmt=None):
        ct = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return ct.strftime(datefmt or self.default_time_format)


class RedactSecretsFilter(logging.Filter):
    """Replace any configured secret value (API secret, tool keys) in the rendered message."""

    def __init__(self, secrets=()):
        super().__init__()
        # Longest first so a secret containing another is masked whole
        self.secrets = sorted({s for s in secrets if s and len(s) >= 4}, key=len, reverse=True)

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.secrets:
            return True
        message = record.getMessage()
        masked = message
        for secret in self.secrets:
            masked = masked.replace(secret, REDACTED)
        if masked != message:
            record.msg, record.args = masked, None
        return True


def setup_logging(level: str | None = None, secrets=()) -> None:
    """Configure the root logger once. LOG_LEVEL env var selects the level (default INFO)."""
    level = level or os.getenv("LOG_LEVEL", "INFO")
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    if not root.handlers:
        h = logging.StreamHandler(sys.stderr)
        h.setFormatter(UTCTimeFormatter(LOG_FORMAT, datefmt=DATE_FMT))
        root.addHandler(h)
    for h in root.handlers:
        h.filters = [f for f in h.filters if not isinstance(f, RedactSecretsFilter)]
        h.addFilter(RedactSecretsFilter(secrets))
    # Upstream calls are logged by our own modules
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
