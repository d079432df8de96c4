"""Centralised logging configuration.

``setup_logging()`` is called once from the application lifespan (and by the
worker on startup).  Noisy third-party loggers get their own level so SQL
echo and HTTP client chatter can be silenced independently of the app.

``mask_path()`` is applied to every request path before it is written to a
log record so that identifiers and credentials never end up in log storage.
"""
import logging
import re
import sys
from urllib.parse import parse_qsl, urlencode

from app.config import Settings, settings as default_settings

_CATEGORY_MAP: dict[str, list[str]] = {
    "LOG_LEVEL_SQL": ["sqlalchemy.engine", "sqlalchemy.pool", "aiosqlite", "asyncpg"],
    "LOG_LEVEL_HTTP": ["httpx", "httpcore", "botocore", "boto3"],
}

_NUMERIC_SEGMENT_RE = re.compile(r"^\d+$")
# JWT-shaped (three base64url parts) or long opaque strings.
_JWT_SEGMENT_RE = re.compile(r"^[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+$")
_OPAQUE_SEGMENT_RE = re.compile(r"^[A-Za-z0-9_-]{32,}$")

_SENSITIVE_PARAMS = frozenset({"token", "refresh_token", "access_token", "password", "api_key"})


def _parse_level(raw: str) -> int:
    return getattr(logging, str(raw).upper(), logging.INFO)


def setup_logging(config: Settings | None = None) -> None:
    """Configure the root logger and per-category levels."""
    config = config or default_settings

    root = logging.getLogger()
    root.setLevel(_parse_level(config.LOG_LEVEL))

    # uvicorn normally installs a handler; tests and scripts may not.
    if not root.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)-8s %(name)s: %(message)s")
        )
        root.addHandler(handler)

    for field, logger_names in _CATEGORY_MAP.items():
        level = _parse_level(getattr(config, field, "INFO"))
        for name in logger_names:
            logging.getLogger(name).setLevel(level)

    logging.getLogger(__name__).debug("Logging configured (root=%s)", config.LOG_LEVEL)


def _mask_segment(segment: str) -> str:
    if _NUMERIC_SEGMENT_RE.match(segment):
        return ":id"
    if _JWT_SEGMENT_RE.match(segment) or _OPAQUE_SEGMENT_RE.match(segment):
        return "***"
    return segment


def mask_path(path: str, query_string: str | bytes = "") -> str:
    """
    Return *path* with ids and secrets replaced.

    ``/api/v1/articles/42/comments/7`` becomes
    ``/api/v1/articles/:id/comments/:id``; token-looking segments and the
    values of sensitive query parameters become ``***``.
    """
    masked = "/".join(_mask_segment(part) for part in path.split("/"))

    if isinstance(query_string, bytes):
        query_string = query_string.decode("latin-1")
    if not query_string:
        return masked

    params = [
        (key, "***" if key.lower() in _SENSITIVE_PARAMS else value)
        for key, value in parse_qsl(query_string, keep_blank_values=True)
    ]
    return f"{masked}?{urlencode(params, safe='*')}"
