import re
import time
import unicodedata
from typing import Iterator

from app.exceptions import ValidationError

MAX_SLUG_LENGTH = 255
MAX_SLUG_ATTEMPTS = 10

_SLUG_STRIP_RE = re.compile(r"[^\w\s-]")
_SLUG_SPACE_RE = re.compile(r"[\s_]+")
_SLUG_DASH_RE = re.compile(r"-+")


def slugify(text: str) -> str:
    """
    Return a URL-safe, lowercase ASCII slug derived from *text*.

    Accented characters are folded to their base letter ("Café" -> "cafe").
    Raises ``ValidationError`` when nothing slug-worthy is left.
    """
    normalized = unicodedata.normalize("NFKD", text)
    ascii_text = normalized.encode("ascii", "ignore").decode("ascii")
    slug = _SLUG_STRIP_RE.sub("", ascii_text.lower().strip())
    slug = _SLUG_SPACE_RE.sub("-", slug)
    slug = _SLUG_DASH_RE.sub("-", slug).strip("-")
    if not slug:
        raise ValidationError("Cannot generate a slug from the given text", code="INVALID_SLUG")
    return slug[:MAX_SLUG_LENGTH].rstrip("-")


def _fit(base: str, suffix: str) -> str:
    return f"{base[: MAX_SLUG_LENGTH - len(suffix)].rstrip('-')}{suffix}"


def slug_candidates(base: str, now_ms: int | None = None) -> Iterator[str]:
    """
    Yield slug candidates for *base*: the base itself, then
    ``{base}-{epoch_ms}``, then ``{base}-{epoch_ms}-{n}``, each truncated
    so the result fits the column.  At most ``MAX_SLUG_ATTEMPTS`` values.
    """
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    yield base[:MAX_SLUG_LENGTH]
    yield _fit(base, f"-{stamp}")
    for counter in range(1, MAX_SLUG_ATTEMPTS - 1):
        yield _fit(base, f"-{stamp}-{counter}")
