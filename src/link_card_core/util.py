from __future__ import annotations

import hashlib
import re
import time
from dataclasses import dataclass, field
from urllib.parse import urljoin, urlparse

# Third-party metadata rarely changes; cards stay fresh for a week.
CACHE_MAX_AGE_S = 7 * 24 * 60 * 60
CACHE_CONTROL = f"public, max-age={CACHE_MAX_AGE_S}"

_WHITESPACE_RE = re.compile(r"\s+")


def collapse_whitespace(s: str | None) -> str:
    return _WHITESPACE_RE.sub(" ", s or "").strip()


def is_http_url(url: str | None) -> bool:
    if not url:
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in {"http", "https"} and bool(parsed.hostname)


def absolute_http_url(base_url: str, ref: str | None) -> str | None:
    """
    Resolve `ref` against `base_url`; only http(s) results are returned.
    """
    ref = (ref or "").strip()
    if not ref:
        return None
    try:
        url = urljoin(base_url, ref)
    except ValueError:
        return None
    return url if is_http_url(url) else None


def cache_key(url: str, allow_player: bool) -> str:
    """
    Deterministic cache key covering every input that changes the rendered card.
    """
    raw = f"{url}\n{'player' if allow_player else 'noplayer'}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


@dataclass
class Deadline:
    seconds: float
    _started: float = field(default_factory=time.monotonic)

    def remaining(self) -> float:
        return max(0.0, self.seconds - (time.monotonic() - self._started))

    def expired(self) -> bool:
        return self.remaining() <= 0.0
