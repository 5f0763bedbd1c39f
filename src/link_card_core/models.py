from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field

DEFAULT_ACCEPT = "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8"
HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")


@dataclass(frozen=True)
class RequestPolicy:
    user_agent: str
    timeout_s: float = 10.0
    max_redirects: int = 5
    max_bytes: int = 5 * 1024 * 1024
    accept: str = DEFAULT_ACCEPT
    allowed_content_types: tuple[str, ...] = HTML_CONTENT_TYPES
    forward_headers: tuple[str, ...] = ("Accept-Language",)
    extra_headers: tuple[tuple[str, str], ...] = ()


@dataclass(frozen=True)
class FetchTarget:
    url: str
    policy: RequestPolicy


@dataclass(frozen=True)
class FetchResult:
    final_url: str
    status_code: int
    headers: Mapping[str, str]
    body: Iterator[bytes]

    @property
    def content_type(self) -> str | None:
        return self.headers.get("content-type")


@dataclass
class Sighting:
    first: str
    last: str
    count: int = 1


@dataclass(frozen=True)
class IconLink:
    rel: str
    href: str
    sizes: str | None
    order: int


@dataclass(frozen=True)
class OEmbedLink:
    format: str  # "json" | "xml"
    href: str
    order: int


@dataclass
class RawSignalBag:
    """
    Signals collected during one forward pass over a document.

    Within a family, a repeated key keeps its first value and overwrites its last
    value; readers use `get()`, which is last-wins.
    """

    families: dict[str, dict[str, Sighting]] = field(default_factory=dict)
    icons: list[IconLink] = field(default_factory=list)
    oembed: list[OEmbedLink] = field(default_factory=list)
    bytes_read: int = 0
    chars_scanned: int = 0
    truncated: bool = False
    stream_error: str | None = None

    def record(self, family: str, key: str, value: str) -> None:
        bucket = self.families.setdefault(family, {})
        seen = bucket.get(key)
        if seen is None:
            bucket[key] = Sighting(first=value, last=value)
            return
        seen.last = value
        seen.count += 1

    def get(self, family: str, key: str) -> str | None:
        seen = self.families.get(family, {}).get(key)
        return seen.last if seen else None

    def first(self, family: str, key: str) -> str | None:
        seen = self.families.get(family, {}).get(key)
        return seen.first if seen else None

    def is_empty(self) -> bool:
        return not self.families and not self.icons and not self.oembed


@dataclass(frozen=True)
class PlayerDescriptor:
    url: str | None
    allowed_features: frozenset[str] = frozenset()
    width: int | None = None
    height: int | None = None


@dataclass(frozen=True)
class PublishedSummary:
    url: str
    title: str
    description: str | None = None
    sitename: str | None = None
    icon: str | None = None
    thumbnail: str | None = None
    player: PlayerDescriptor | None = None
    oembed_url: str | None = None
