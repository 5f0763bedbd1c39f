from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from html.parser import HTMLParser

from link_card_core.encoding import NormalizedStream
from link_card_core.errors import ExtractionTimeout
from link_card_core.models import IconLink, OEmbedLink, RawSignalBag
from link_card_core.util import Deadline, collapse_whitespace

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHARS = 512 * 1024

GENERIC_META_NAMES = frozenset({"description", "keywords", "application-name", "author", "theme-color"})

_MAX_TITLE_CHARS = 4096


@dataclass(frozen=True)
class TagEvent:
    family: str  # og | twitter | html | icon | oembed
    key: str
    value: str
    attrs: Mapping[str, str] = field(default_factory=dict)


def _norm(s: str | None) -> str:
    return (s or "").strip()


def _icon_rel(rels: set[str]) -> str | None:
    if "apple-touch-icon" in rels:
        return "apple-touch-icon"
    if "apple-touch-icon-precomposed" in rels:
        return "apple-touch-icon-precomposed"
    if "icon" in rels:
        return "shortcut icon" if "shortcut" in rels else "icon"
    return None


class TolerantHTMLParser(HTMLParser):
    """
    HTMLParser that reads a malformed `<![...` (unknown keyword, no name) as plain text
    instead of aborting the parse.
    """

    def parse_marked_section(self, i: int, report: int = 1) -> int:
        try:
            return super().parse_marked_section(i, report)
        except AssertionError:
            # Consume only "<![" so markup right after it is still tokenized.
            self.handle_data(self.rawdata[i : i + 3])
            return i + 3


class HeadScanner(TolerantHTMLParser):
    """
    Token-level scanner for link-preview metadata.

    `feed()` returns the events recognized in the chunk; a tag split across chunks is
    buffered by HTMLParser and reported once complete. No tree is built, so unbalanced
    or broken markup only affects the tag it appears in.
    """

    def __init__(self, *, stop_at_body: bool = True) -> None:
        super().__init__(convert_charrefs=True)
        self.stop_at_body = stop_at_body
        self.done = False
        self._events: list[TagEvent] = []
        self._in_title = False
        self._svg_depth = 0
        self._title_parts: list[str] = []
        self._title_chars = 0

    def feed(self, data: str) -> list[TagEvent]:  # type: ignore[override]
        if not self.done:
            super().feed(data)
        return self._drain()

    def finalize(self) -> list[TagEvent]:
        if not self.done:
            self.close()
            self._flush_title()
        return self._drain()

    def _drain(self) -> list[TagEvent]:
        events, self._events = self._events, []
        return events

    def _stop(self) -> None:
        self._flush_title()
        self.done = True

    def _flush_title(self) -> None:
        if not self._in_title:
            return
        self._in_title = False
        title = collapse_whitespace("".join(self._title_parts))
        self._title_parts = []
        self._title_chars = 0
        if title:
            self._events.append(TagEvent("html", "title", title))

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if self.done:
            return
        tag = tag.lower()
        attrs_dict = {k.lower(): v for k, v in attrs if v is not None}

        if tag == "body" and self.stop_at_body:
            self._stop()
            return
        if tag == "svg":
            self._svg_depth += 1
            return
        if tag == "title":
            if self._svg_depth == 0:
                self._flush_title()
                self._in_title = True
            return
        if tag == "meta":
            self._meta(attrs_dict)
            return
        if tag == "link":
            self._link(attrs_dict)

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        # <svg/> opens nothing.
        if tag.lower() == "svg":
            return
        self.handle_starttag(tag, attrs)
        if tag.lower() == "title":
            self._flush_title()

    def handle_endtag(self, tag: str) -> None:
        if self.done:
            return
        tag = tag.lower()
        if tag == "title":
            self._flush_title()
        elif tag == "svg":
            self._svg_depth = max(0, self._svg_depth - 1)
        elif tag == "head" and self.stop_at_body:
            self._stop()

    def handle_data(self, data: str) -> None:
        if self.done or not self._in_title:
            return
        room = _MAX_TITLE_CHARS - self._title_chars
        if room <= 0:
            return
        piece = data[:room]
        self._title_parts.append(piece)
        self._title_chars += len(piece)

    def _meta(self, attrs: dict[str, str]) -> None:
        content = _norm(attrs.get("content") or attrs.get("value"))
        if not content:
            return
        keys: list[str] = []
        for attr in ("property", "name"):
            key = _norm(attrs.get(attr)).lower()
            if key and key not in keys:
                keys.append(key)
        for key in keys:
            if key.startswith("og:") and len(key) > 3:
                self._events.append(TagEvent("og", key[3:], content))
            elif key.startswith("twitter:") and len(key) > 8:
                self._events.append(TagEvent("twitter", key[8:], content))
            elif key in GENERIC_META_NAMES:
                self._events.append(TagEvent("html", key, content))

    def _link(self, attrs: dict[str, str]) -> None:
        href = _norm(attrs.get("href"))
        if not href:
            return
        rels = set(_norm(attrs.get("rel")).lower().split())

        if "alternate" in rels:
            link_type = _norm(attrs.get("type")).lower()
            if link_type == "application/json+oembed":
                self._events.append(TagEvent("oembed", "json", href))
            elif link_type in {"text/xml+oembed", "application/xml+oembed"}:
                self._events.append(TagEvent("oembed", "xml", href))
            return

        rel = _icon_rel(rels)
        if rel:
            sizes = _norm(attrs.get("sizes"))
            self._events.append(TagEvent("icon", rel, href, {"sizes": sizes} if sizes else {}))


def apply_events(bag: RawSignalBag, events: Iterable[TagEvent]) -> None:
    for ev in events:
        if ev.family == "icon":
            bag.icons.append(IconLink(rel=ev.key, href=ev.value, sizes=ev.attrs.get("sizes"), order=len(bag.icons)))
        elif ev.family == "oembed":
            bag.oembed.append(OEmbedLink(format=ev.key, href=ev.value, order=len(bag.oembed)))
        else:
            bag.record(ev.family, ev.key, ev.value)


def extract_signals(
    stream: Iterable[str],
    *,
    max_chars: int = DEFAULT_MAX_CHARS,
    deadline: Deadline | None = None,
    stop_at_body: bool = True,
) -> RawSignalBag:
    """
    Run one forward pass over decoded text chunks and collect metadata signals.

    Stops at <body> / </head> (when `stop_at_body`), at `max_chars`, at the deadline, or at
    end of stream. Budget exhaustion and read errors return what was collected so far.
    """
    bag = RawSignalBag()
    scanner = HeadScanner(stop_at_body=stop_at_body)

    try:
        for text in stream:
            if deadline is not None and deadline.expired():
                raise ExtractionTimeout("deadline exceeded during extraction")
            room = max_chars - bag.chars_scanned
            if len(text) > room:
                text = text[:room]
                bag.truncated = True
            bag.chars_scanned += len(text)
            apply_events(bag, scanner.feed(text))
            if scanner.done or bag.truncated:
                break
    except ExtractionTimeout as e:
        bag.truncated = True
        logger.warning("Extraction stopped early: %s", e)
    except Exception as e:  # noqa: BLE001
        bag.stream_error = f"{type(e).__name__}: {e}"
        logger.warning("Stream error during extraction, keeping partial metadata: %s", bag.stream_error)

    if bag.truncated and not scanner.done:
        logger.warning("Extraction budget reached after %d chars", bag.chars_scanned)

    try:
        apply_events(bag, scanner.finalize())
    except Exception as e:  # noqa: BLE001
        logger.warning("Could not finalize scanner: %s", e)

    bag.bytes_read = getattr(stream, "bytes_read", bag.chars_scanned)
    return bag


def extract_html_head_metadata(
    body: bytes,
    *,
    content_type: str | None = None,
    max_chars: int = DEFAULT_MAX_CHARS,
    stop_at_body: bool = True,
) -> RawSignalBag:
    """
    Extraction over an already-buffered document.
    """
    stream = NormalizedStream([body], content_type=content_type)
    return extract_signals(stream, max_chars=max_chars, stop_at_body=stop_at_body)
