from __future__ import annotations

import codecs
import logging
import re
from collections.abc import Iterable, Iterator
from email.message import Message

from link_card_core.errors import EncodingError
from link_card_core.models import FetchResult

logger = logging.getLogger(__name__)

CANONICAL_ENCODING = "utf-8"

# Labels browsers treat as something other than their literal codec.
_LABEL_OVERRIDES = {
    "iso-8859-1": "cp1252",
    "iso8859-1": "cp1252",
    "latin1": "cp1252",
    "latin-1": "cp1252",
    "l1": "cp1252",
    "us-ascii": "cp1252",
    "ascii": "cp1252",
    "gb2312": "gbk",
    "x-gbk": "gbk",
    "x-sjis": "shift_jis",
    "x-user-defined": "cp1252",
}

_META_TAG_RE = re.compile(rb"<meta\b[^>]*>", re.IGNORECASE)
_CONTENT_ATTR_RE = re.compile(rb"""\bcontent\s*=\s*(?:"[^"]*"|'[^']*'|[^\s>]+)""", re.IGNORECASE)
_CHARSET_RE = re.compile(rb"""\bcharset\s*=\s*["']?\s*([A-Za-z0-9._:\-]+)""", re.IGNORECASE)
_HTTP_EQUIV_RE = re.compile(rb"""\bhttp-equiv\s*=\s*["']?\s*content-type""", re.IGNORECASE)


def lookup_encoding(label: str | None) -> str:
    """
    Map a declared charset label to a Python codec name.

    Raises EncodingError for empty or unknown labels.
    """
    norm = (label or "").strip().strip("'\"").lower()
    if not norm:
        raise EncodingError("empty charset label")
    norm = _LABEL_OVERRIDES.get(norm, norm)
    try:
        return codecs.lookup(norm).name
    except LookupError as e:
        raise EncodingError(f"unsupported charset {label!r}") from e


def charset_from_content_type(content_type: str | None) -> str | None:
    if not content_type:
        return None
    msg = Message()
    msg["content-type"] = content_type
    charset = msg.get_param("charset")
    if isinstance(charset, tuple):
        # RFC 2231 encoded parameter: (charset, language, value)
        charset = charset[2]
    if not charset:
        return None
    return str(charset).strip() or None


def sniff_meta_charset(head: bytes) -> tuple[str, str] | None:
    """
    Look for a charset declaration in the first bytes of a document.

    Returns (source, label) where source is "meta-charset" or "http-equiv". A
    `<meta charset>` anywhere in `head` wins over an http-equiv declaration.
    """
    tags = _META_TAG_RE.findall(head)
    for tag in tags:
        # Drop the content attribute so `content="text/html; charset=..."` is not read as `charset=`.
        m = _CHARSET_RE.search(_CONTENT_ATTR_RE.sub(b"", tag))
        if m:
            return "meta-charset", m.group(1).decode("ascii", errors="replace")

    for tag in tags:
        if not _HTTP_EQUIV_RE.search(tag):
            continue
        content = _CONTENT_ATTR_RE.search(tag)
        m = _CHARSET_RE.search(content.group(0)) if content else None
        if m:
            return "http-equiv", m.group(1).decode("ascii", errors="replace")
    return None


def detect_encoding(content_type: str | None, head: bytes) -> str:
    """
    Pick the codec for a document: Content-Type charset, then <meta charset>, then the
    http-equiv Content-Type meta, then UTF-8. Unusable labels fall through to the next source.
    """
    declared = charset_from_content_type(content_type)
    if declared:
        try:
            enc = lookup_encoding(declared)
            logger.debug("Charset %s from Content-Type header", enc)
            return enc
        except EncodingError as e:
            logger.warning("Ignoring Content-Type charset: %s", e)

    sniffed = sniff_meta_charset(head)
    if sniffed:
        source, label = sniffed
        try:
            enc = lookup_encoding(label)
        except EncodingError as e:
            logger.warning("Ignoring %s declaration: %s", source, e)
        else:
            # A byte-oriented <meta> cannot really declare UTF-16.
            if enc.startswith("utf-16"):
                enc = CANONICAL_ENCODING
            logger.debug("Charset %s from %s", enc, source)
            return enc

    return CANONICAL_ENCODING


class NormalizedStream:
    """
    Iterator of decoded text chunks, produced incrementally from a byte stream.

    Only the first `sniff_bytes` are buffered before the first chunk is emitted.
    """

    def __init__(
        self,
        chunks: Iterable[bytes],
        *,
        content_type: str | None = None,
        sniff_bytes: int = 1024,
    ) -> None:
        self._chunks = iter(chunks)
        self._content_type = content_type
        self._sniff_bytes = sniff_bytes
        self.encoding: str | None = None
        self.bytes_read = 0

    def _read_head(self) -> bytes:
        buf = bytearray()
        for chunk in self._chunks:
            self.bytes_read += len(chunk)
            buf.extend(chunk)
            if len(buf) >= self._sniff_bytes:
                break
        return bytes(buf)

    def __iter__(self) -> Iterator[str]:
        head = self._read_head()
        self.encoding = detect_encoding(self._content_type, head[: self._sniff_bytes])
        codec = "utf-8-sig" if self.encoding == "utf-8" else self.encoding
        decoder = codecs.getincrementaldecoder(codec)(errors="replace")

        text = decoder.decode(head)
        if text:
            yield text
        for chunk in self._chunks:
            self.bytes_read += len(chunk)
            text = decoder.decode(chunk)
            if text:
                yield text
        tail = decoder.decode(b"", final=True)
        if tail:
            yield tail


def normalize(result: FetchResult, *, sniff_bytes: int = 1024) -> NormalizedStream:
    return NormalizedStream(result.body, content_type=result.content_type, sniff_bytes=sniff_bytes)
