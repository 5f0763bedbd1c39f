from __future__ import annotations

from collections.abc import Iterator

import pytest

from link_card_core.encoding import (
    NormalizedStream,
    charset_from_content_type,
    detect_encoding,
    lookup_encoding,
    sniff_meta_charset,
)
from link_card_core.errors import EncodingError


def _decode(chunks: list[bytes], content_type: str | None = None) -> tuple[str, str | None]:
    stream = NormalizedStream(chunks, content_type=content_type)
    text = "".join(stream)
    return text, stream.encoding


@pytest.mark.parametrize(
    ("content_type", "expected"),
    [
        ("text/html; charset=UTF-8", "UTF-8"),
        ('text/html; charset="Shift_JIS"', "Shift_JIS"),
        ("text/html", None),
        (None, None),
    ],
)
def test_charset_from_content_type(content_type: str | None, expected: str | None) -> None:
    assert charset_from_content_type(content_type) == expected


def test_lookup_encoding_maps_browser_aliases() -> None:
    assert lookup_encoding("ISO-8859-1") == "cp1252"
    assert lookup_encoding("utf8") == "utf-8"
    assert lookup_encoding("windows-1251") == "cp1251"
    with pytest.raises(EncodingError):
        lookup_encoding("x-no-such-charset")
    with pytest.raises(EncodingError):
        lookup_encoding("")


def test_sniff_prefers_meta_charset_over_http_equiv() -> None:
    head = (
        b'<meta http-equiv="Content-Type" content="text/html; charset=windows-1251">'
        b'<meta charset="euc-jp">'
    )
    assert sniff_meta_charset(head) == ("meta-charset", "euc-jp")


def test_sniff_reads_http_equiv_content() -> None:
    head = b'<head><META HTTP-EQUIV="content-type" CONTENT="text/html; charset=windows-1251"></head>'
    assert sniff_meta_charset(head) == ("http-equiv", "windows-1251")


def test_header_charset_wins_over_meta() -> None:
    body = '<meta charset="utf-8"><title>Café</title>'.encode("latin-1")
    assert detect_encoding("text/html; charset=iso-8859-1", body) == "cp1252"
    text, _ = _decode([body], "text/html; charset=iso-8859-1")
    assert "Café" in text


def test_meta_charset_used_without_header_charset() -> None:
    body = '<html><head><meta charset="Shift_JIS"><title>日本語</title>'.encode("shift_jis")
    text, enc = _decode([body], "text/html")
    assert enc == "shift_jis"
    assert "日本語" in text


def test_unknown_header_charset_falls_through_to_meta() -> None:
    body = '<meta http-equiv="Content-Type" content="text/html; charset=windows-1251"><title>Привет</title>'.encode(
        "cp1251"
    )
    text, enc = _decode([body], "text/html; charset=x-bogus")
    assert enc == "cp1251"
    assert "Привет" in text


def test_unsupported_declaration_degrades_to_lenient_utf8() -> None:
    body = b'<meta charset="x-bogus"><title>ok \xff\xfe</title>'
    text, enc = _decode([body])
    assert enc == "utf-8"
    assert "ok" in text
    assert "�" in text


def test_meta_declared_utf16_is_read_as_utf8() -> None:
    assert detect_encoding(None, b'<meta charset="utf-16">') == "utf-8"


def test_utf8_bom_is_stripped() -> None:
    text, _ = _decode([b"\xef\xbb\xbf<title>x</title>"])
    assert text.startswith("<title>")


def test_multibyte_characters_split_across_chunks() -> None:
    raw = "<title>Grüße ✓</title>".encode("utf-8")
    chunks = [raw[i : i + 1] for i in range(len(raw))]
    stream = NormalizedStream(chunks, content_type="text/html; charset=utf-8", sniff_bytes=1)
    assert "".join(stream) == "<title>Grüße ✓</title>"


def test_first_chunk_is_available_before_stream_ends() -> None:
    def body() -> Iterator[bytes]:
        yield b"<html><head><title>first</title>" + b" " * 2048
        raise RuntimeError("stream should not be read this far yet")

    stream = NormalizedStream(body(), content_type="text/html", sniff_bytes=1024)
    first = next(iter(stream))
    assert "<title>first</title>" in first
