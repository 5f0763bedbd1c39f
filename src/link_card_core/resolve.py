from __future__ import annotations

import re
from urllib.parse import urlparse

from link_card_core.models import IconLink, PlayerDescriptor, PublishedSummary, RawSignalBag
from link_card_core.util import absolute_http_url, collapse_whitespace

NO_TITLE = "No title"

DEFAULT_PLAYER_FEATURES = frozenset({"autoplay", "encrypted-media", "fullscreen"})

_ICON_RANK = {
    "apple-touch-icon": 0,
    "apple-touch-icon-precomposed": 1,
    "icon": 2,
    "shortcut icon": 3,
}

_SIZE_RE = re.compile(r"(\d+)\s*[xX]\s*(\d+)")


def _first(bag: RawSignalBag, *candidates: tuple[str, str]) -> str | None:
    for family, key in candidates:
        value = collapse_whitespace(bag.get(family, key))
        if value:
            return value
    return None


def _first_url(bag: RawSignalBag, base_url: str, *candidates: tuple[str, str]) -> str | None:
    for family, key in candidates:
        url = absolute_http_url(base_url, bag.get(family, key))
        if url:
            return url
    return None


def _positive_int(value: str | None) -> int | None:
    try:
        n = int(float((value or "").strip()))
    except (ValueError, OverflowError):
        return None
    return n if n > 0 else None


def icon_size(sizes: str | None) -> int:
    """
    Largest edge declared in a `sizes` attribute; "any" (scalable) sorts above everything.
    """
    low = (sizes or "").lower()
    if "any" in low.split():
        return 1 << 30
    best = 0
    for w, h in _SIZE_RE.findall(low):
        best = max(best, int(w), int(h))
    return best


def pick_icon(icons: list[IconLink], base_url: str) -> str | None:
    ranked = sorted(
        icons,
        key=lambda i: (_ICON_RANK.get(i.rel, len(_ICON_RANK)), -icon_size(i.sizes), i.order),
    )
    for icon in ranked:
        url = absolute_http_url(base_url, icon.href)
        if url:
            return url
    return None


def resolve_sitename(bag: RawSignalBag, final_url: str) -> str | None:
    sitename = _first(bag, ("og", "site_name"))
    if sitename:
        return sitename
    return urlparse(final_url).hostname or None


def resolve_player(bag: RawSignalBag, final_url: str) -> PlayerDescriptor | None:
    url = absolute_http_url(final_url, bag.get("twitter", "player"))
    if url:
        return PlayerDescriptor(
            url=url,
            allowed_features=DEFAULT_PLAYER_FEATURES,
            width=_positive_int(bag.get("twitter", "player:width")),
            height=_positive_int(bag.get("twitter", "player:height")),
        )
    url = _first_url(bag, final_url, ("og", "video:secure_url"), ("og", "video:url"), ("og", "video"))
    if url:
        return PlayerDescriptor(
            url=url,
            allowed_features=DEFAULT_PLAYER_FEATURES,
            width=_positive_int(bag.get("og", "video:width")),
            height=_positive_int(bag.get("og", "video:height")),
        )
    return None


def resolve_oembed_url(bag: RawSignalBag, final_url: str) -> str | None:
    for fmt in ("json", "xml"):
        for link in bag.oembed:
            if link.format != fmt:
                continue
            url = absolute_http_url(final_url, link.href)
            if url:
                return url
    return None


def resolve(bag: RawSignalBag, final_url: str, *, allow_player: bool = False) -> PublishedSummary:
    """
    Apply field precedence to the collected signals. Pure: no I/O.

    Relative URLs resolve against `final_url` (the post-redirect URL).
    """
    return PublishedSummary(
        url=final_url,
        title=_first(bag, ("og", "title"), ("twitter", "title"), ("html", "title")) or NO_TITLE,
        description=_first(bag, ("og", "description"), ("twitter", "description"), ("html", "description")),
        sitename=resolve_sitename(bag, final_url),
        icon=pick_icon(bag.icons, final_url),
        thumbnail=_first_url(
            bag,
            final_url,
            ("og", "image"),
            ("og", "image:secure_url"),
            ("og", "image:url"),
            ("twitter", "image"),
            ("twitter", "image:src"),
        ),
        player=resolve_player(bag, final_url) if allow_player else None,
        oembed_url=resolve_oembed_url(bag, final_url),
    )
