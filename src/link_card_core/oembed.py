from __future__ import annotations

import json
import logging
from dataclasses import replace
from typing import Any

import httpx

from link_card_core.errors import ExtractionTimeout, FetchError
from link_card_core.fetch import open_fetch
from link_card_core.html_head import TolerantHTMLParser
from link_card_core.models import FetchTarget, PlayerDescriptor, RequestPolicy
from link_card_core.util import Deadline, absolute_http_url

logger = logging.getLogger(__name__)

OEMBED_CONTENT_TYPES = ("application/json", "text/json", "text/javascript", "application/javascript", "text/plain")
MAX_OEMBED_BYTES = 64 * 1024


class _IframeFinder(TolerantHTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.attrs: dict[str, str] | None = None

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if self.attrs is None and tag.lower() == "iframe":
            self.attrs = {k.lower(): (v or "") for k, v in attrs}


def _dimension(*values: Any) -> int | None:
    for v in values:
        try:
            n = int(v)
        except (TypeError, ValueError):
            continue
        if n > 0:
            return n
    return None


def player_from_oembed(payload: dict[str, Any], base_url: str) -> PlayerDescriptor | None:
    """
    Build a player from an oEmbed response of type video/rich whose `html` holds an iframe.
    """
    if str(payload.get("type") or "").lower() not in {"video", "rich"}:
        return None
    html = payload.get("html")
    if not isinstance(html, str) or not html.strip():
        return None

    finder = _IframeFinder()
    finder.feed(html)
    finder.close()
    iframe = finder.attrs
    if not iframe:
        return None
    src = absolute_http_url(base_url, iframe.get("src"))
    if not src:
        return None

    allow = {f.strip().split(" ", 1)[0] for f in (iframe.get("allow") or "").split(";") if f.strip()}
    if "allowfullscreen" in iframe:
        allow.add("fullscreen")
    return PlayerDescriptor(
        url=src,
        allowed_features=frozenset(allow),
        width=_dimension(payload.get("width"), iframe.get("width")),
        height=_dimension(payload.get("height"), iframe.get("height")),
    )


def fetch_oembed_player(
    oembed_url: str,
    *,
    policy: RequestPolicy,
    client: httpx.Client | None = None,
    deadline: Deadline | None = None,
) -> PlayerDescriptor | None:
    """
    Best-effort: any failure is logged and yields None.
    """
    json_policy = replace(
        policy,
        accept="application/json",
        allowed_content_types=OEMBED_CONTENT_TYPES,
        max_bytes=min(policy.max_bytes, MAX_OEMBED_BYTES),
        forward_headers=(),
    )
    try:
        buf = bytearray()
        with open_fetch(FetchTarget(url=oembed_url, policy=json_policy), client=client, deadline=deadline) as result:
            for chunk in result.body:
                buf.extend(chunk)
                if len(buf) > json_policy.max_bytes:
                    logger.warning("oEmbed response from %s exceeds %d bytes", oembed_url, json_policy.max_bytes)
                    return None
            final_url = result.final_url
        payload = json.loads(bytes(buf))
        if not isinstance(payload, dict):
            return None
        return player_from_oembed(payload, final_url)
    # Deeply nested JSON raises RecursionError; a broken iframe snippet can trip the parser.
    except (FetchError, ExtractionTimeout, ValueError, RecursionError, AssertionError) as e:
        logger.warning("oEmbed lookup failed for %s: %s", oembed_url, e)
        return None
