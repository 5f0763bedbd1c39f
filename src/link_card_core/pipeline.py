from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import replace

import httpx

from link_card_core.card import render_page
from link_card_core.config import Settings, load_settings
from link_card_core.encoding import normalize
from link_card_core.errors import FetchError, InputError
from link_card_core.fetch import new_client, open_fetch
from link_card_core.html_head import extract_signals
from link_card_core.models import FetchTarget, PublishedSummary
from link_card_core.oembed import fetch_oembed_player
from link_card_core.resolve import resolve
from link_card_core.util import Deadline, is_http_url

logger = logging.getLogger(__name__)


def parse_allow_player(value: str | None) -> bool:
    """
    Query-string flag: `?allowPlayer` and `?allowPlayer=true` enable the player.
    """
    if value is None:
        return False
    return value == "" or value.strip().lower() == "true"


def validate_url(url: str | None) -> str:
    url = (url or "").strip()
    if not url:
        raise InputError("URL parameter is missing.")
    if not is_http_url(url):
        raise InputError(f"Unsupported URL: {url!r}")
    return url


def summarize(
    url: str | None,
    *,
    allow_player: bool = False,
    settings: Settings | None = None,
    client: httpx.Client | None = None,
    inbound_headers: Mapping[str, str] | None = None,
) -> PublishedSummary:
    """
    Fetch `url` and build its preview summary.

    Raises InputError (no request is made) or FetchError. Everything after a successful
    fetch degrades to a best-effort summary.
    """
    url = validate_url(url)
    settings = settings or load_settings()
    policy = settings.request_policy()
    deadline = Deadline(settings.deadline_s)

    owns_client = client is None
    if client is None:
        client = new_client(policy)
    try:
        with open_fetch(
            FetchTarget(url=url, policy=policy),
            client=client,
            deadline=deadline,
            inbound_headers=inbound_headers,
        ) as result:
            stream = normalize(result, sniff_bytes=settings.sniff_bytes)
            bag = extract_signals(
                stream,
                max_chars=settings.max_scan_chars,
                deadline=deadline,
                stop_at_body=settings.stop_at_body,
            )
            final_url = result.final_url

        logger.info(
            "Scanned %s: %d bytes, encoding=%s, truncated=%s",
            final_url,
            bag.bytes_read,
            stream.encoding,
            bag.truncated,
        )
        summary = resolve(bag, final_url, allow_player=allow_player)

        if allow_player and summary.player is None and summary.oembed_url and settings.oembed_player:
            player = fetch_oembed_player(summary.oembed_url, policy=policy, client=client, deadline=deadline)
            if player is not None:
                summary = replace(summary, player=player)
        return summary
    finally:
        if owns_client:
            client.close()


def summarize_or_none(
    url: str | None,
    *,
    allow_player: bool = False,
    settings: Settings | None = None,
    client: httpx.Client | None = None,
    inbound_headers: Mapping[str, str] | None = None,
) -> PublishedSummary | None:
    """
    Like `summarize`, but returns None when no summary can be produced.
    """
    try:
        return summarize(
            url,
            allow_player=allow_player,
            settings=settings,
            client=client,
            inbound_headers=inbound_headers,
        )
    except InputError as e:
        logger.info("Rejected input: %s", e)
    except FetchError as e:
        logger.warning("Fetch failed (%s): %s", e.kind, e)
    return None


def card_page(
    url: str | None,
    *,
    allow_player: bool = False,
    settings: Settings | None = None,
    client: httpx.Client | None = None,
    inbound_headers: Mapping[str, str] | None = None,
) -> str:
    """
    Render the embeddable card document for `url`, including the error affordances.
    """
    try:
        summary = summarize(
            url,
            allow_player=allow_player,
            settings=settings,
            client=client,
            inbound_headers=inbound_headers,
        )
    except InputError as e:
        return render_page(None, error=str(e))
    except FetchError as e:
        logger.warning("Fetch failed (%s): %s", e.kind, e)
        return render_page(None)
    return render_page(summary)
