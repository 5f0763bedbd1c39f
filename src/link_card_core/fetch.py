from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager

import httpx

from link_card_core.errors import ExtractionTimeout, FetchError
from link_card_core.models import FetchResult, FetchTarget, RequestPolicy
from link_card_core.util import Deadline

logger = logging.getLogger(__name__)


def build_headers(policy: RequestPolicy, inbound_headers: Mapping[str, str] | None = None) -> dict[str, str]:
    headers: dict[str, str] = {
        "User-Agent": policy.user_agent,
        "Accept": policy.accept,
    }
    for name, value in policy.extra_headers:
        headers[name] = value
    if inbound_headers:
        allowed = {h.lower() for h in policy.forward_headers}
        for name, value in inbound_headers.items():
            if name.lower() in allowed and value:
                headers[name] = value
    return headers


def new_client(policy: RequestPolicy) -> httpx.Client:
    return httpx.Client(
        timeout=policy.timeout_s,
        follow_redirects=True,
        max_redirects=policy.max_redirects,
        trust_env=False,
    )


def _check_response(target: FetchTarget, r: httpx.Response) -> None:
    url = str(r.url)
    # A caller-supplied client may follow more redirects than the policy allows.
    if len(r.history) > target.policy.max_redirects:
        raise FetchError("redirects", url, f"more than {target.policy.max_redirects} redirects", status_code=r.status_code)
    if not (200 <= r.status_code < 300):
        raise FetchError("status", url, f"HTTP {r.status_code}", status_code=r.status_code)

    content_length = r.headers.get("content-length")
    if content_length and content_length.isdigit() and int(content_length) > target.policy.max_bytes:
        raise FetchError(
            "too_large",
            url,
            f"Content-Length {content_length} exceeds {target.policy.max_bytes}",
            status_code=r.status_code,
        )

    # A missing Content-Type is sniffed as HTML by browsers; accept it.
    ct = (r.headers.get("content-type") or "").split(";", 1)[0].strip().lower()
    if ct and ct not in target.policy.allowed_content_types:
        raise FetchError("content_type", url, f"unsupported content type {ct!r}", status_code=r.status_code)


def _iter_body(r: httpx.Response, deadline: Deadline | None) -> Iterator[bytes]:
    # Checked between chunks only; a single stalled read is bounded by the request timeout.
    for chunk in r.iter_bytes():
        if deadline is not None and deadline.expired():
            raise ExtractionTimeout(f"deadline exceeded while reading {r.url}")
        if chunk:
            yield chunk


@contextmanager
def open_fetch(
    target: FetchTarget,
    *,
    client: httpx.Client | None = None,
    deadline: Deadline | None = None,
    inbound_headers: Mapping[str, str] | None = None,
) -> Iterator[FetchResult]:
    """
    Open a streaming GET for `target` and yield a `FetchResult`.

    The body is only read as the caller iterates `FetchResult.body`; the response is
    closed when the context exits.

    The deadline is enforced before the request and between body chunks. The httpx timeout
    is fixed at the remaining time when the request starts, so one stalled read can run past
    the deadline by at most that timeout.
    """
    policy = target.policy
    timeout_s = policy.timeout_s
    if deadline is not None:
        if deadline.expired():
            raise FetchError("timeout", target.url, "deadline exceeded before request")
        timeout_s = min(timeout_s, deadline.remaining())

    owns_client = client is None
    if client is None:
        client = new_client(policy)

    logger.info("Fetching %s", target.url)
    try:
        try:
            with client.stream(
                "GET",
                target.url,
                headers=build_headers(policy, inbound_headers),
                timeout=timeout_s,
                follow_redirects=True,
            ) as r:
                _check_response(target, r)
                logger.info("Fetched %s -> %s (HTTP %s)", target.url, r.url, r.status_code)
                yield FetchResult(
                    final_url=str(r.url),
                    status_code=r.status_code,
                    headers=r.headers,
                    body=_iter_body(r, deadline),
                )
        except httpx.TimeoutException as e:
            raise FetchError("timeout", target.url, str(e) or "request timed out") from e
        except httpx.TooManyRedirects as e:
            raise FetchError("redirects", target.url, f"more than {policy.max_redirects} redirects") from e
        except httpx.InvalidURL as e:
            raise FetchError("network", target.url, str(e)) from e
        except httpx.TransportError as e:
            raise FetchError("network", target.url, str(e) or type(e).__name__) from e
    finally:
        if owns_client:
            client.close()
