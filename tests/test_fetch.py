from __future__ import annotations

import httpx
import pytest

from conftest import html_response
from link_card_core.errors import FetchError
from link_card_core.fetch import build_headers, open_fetch
from link_card_core.models import FetchTarget, RequestPolicy
from link_card_core.util import Deadline

POLICY = RequestPolicy(user_agent="cardbot/1.0", max_bytes=1000)


def _target(url: str = "https://example.com/a", policy: RequestPolicy = POLICY) -> FetchTarget:
    return FetchTarget(url=url, policy=policy)


def test_build_headers_forwards_only_whitelisted_inbound_headers() -> None:
    headers = build_headers(
        POLICY,
        {"Accept-Language": "de-DE", "Cookie": "session=secret", "Authorization": "Bearer x"},
    )
    assert headers["User-Agent"] == "cardbot/1.0"
    assert headers["Accept-Language"] == "de-DE"
    assert "Cookie" not in headers
    assert "Authorization" not in headers


def test_fetch_streams_body_and_reports_final_url(make_client) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.host == "example.com":
            return httpx.Response(302, headers={"location": "https://www.example.org/landing"})
        return html_response("<title>x</title>")

    client = make_client(handler)
    with open_fetch(_target(), client=client, inbound_headers={"Cookie": "a=b"}) as result:
        assert result.final_url == "https://www.example.org/landing"
        assert result.status_code == 200
        assert result.content_type == "text/html; charset=utf-8"
        assert b"".join(result.body) == b"<title>x</title>"

    assert seen[0].headers["user-agent"] == "cardbot/1.0"
    assert "cookie" not in seen[0].headers


@pytest.mark.parametrize(
    ("response", "kind"),
    [
        (html_response("missing", status=404), "status"),
        (html_response("boom", status=500), "status"),
        (httpx.Response(200, headers={"content-type": "image/png"}, content=b"\x89PNG"), "content_type"),
        (httpx.Response(200, headers={"content-type": "text/html", "content-length": "5000"}, content=b"x"), "too_large"),
    ],
)
def test_fetch_error_kinds(make_client, response: httpx.Response, kind: str) -> None:
    client = make_client(lambda request: response)
    with pytest.raises(FetchError) as exc:
        with open_fetch(_target(), client=client):
            pass
    assert exc.value.kind == kind


def test_status_error_carries_status_code(make_client) -> None:
    client = make_client(lambda request: html_response("gone", status=410))
    with pytest.raises(FetchError) as exc:
        with open_fetch(_target(), client=client):
            pass
    assert exc.value.status_code == 410


def test_missing_content_type_is_accepted(make_client) -> None:
    client = make_client(lambda request: httpx.Response(200, content=b"<title>x</title>"))
    with open_fetch(_target(), client=client) as result:
        assert b"".join(result.body) == b"<title>x</title>"


def test_timeout_is_a_fetch_error(make_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    client = make_client(handler)
    with pytest.raises(FetchError) as exc:
        with open_fetch(_target(), client=client):
            pass
    assert exc.value.kind == "timeout"


def test_network_error_is_a_fetch_error(make_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler)
    with pytest.raises(FetchError) as exc:
        with open_fetch(_target(), client=client):
            pass
    assert exc.value.kind == "network"


def test_redirect_cap(make_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        n = int(request.url.params.get("n", "0"))
        return httpx.Response(302, headers={"location": f"https://example.com/a?n={n + 1}"})

    client = make_client(handler, max_redirects=2)
    with pytest.raises(FetchError) as exc:
        with open_fetch(_target(), client=client):
            pass
    assert exc.value.kind == "redirects"


def test_expired_deadline_fails_before_request(make_client) -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return html_response("x")

    client = make_client(handler)
    with pytest.raises(FetchError) as exc:
        with open_fetch(_target(), client=client, deadline=Deadline(0)):
            pass
    assert exc.value.kind == "timeout"
    assert calls == []


def test_policy_redirect_cap_applies_to_supplied_client(make_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        n = int(request.url.params.get("n", "0"))
        if n < 2:
            return httpx.Response(302, headers={"location": f"https://example.com/a?n={n + 1}"})
        return html_response("<title>x</title>")

    client = make_client(handler, max_redirects=20)
    policy = RequestPolicy(user_agent="cardbot/1.0", max_redirects=1)
    with pytest.raises(FetchError) as exc:
        with open_fetch(_target(policy=policy), client=client):
            pass
    assert exc.value.kind == "redirects"

    with open_fetch(_target(policy=RequestPolicy(user_agent="cardbot/1.0", max_redirects=2)), client=client) as result:
        assert result.final_url == "https://example.com/a?n=2"


def test_request_timeout_is_capped_by_deadline(make_client) -> None:
    timeouts: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        timeouts.append(request.extensions["timeout"])
        return html_response("x")

    client = make_client(handler)
    policy = RequestPolicy(user_agent="cardbot/1.0", timeout_s=30.0)
    with open_fetch(_target(policy=policy), client=client, deadline=Deadline(2.0)):
        pass
    assert 0 < timeouts[0]["read"] <= 2.0
    assert timeouts[0]["connect"] <= 2.0
