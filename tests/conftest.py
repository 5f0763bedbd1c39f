from __future__ import annotations

from collections.abc import Callable, Generator

import httpx
import pytest

from link_card_core.config import Settings

Handler = Callable[[httpx.Request], httpx.Response]


def html_response(body: bytes | str, *, content_type: str = "text/html; charset=utf-8", status: int = 200) -> httpx.Response:
    if isinstance(body, str):
        body = body.encode("utf-8")
    return httpx.Response(status, headers={"content-type": content_type}, content=body)


@pytest.fixture()
def settings() -> Settings:
    return Settings.model_validate({"LINK_CARD_DEADLINE_S": 5, "LINK_CARD_TIMEOUT_S": 5})


@pytest.fixture()
def make_client() -> Generator[Callable[..., httpx.Client], None, None]:
    clients: list[httpx.Client] = []

    def _make(handler: Handler, *, max_redirects: int = 5) -> httpx.Client:
        client = httpx.Client(
            transport=httpx.MockTransport(handler),
            follow_redirects=True,
            max_redirects=max_redirects,
        )
        clients.append(client)
        return client

    yield _make
    for c in clients:
        c.close()
