from __future__ import annotations


class LinkCardError(RuntimeError):
    pass


class InputError(LinkCardError, ValueError):
    """The requested URL is missing or unusable; raised before any network I/O."""


class FetchError(LinkCardError):
    """
    The remote document could not be fetched.

    `kind` is one of: timeout, network, redirects, status, too_large, content_type.
    """

    def __init__(self, kind: str, url: str, message: str, *, status_code: int | None = None) -> None:
        super().__init__(f"{kind}: {message} ({url})")
        self.kind = kind
        self.url = url
        self.status_code = status_code


class EncodingError(LinkCardError):
    pass


class ExtractionTimeout(LinkCardError):
    pass
