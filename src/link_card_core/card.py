from __future__ import annotations

from html import escape as html_escape

from link_card_core.models import PublishedSummary

MISSING_URL_MESSAGE = "URL parameter is missing."
EMPTY_RESPONSE = "Response is Empty"

DEFAULT_STYLESHEET = "/static/css/card.css"
DEFAULT_RESIZER_SCRIPT = "/static/js/iframe-resizer.child.js"


def _attr(value: str) -> str:
    return html_escape(value, quote=True)


def _sitename_row(summary: PublishedSummary, *, extra_class: str = "") -> str:
    if not summary.sitename:
        return ""
    icon = ""
    if summary.icon:
        icon = f'<img src="{_attr(summary.icon)}" alt="Icon" class="w-4 h-4 mr-2 rounded-full" />'
    cls = "flex items-center text-xs text-gray-500 mt-1"
    if extra_class:
        cls = f"{cls} {extra_class}"
    return f'<div class="{cls}">{icon}<span>{html_escape(summary.sitename)}</span></div>'


def _description(summary: PublishedSummary, *, clamp: int) -> str:
    if not summary.description:
        return ""
    return f'<p class="text-sm text-gray-600 mt-1 line-clamp-{clamp}">{html_escape(summary.description)}</p>'


def _title(summary: PublishedSummary) -> str:
    return f'<h3 class="font-bold text-gray-800 truncate text-base">{html_escape(summary.title)}</h3>'


def render_player_card(summary: PublishedSummary) -> str:
    assert summary.player is not None and summary.player.url
    allow = "; ".join(sorted(summary.player.allowed_features))
    return (
        "<div>"
        '<div class="aspect-video">'
        f'<iframe src="{_attr(summary.player.url)}" class="w-full h-full" frameborder="0" '
        f'allow="{_attr(allow)}" allowfullscreen></iframe>'
        "</div>"
        '<div class="p-3 border-t border-gray-200">'
        f'<a href="{_attr(summary.url)}" target="_blank" rel="noopener noreferrer" class="hover:underline block">'
        f"{_title(summary)}</a>"
        f"{_sitename_row(summary)}"
        f"{_description(summary, clamp=3)}"
        "</div>"
        "</div>"
    )


def render_link_card(summary: PublishedSummary) -> str:
    thumbnail = ""
    if summary.thumbnail:
        thumbnail = (
            '<div class="shrink-0 h-full">'
            f'<img src="{_attr(summary.thumbnail)}" alt="Thumbnail" class="w-full sm:w-32 h-auto sm:h-35 object-cover" />'
            "</div>"
        )
    return (
        '<div class="h-full">'
        f'<a href="{_attr(summary.url)}" target="_blank" rel="noopener noreferrer" '
        'class="flex flex-col sm:flex-row h-full hover:bg-gray-50 transition-colors no-underline">'
        f"{thumbnail}"
        '<div class="p-3 overflow-hidden min-w-0 flex flex-col justify-center">'
        f"{_title(summary)}"
        f"{_description(summary, clamp=2)}"
        f"{_sitename_row(summary)}"
        "</div>"
        "</a>"
        "</div>"
    )


def render_card(summary: PublishedSummary) -> str:
    """
    Card body for a summary. A player layout is used only when the summary carries a
    player URL; whether a player is allowed at all is decided upstream by `resolve()`.
    """
    if summary.player is not None and summary.player.url:
        inner = render_player_card(summary)
    else:
        inner = render_link_card(summary)
    return f'<div class="w-full h-full border border-gray-200 rounded-lg overflow-hidden">{inner}</div>'


def render_error_card(message: str) -> str:
    return (
        '<div class="w-full my-4 p-4 border border-red-400 rounded-lg text-red-700">'
        f"Error: {html_escape(message)}</div>"
    )


def render_page(
    summary: PublishedSummary | None,
    *,
    error: str | None = None,
    stylesheet_href: str = DEFAULT_STYLESHEET,
    resizer_script: str = DEFAULT_RESIZER_SCRIPT,
) -> str:
    """
    Full HTML document meant to be served inside an iframe.
    """
    if error:
        body = render_error_card(error)
    elif summary is None:
        body = EMPTY_RESPONSE
    else:
        body = render_card(summary)
    return (
        "<!DOCTYPE html>"
        "<html><head>"
        '<meta charset="utf-8" />'
        f'<link href="{_attr(stylesheet_href)}" rel="stylesheet" />'
        "</head><body>"
        f"{body}"
        f'<script async src="{_attr(resizer_script)}"></script>'
        "</body></html>"
    )
