from link_card_core.card import render_card, render_page
from link_card_core.config import Settings, load_settings
from link_card_core.errors import EncodingError, ExtractionTimeout, FetchError, InputError, LinkCardError
from link_card_core.html_head import HeadScanner, extract_html_head_metadata, extract_signals
from link_card_core.models import PlayerDescriptor, PublishedSummary, RawSignalBag, RequestPolicy
from link_card_core.pipeline import card_page, parse_allow_player, summarize, summarize_or_none
from link_card_core.resolve import resolve
from link_card_core.util import CACHE_CONTROL, cache_key

__all__ = [
    "__version__",
    "CACHE_CONTROL",
    "EncodingError",
    "ExtractionTimeout",
    "FetchError",
    "HeadScanner",
    "InputError",
    "LinkCardError",
    "PlayerDescriptor",
    "PublishedSummary",
    "RawSignalBag",
    "RequestPolicy",
    "Settings",
    "cache_key",
    "card_page",
    "extract_html_head_metadata",
    "extract_signals",
    "load_settings",
    "parse_allow_player",
    "render_card",
    "render_page",
    "resolve",
    "summarize",
    "summarize_or_none",
]

__version__ = "0.1.0"
