from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from link_card_core.models import RequestPolicy

DEFAULT_USER_AGENT = "link-card-core/0.1 (+https://github.com/link-card-core; link preview bot)"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    user_agent: str = Field(default=DEFAULT_USER_AGENT, alias="LINK_CARD_USER_AGENT")
    timeout_s: float = Field(default=10.0, gt=0, alias="LINK_CARD_TIMEOUT_S")
    deadline_s: float = Field(default=15.0, gt=0, alias="LINK_CARD_DEADLINE_S")
    max_redirects: int = Field(default=5, ge=0, alias="LINK_CARD_MAX_REDIRECTS")
    max_bytes: int = Field(default=5 * 1024 * 1024, gt=0, alias="LINK_CARD_MAX_BYTES")

    max_scan_chars: int = Field(default=512 * 1024, gt=0, alias="LINK_CARD_MAX_SCAN_CHARS")
    sniff_bytes: int = Field(default=1024, gt=0, alias="LINK_CARD_SNIFF_BYTES")
    stop_at_body: bool = Field(default=True, alias="LINK_CARD_STOP_AT_BODY")

    # Inbound request headers that may be passed through to the remote site.
    forward_headers: list[str] = Field(default_factory=lambda: ["Accept-Language"], alias="LINK_CARD_FORWARD_HEADERS")

    oembed_player: bool = Field(default=False, alias="LINK_CARD_OEMBED_PLAYER")

    def request_policy(self) -> RequestPolicy:
        return RequestPolicy(
            user_agent=self.user_agent,
            timeout_s=self.timeout_s,
            max_redirects=self.max_redirects,
            max_bytes=self.max_bytes,
            forward_headers=tuple(self.forward_headers),
        )


def load_settings() -> Settings:
    return Settings()
