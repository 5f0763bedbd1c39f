from link_card_core.config import Settings


def test_settings_defaults_build_request_policy() -> None:
    settings = Settings.model_validate({})
    policy = settings.request_policy()
    assert policy.user_agent == settings.user_agent
    assert policy.max_redirects == 5
    assert policy.forward_headers == ("Accept-Language",)
    assert settings.oembed_player is False


def test_settings_parses_aliased_fields() -> None:
    settings = Settings.model_validate(
        {
            "LINK_CARD_USER_AGENT": "cardbot/1.0",
            "LINK_CARD_TIMEOUT_S": "2.5",
            "LINK_CARD_MAX_REDIRECTS": "1",
            "LINK_CARD_FORWARD_HEADERS": ["Accept-Language", "Cookie"],
            "LINK_CARD_STOP_AT_BODY": "false",
        }
    )
    policy = settings.request_policy()
    assert policy.user_agent == "cardbot/1.0"
    assert policy.timeout_s == 2.5
    assert policy.max_redirects == 1
    assert policy.forward_headers == ("Accept-Language", "Cookie")
    assert settings.stop_at_body is False
