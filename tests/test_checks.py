"""Tests for the rpg system checks."""

from rpg.checks import check_rpg_settings


def _ids():
    return {m.id for m in check_rpg_settings(None)}


def test_configured_project_passes(settings):
    assert _ids() == set()


def test_missing_secrets(settings):
    settings.SLACK_SIGNING_SECRET = ""
    settings.SLACK_BOT_TOKEN = ""
    assert {"rpg.E001", "rpg.E002"} <= _ids()


def test_missing_jira_is_a_warning(settings):
    settings.JIRA_BASE_URL = ""
    assert _ids() == {"rpg.W001"}


def test_bad_redelivery_policy(settings):
    settings.RPG_REDELIVERY_POLICY = "sometimes"
    assert "rpg.E003" in _ids()


def test_replay_window_must_be_positive(settings):
    settings.WEBHOOK_REPLAY_WINDOW = 0
    assert "rpg.E004" in _ids()


def test_short_dedup_ttl(settings):
    settings.CHAT_DEDUP_TTL = 60
    assert "rpg.W002" in _ids()
