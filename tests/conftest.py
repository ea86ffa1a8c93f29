import copy
from unittest.mock import MagicMock, patch

import pytest
from django.core.cache import cache

from rpg.models import Guild, GuildMembership, Player

BASE_PAYLOAD = {
    "webhookEvent": "jira:issue_updated",
    "user": {
        "name": "alice",
        "accountId": "acc-alice",
        "emailAddress": "alice@example.com",
        "displayName": "Alice Smith",
    },
    "issue": {
        "key": "ISSUE-1",
        "fields": {
            "summary": "Fix the login page",
            "description": "Users cannot log in with SSO.",
            "status": {"name": "Done"},
            "issuetype": {"name": "Story"},
            "priority": {"name": "High"},
            "project": {"key": "ISSUE", "name": "Issue Tracker"},
            "components": [{"name": "Backend"}],
            "labels": [],
            "customfield_10016": 3,
            "assignee": {
                "name": "alice",
                "accountId": "acc-alice",
                "emailAddress": "alice@example.com",
                "displayName": "Alice Smith",
            },
            "reporter": {"name": "bob", "displayName": "Bob Jones"},
            "created": "2024-03-01T08:00:00.000+0000",
            "updated": "2024-03-01T13:00:00.000+0000",
        },
    },
    "changelog": {
        "items": [
            {"field": "status", "fromString": "In Progress", "toString": "Done"},
        ],
    },
}


def make_payload(**fields) -> dict:
    """Return a fresh webhook body with issue *fields* overridden."""
    payload = copy.deepcopy(BASE_PAYLOAD)
    changelog = fields.pop("changelog", None)
    key = fields.pop("key", None)
    payload["issue"]["fields"].update(fields)
    if changelog is not None:
        payload["changelog"] = changelog
    if key is not None:
        payload["issue"]["key"] = key
    return payload


@pytest.fixture
def payload_factory():
    return make_payload


@pytest.fixture(autouse=True)
def clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture(autouse=True)
def slack_client():
    """Replace the Slack WebClient so no test reaches the network."""
    client = MagicMock()
    client.chat_postMessage.return_value = {"ok": True, "ts": "1700000000.000100"}
    with patch("integrations.slack.WebClient", return_value=client):
        yield client


@pytest.fixture
def player(db):
    return Player.objects.create(
        key="alice",
        tracker_account_id="acc-alice",
        email="alice@example.com",
        display_name="Alice Smith",
        slack_user_id="U_ALICE",
    )


@pytest.fixture
def other_player(db):
    return Player.objects.create(
        key="bob",
        display_name="Bob Jones",
        slack_user_id="U_BOB",
    )


@pytest.fixture
def guild_factory(db):
    """Create an active guild led by the first member, without Slack checks."""

    def _make(name, channel, members, components=(), labels=(), **extra):
        leader = members[0]
        guild = Guild.objects.create(
            name=name,
            slack_channel_id=channel,
            leader=leader,
            jira_components=list(components),
            jira_labels=list(labels),
            created_by=leader,
            **extra,
        )
        for index, member in enumerate(members):
            GuildMembership.objects.create(
                guild=guild,
                player=member,
                role=GuildMembership.LEADER if index == 0 else GuildMembership.MEMBER,
            )
        return guild

    return _make
