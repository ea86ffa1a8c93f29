"""Tests for rpg.conversation: DM dedup, registration, story recall."""

from unittest.mock import patch

import pytest

from integrations.jira import JiraAPIError
from rpg.conversation import build_reply, parse_requested_count, seen_message
from rpg.players import RegistrationError
from rpg.stories import save_story


def _text(blocks):
    return "\n".join(b["text"]["text"] for b in blocks if b["type"] == "section")


class TestSeenMessage:
    def test_first_delivery_is_new(self):
        assert not seen_message("U1", "1700000000.000100")

    def test_redelivery_is_seen(self):
        seen_message("U1", "1700000000.000100")
        assert seen_message("U1", "1700000000.000100")

    def test_key_includes_user(self):
        seen_message("U1", "1700000000.000100")
        assert not seen_message("U2", "1700000000.000100")


class TestParseRequestedCount:
    @pytest.mark.parametrize("text, expected", [
        ("show me my stories", 3),
        ("last 5 stories please", 5),
        ("tell me two tales", 2),
        ("a couple of stories", 2),
        ("give me 99", 10),
        ("0 stories", 1),
        ("", 3),
    ])
    def test_counts(self, text, expected):
        assert parse_requested_count(text) == expected


@pytest.mark.django_db
class TestBuildReply:
    def test_unregistered_user_gets_hint(self):
        assert "register your-jira-username" in _text(build_reply("U_NOBODY", "hello"))

    def test_register_command(self, player):
        with patch("rpg.conversation.register_player", return_value=player) as register:
            blocks = build_reply("U_ALICE", "register alice")
        register.assert_called_once_with("U_ALICE", "alice")
        assert "Welcome, *Alice Smith*" in _text(blocks)

    def test_register_failure(self):
        with patch("rpg.conversation.register_player", side_effect=RegistrationError("No JIRA user named 'x'.")):
            blocks = build_reply("U_NEW", "Register x")
        assert _text(blocks) == ":warning: No JIRA user named 'x'."

    def test_recall_stories_first(self, player):
        for n in range(3):
            save_story(player, f"ISSUE-{n}", "Done", f"⚔️ Tale {n}!")
        with patch("rpg.conversation.fetch_done_issues") as fetch:
            text = _text(build_reply("U_ALICE", "my last 2 stories"))
        fetch.assert_not_called()
        assert "⚔️ Tale 2!" in text
        assert "⚔️ Tale 1!" in text
        assert "⚔️ Tale 0!" not in text

    def test_recall_tops_up_from_jira(self, player):
        save_story(player, "ISSUE-1", "Done", "⚔️ Tale one!")
        done = [
            {"key": "ISSUE-1", "summary": "already told", "url": "u1"},
            {"key": "ISSUE-2", "summary": "Dark mode", "url": "u2"},
        ]
        with patch("rpg.conversation.fetch_done_issues", return_value=done) as fetch:
            text = _text(build_reply("U_ALICE", "show 3 stories"))
        fetch.assert_called_once_with(3, assignee="acc-alice")
        assert "<u2|ISSUE-2> Dark mode" in text
        assert "already told" not in text

    def test_recall_survives_jira_outage(self, player):
        save_story(player, "ISSUE-1", "Done", "⚔️ Tale one!")
        with patch("rpg.conversation.fetch_done_issues", side_effect=JiraAPIError(0, "down")):
            text = _text(build_reply("U_ALICE", "stories"))
        assert "⚔️ Tale one!" in text

    def test_nothing_to_tell(self, player):
        with patch("rpg.conversation.fetch_done_issues", return_value=[]):
            assert "No tales to tell yet" in _text(build_reply("U_ALICE", "stories"))
