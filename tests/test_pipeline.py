"""End-to-end tests for rpg.pipeline and the background task."""

import hashlib
import hmac
import json
import time
from unittest.mock import patch

import pytest
from django.urls import reverse
from slack_sdk.errors import SlackApiError

from rpg.ai.narrator import Narrative
from rpg.events import normalize_payload
from rpg.models import Guild, Player, Story
from rpg.pipeline import run_pipeline
from rpg.tasks import process_issue_event
from tests.conftest import make_payload

pytestmark = pytest.mark.django_db

MODEL_STORY = Narrative(
    text="🐉 Alice Smith storms the SSO citadel and frees the login gates!",
    loot="Token of Trust",
    achievement="Gatekeeper",
)


@pytest.fixture
def narrator():
    """Healthy model service returning a fixed narrative."""
    with patch("rpg.pipeline.check_model_health", return_value=True), \
            patch("rpg.pipeline.generate_narrative", return_value=MODEL_STORY) as generate:
        yield generate


def _run(payload):
    return run_pipeline(normalize_payload(payload))


def _alice():
    return Player.objects.get(pk="alice")


def _posted_channels(slack_client):
    return [c.kwargs["channel"] for c in slack_client.chat_postMessage.call_args_list]


class TestScenarios:
    def test_first_completion_with_story_points(self, player, guild_factory, narrator, slack_client):
        guild = guild_factory("Backenders", "C1", [player], components=["Backend"])
        result = _run(make_payload())

        alice = _alice()
        assert alice.xp == 100
        assert alice.level == 1
        assert alice.current_title == "Novice Adventurer"
        assert alice.total_tickets == 1
        assert result.level_up is None
        assert result.award["xp"] == 100

        story = Story.objects.get()
        assert (story.player_id, story.issue_key, story.status) == ("alice", "ISSUE-1", "Done")
        assert story.narrative == MODEL_STORY.text
        assert story.loot == "Token of Trust"
        assert story.guild_ids == [guild.pk]
        assert story.xp_award["xp"] == 100
        assert story.ticket_snapshot["ticket_key"] == "ISSUE-1"

        assert _posted_channels(slack_client) == ["C1"]
        guild.refresh_from_db()
        assert guild.total_xp == 100

    def test_level_up_across_threshold(self, player, guild_factory, narrator):
        Player.objects.filter(pk="alice").update(xp=150)
        guild_factory("Backenders", "C1", [player], components=["Backend"])
        result = _run(make_payload(customfield_10016=0, created="2024-02-01T08:00:00.000+0000"))

        alice = _alice()
        assert alice.xp == 200
        assert alice.level == 2
        assert alice.current_title == "Apprentice Developer"
        assert result.level_up["old_title"] == "Novice Adventurer"
        assert result.level_up["new_title"] == "Apprentice Developer"

    def test_bug_speedrun(self, player, narrator):
        result = _run(make_payload(issuetype={"name": "Bug"}, customfield_10016=2))
        assert result.award["xp"] == 115
        alice = _alice()
        assert alice.xp == 115
        assert alice.total_bugs == 1

    def test_no_matching_guild_sends_dm(self, player, guild_factory, narrator, slack_client):
        guild_factory("Frontenders", "C1", [player], components=["UI"])
        result = _run(make_payload())
        assert result.guild_ids == []
        assert result.delivery.dm_sent
        assert _posted_channels(slack_client) == ["U_ALICE"]

    def test_two_matching_guilds(self, player, guild_factory, narrator, slack_client):
        g1 = guild_factory("UI Guild", "C1", [player], components=["UI"])
        g2 = guild_factory("Frontend Guild", "C2", [player], labels=["frontend"])
        result = _run(make_payload(components=[{"name": "UI"}], labels=["frontend"]))
        assert result.guild_ids == [g1.pk, g2.pk]
        assert _posted_channels(slack_client) == ["C1", "C2"]
        assert not result.delivery.dm_sent

    def test_replayed_done_reuses_story(self, player, guild_factory, narrator, slack_client):
        guild_factory("Backenders", "C1", [player], components=["Backend"])
        first = _run(make_payload())
        second = _run(make_payload())

        assert Story.objects.count() == 1
        assert second.story_id == first.story_id
        assert first.story_created and not second.story_created
        assert narrator.call_count == 1
        # XP is awarded per event, the story is stored per transition.
        assert _alice().xp == 200
        assert second.delivery.skip_reason == "duplicate_delivery"
        assert _posted_channels(slack_client) == ["C1"]

    def test_replay_reposts_when_configured(self, player, guild_factory, narrator, slack_client, settings):
        settings.RPG_REDELIVERY_POLICY = "repost"
        guild_factory("Backenders", "C1", [player], components=["Backend"])
        _run(make_payload())
        _run(make_payload())
        assert _posted_channels(slack_client) == ["C1", "C1"]
        assert narrator.call_count == 1


class TestPipelineEdges:
    def test_unhealthy_model_uses_fallback(self, player, guild_factory):
        guild_factory("Backenders", "C1", [player], components=["Backend"])
        with patch("rpg.pipeline.check_model_health", return_value=False), \
                patch("rpg.pipeline.generate_narrative") as generate:
            result = _run(make_payload())
        generate.assert_not_called()
        assert result.narrative_source == "fallback"
        assert "[ISSUE-1]" in Story.objects.get().narrative

    def test_unknown_actor_is_auto_created_and_not_posted(self, narrator, slack_client):
        payload = make_payload()
        payload["user"] = {"name": "zed", "displayName": "Zed"}
        result = _run(payload)
        zed = Player.objects.get(pk="zed")
        assert zed.auto_created
        assert zed.xp == 100
        assert result.delivery.skip_reason == "no_guild_membership"
        slack_client.chat_postMessage.assert_not_called()

    def test_in_progress_transition(self, player, guild_factory, narrator):
        guild_factory("Backenders", "C1", [player], components=["Backend"])
        payload = make_payload(
            status={"name": "In Progress"},
            changelog={"items": [{"field": "status", "fromString": "To Do", "toString": "In Progress"}]},
        )
        result = _run(payload)
        assert result.award["xp"] == 15
        assert _alice().total_tickets == 0
        assert Story.objects.get().status == "In Progress"

    def test_home_is_refreshed(self, player, narrator, slack_client):
        result = _run(make_payload())
        assert result.home_refreshed
        assert slack_client.views_publish.call_args.kwargs["user_id"] == "U_ALICE"

    def test_inactive_guild_not_matched(self, player, guild_factory, narrator, slack_client):
        guild = guild_factory("Backenders", "C1", [player], components=["Backend"])
        guild_factory("Anything", "C9", [player], components=["Elsewhere"])
        Guild.objects.filter(pk=guild.pk).update(is_active=False)
        result = _run(make_payload())
        assert result.guild_ids == []
        assert _posted_channels(slack_client) == ["U_ALICE"]

    def test_story_records_only_guilds_posted_to(self, player, guild_factory, narrator, slack_client):
        guild_factory("UI Guild", "C1", [player], components=["UI"])
        g2 = guild_factory("Frontend Guild", "C2", [player], labels=["frontend"])

        def post(channel, **kwargs):
            if channel == "C1":
                raise SlackApiError("failed", {"ok": False, "error": "not_in_channel"})
            return {"ok": True, "ts": "1700000000.000200"}

        slack_client.chat_postMessage.side_effect = post
        result = _run(make_payload(components=[{"name": "UI"}], labels=["frontend"]))
        assert result.delivery.channels == ["C2"]
        assert Story.objects.get().guild_ids == [g2.pk]

    def test_failed_channel_post_records_no_guild(self, player, guild_factory, narrator, slack_client):
        guild_factory("Backenders", "C1", [player], components=["Backend"])
        slack_client.chat_postMessage.side_effect = [
            SlackApiError("failed", {"ok": False, "error": "channel_not_found"}),
            {"ok": True, "ts": "1700000000.000300"},
        ]
        result = _run(make_payload())
        assert result.delivery.dm_sent
        assert Story.objects.get().guild_ids == []

    def test_dm_delivery_records_no_guild(self, player, guild_factory, narrator):
        guild_factory("Frontenders", "C1", [player], components=["UI"])
        _run(make_payload())
        assert Story.objects.get().guild_ids == []


class TestTask:
    def test_success(self, player, narrator):
        result = process_issue_event(make_payload())
        assert result["ok"]
        assert result["issue_key"] == "ISSUE-1"
        assert result["player_key"] == "alice"

    def test_unparseable_payload(self):
        assert process_issue_event({"issue": {}})["ok"] is False

    def test_pipeline_error_is_logged_not_raised(self, caplog):
        with patch("rpg.tasks.run_pipeline", side_effect=RuntimeError("db down")):
            result = process_issue_event(make_payload())
        assert result == {"ok": False, "issue_key": "ISSUE-1"}
        assert "ISSUE-1" in caplog.text

    def test_signed_webhook_runs_pipeline(self, client, player, narrator, settings):
        body = json.dumps(make_payload()).encode()
        ts = str(int(time.time()))
        base = b"v0:" + ts.encode() + b":" + body
        signature = "v0=" + hmac.new(settings.SLACK_SIGNING_SECRET.encode(), base, hashlib.sha256).hexdigest()

        for _ in range(2):
            response = client.post(
                reverse("rpg:jira_webhook"),
                data=body,
                content_type="application/json",
                HTTP_X_BARD_REQUEST_TIMESTAMP=ts,
                HTTP_X_BARD_SIGNATURE=signature,
            )
            assert response.status_code == 200

        assert Story.objects.count() == 1
        assert _alice().xp == 200
