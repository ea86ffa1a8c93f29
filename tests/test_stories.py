"""Tests for rpg.stories: idempotent saves and recent-story recall."""

import pytest

from rpg.models import Story
from rpg.stories import get_stories_by_player, get_story_by_ticket_and_status, save_story

pytestmark = pytest.mark.django_db


class TestSaveStory:
    def test_inserts_new_story(self, player):
        story, created = save_story(player, "ISSUE-1", "Done", "⚔️ Victory!", xp_award={"xp": 80})
        assert created
        assert story.xp_award == {"xp": 80}
        assert Story.objects.count() == 1

    def test_second_save_returns_existing_without_writing(self, player):
        first, _ = save_story(player, "ISSUE-1", "Done", "⚔️ First!")
        second, created = save_story(player, "ISSUE-1", "Done", "⚔️ Second!")
        assert not created
        assert second.pk == first.pk
        assert Story.objects.get(pk=first.pk).narrative == "⚔️ First!"

    def test_other_status_is_a_new_story(self, player):
        save_story(player, "ISSUE-1", "In Progress", "⚔️ Begun!")
        _, created = save_story(player, "ISSUE-1", "Done", "⚔️ Finished!")
        assert created
        assert Story.objects.count() == 2

    def test_other_player_is_a_new_story(self, player, other_player):
        save_story(player, "ISSUE-1", "Done", "⚔️ Alice!")
        _, created = save_story(other_player, "ISSUE-1", "Done", "⚔️ Bob!")
        assert created


class TestLookup:
    def test_exact_lookup(self, player):
        story, _ = save_story(player, "ISSUE-1", "Done", "⚔️ Victory!")
        assert get_story_by_ticket_and_status(player, "ISSUE-1", "Done") == story
        assert get_story_by_ticket_and_status("alice", "ISSUE-1", "Done") == story
        assert get_story_by_ticket_and_status(player, "ISSUE-1", "In Progress") is None


class TestGetStoriesByPlayer:
    def test_latest_status_supersedes_earlier(self, player):
        save_story(player, "ISSUE-1", "In Progress", "⚔️ Begun!")
        save_story(player, "ISSUE-2", "Done", "⚔️ Other!")
        save_story(player, "ISSUE-1", "Done", "⚔️ Finished!")
        stories = get_stories_by_player(player, 5)
        assert [(s.issue_key, s.status) for s in stories] == [("ISSUE-1", "Done"), ("ISSUE-2", "Done")]

    def test_limit(self, player):
        for n in range(6):
            save_story(player, f"ISSUE-{n}", "Done", "⚔️ Story!")
        stories = get_stories_by_player(player, 3)
        assert [s.issue_key for s in stories] == ["ISSUE-5", "ISSUE-4", "ISSUE-3"]

    def test_only_own_stories(self, player, other_player):
        save_story(other_player, "ISSUE-9", "Done", "⚔️ Bob!")
        assert get_stories_by_player(player, 5) == []

    def test_zero_limit(self, player):
        save_story(player, "ISSUE-1", "Done", "⚔️ Story!")
        assert get_stories_by_player(player, 0) == []
