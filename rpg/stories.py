"""Story persistence keyed on (player, issue, status)."""

from __future__ import annotations

import logging

from django.db import IntegrityError, transaction

from rpg.models import Player, Story

logger = logging.getLogger("rpg.stories")


def get_story_by_ticket_and_status(player: Player | str, issue_key: str, status: str) -> Story | None:
    player_key = getattr(player, "pk", player)
    return Story.objects.filter(player_id=player_key, issue_key=issue_key, status=status).first()


def save_story(
    player: Player,
    issue_key: str,
    status: str,
    narrative: str,
    *,
    loot: str = "",
    achievement: str = "",
    source: str = "model",
    ticket_snapshot: dict | None = None,
    xp_award: dict | None = None,
) -> tuple[Story, bool]:
    """Insert a story unless one exists for the same transition.

    Returns:
        A tuple of (story, created). When *created* is ``False`` the stored
        row is returned untouched.
    """
    existing = get_story_by_ticket_and_status(player, issue_key, status)
    if existing is not None:
        return existing, False

    try:
        with transaction.atomic():
            story = Story.objects.create(
                player=player,
                issue_key=issue_key,
                status=status,
                narrative=narrative,
                loot=loot or "",
                achievement=achievement or "",
                source=source,
                ticket_snapshot=ticket_snapshot or {},
                xp_award=xp_award or {},
            )
    except IntegrityError:
        # Lost a race with a concurrent delivery of the same transition.
        story = get_story_by_ticket_and_status(player, issue_key, status)
        if story is None:
            raise
        return story, False

    logger.info("Saved story %s for %s [%s]", story.pk, issue_key, status)
    return story, True


def get_stories_by_player(player: Player | str, limit: int = 5) -> list[Story]:
    """Return up to *limit* recent stories, one per issue.

    Only the newest story of each issue is kept, so a Done story hides the
    In Progress story for the same ticket.
    """
    player_key = getattr(player, "pk", player)
    seen: set[str] = set()
    stories: list[Story] = []
    if limit <= 0:
        return stories
    for story in Story.objects.filter(player_id=player_key).order_by("-created_at", "-id").iterator():
        if story.issue_key in seen:
            continue
        seen.add(story.issue_key)
        stories.append(story)
        if len(stories) >= limit:
            break
    return stories
