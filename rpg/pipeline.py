"""The issue-event pipeline: player, XP, guilds, story, delivery, home."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from slack_sdk import WebClient

from rpg.ai.narrator import build_ticket_snapshot, check_model_health, fallback_narrative, generate_narrative
from rpg.delivery import DeliveryResult, deliver_story
from rpg.events import IssueEvent
from rpg.guilds import get_guilds_for_player, match_guilds, update_guild_stats
from rpg.home import refresh_home
from rpg.models import Guild, Story
from rpg.players import apply_award, resolve_player
from rpg.progression import calculate_award
from rpg.stories import get_story_by_ticket_and_status, save_story

logger = logging.getLogger("rpg.pipeline")

UNKNOWN_STATUS = "Unknown"


@dataclass
class PipelineResult:
    issue_key: str
    player_key: str
    award: dict
    level_up: dict | None = None
    story_id: int | None = None
    story_created: bool = False
    narrative_source: str = ""
    guild_ids: list[int] = field(default_factory=list)
    delivery: DeliveryResult = field(default_factory=DeliveryResult)
    home_refreshed: bool = False

    def to_dict(self) -> dict:
        return {
            "issue_key": self.issue_key,
            "player_key": self.player_key,
            "award": self.award,
            "level_up": self.level_up,
            "story_id": self.story_id,
            "story_created": self.story_created,
            "narrative_source": self.narrative_source,
            "guild_ids": list(self.guild_ids),
            "delivery": self.delivery.to_dict(),
            "home_refreshed": self.home_refreshed,
        }


def record_delivered_guilds(story: Story, guilds: list[Guild], delivery: DeliveryResult) -> list[int]:
    """Add the guilds whose channel received *story* to ``story.guild_ids``."""
    posted = [g.pk for g in guilds if g.slack_channel_id in delivery.channels]
    new_ids = [pk for pk in posted if pk not in story.guild_ids]
    if new_ids:
        story.guild_ids = [*story.guild_ids, *new_ids]
        story.save(update_fields=["guild_ids"])
    return story.guild_ids


def run_pipeline(event: IssueEvent, client: WebClient | None = None) -> PipelineResult:
    """Drive one normalized issue event through every stage.

    XP is committed before any narrative is generated, and the story is
    stored before anything is posted. A story that already exists for the
    same (player, issue, status) is reused instead of regenerated.
    """
    player = resolve_player(event.actor)

    award = calculate_award(event)
    player, level_up = apply_award(player, award)
    for guild in get_guilds_for_player(player):
        update_guild_stats(guild)

    guilds = match_guilds(event, player)
    status = event.to_status or event.status or UNKNOWN_STATUS

    story = get_story_by_ticket_and_status(player, event.issue_key, status)
    created = False
    if story is None:
        snapshot = build_ticket_snapshot(event)
        if check_model_health():
            narrative = generate_narrative(snapshot)
        else:
            logger.warning("Model service unavailable, using fallback narrative for %s", event.issue_key)
            narrative = fallback_narrative(snapshot)
        story, created = save_story(
            player,
            event.issue_key,
            status,
            narrative.text,
            loot=narrative.loot,
            achievement=narrative.achievement,
            source=narrative.source,
            ticket_snapshot=snapshot,
            xp_award=award.to_dict(),
        )
    else:
        logger.info("Reusing stored story %s for %s [%s]", story.pk, event.issue_key, status)

    delivery = deliver_story(
        story,
        player,
        guilds,
        level_up=level_up,
        duplicate=not created,
        client=client,
    )
    record_delivered_guilds(story, guilds, delivery)
    home_refreshed = refresh_home(player)

    logger.info(
        "Processed %s [%s] for %s: +%d XP, story %s, delivery %s",
        event.issue_key, status, player.pk, award.xp, story.pk,
        delivery.skip_reason or delivery.reason,
    )
    return PipelineResult(
        issue_key=event.issue_key,
        player_key=player.pk,
        award=award.to_dict(),
        level_up=level_up.to_dict() if level_up else None,
        story_id=story.pk,
        story_created=created,
        narrative_source=story.source,
        guild_ids=[g.pk for g in guilds],
        delivery=delivery,
        home_refreshed=home_refreshed,
    )
