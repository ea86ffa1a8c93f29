"""Routing of stored stories to guild channels or direct messages."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from django.conf import settings
from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError

from integrations.slack import get_client, post_blocks
from integrations.slack_format import format_personal_story, format_team_story, story_fallback_text
from rpg.models import Guild, GuildMembership, Player, Story
from rpg.progression import LevelUp

logger = logging.getLogger("rpg.delivery")

NO_GUILD_MEMBERSHIP = "no_guild_membership"
DUPLICATE_DELIVERY = "duplicate_delivery"
NO_CHAT_USER = "no_chat_user"
DM_FALLBACK = "dm_fallback"
GUILD_CHANNELS = "guild_channels"

REDELIVERY_SUPPRESS = "suppress"
REDELIVERY_REPOST = "repost"


@dataclass
class DeliveryResult:
    channels: list[str] = field(default_factory=list)
    dm_sent: bool = False
    reason: str | None = None
    skip_reason: str | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def delivered(self) -> bool:
        return bool(self.channels) or self.dm_sent

    def to_dict(self) -> dict:
        return {
            "channels": list(self.channels),
            "dm_sent": self.dm_sent,
            "reason": self.reason,
            "skip_reason": self.skip_reason,
            "errors": list(self.errors),
        }


def _error_code(exc: Exception) -> str:
    if isinstance(exc, SlackApiError):
        return exc.response.get("error") or str(exc)
    return str(exc) or exc.__class__.__name__


def _send_dm(
    story: Story,
    player: Player,
    level_up: LevelUp | None,
    client: WebClient,
    result: DeliveryResult,
) -> None:
    if not player.slack_user_id:
        result.errors.append(f"dm:{NO_CHAT_USER}")
        return
    try:
        post_blocks(
            player.slack_user_id,
            story_fallback_text(story),
            format_personal_story(story, level_up),
            client=client,
        )
    except (SlackApiError, OSError) as exc:
        logger.error("DM of %s to %s failed: %s", story.issue_key, player.slack_user_id, _error_code(exc))
        result.errors.append(f"dm:{_error_code(exc)}")
        return
    result.dm_sent = True


def deliver_story(
    story: Story,
    player: Player,
    guilds: list[Guild],
    *,
    level_up: LevelUp | None = None,
    duplicate: bool = False,
    client: WebClient | None = None,
) -> DeliveryResult:
    """Post *story* where it belongs.

    Rules, first match wins:

    1. The player is in no guild: nothing is posted.
    2. The story was already delivered and re-delivery is suppressed.
    3. Matched guilds: one team post per channel, no DM. A failed channel
       post falls back to a single DM attempt.
    4. No matched guild: the player gets the personal story as a DM.

    Post failures are recorded on the result and never raised.
    """
    result = DeliveryResult()

    if not GuildMembership.objects.filter(player=player, guild__is_active=True).exists():
        result.skip_reason = NO_GUILD_MEMBERSHIP
        logger.info("Skipping delivery of %s: %s is in no guild", story.issue_key, player.pk)
        return result

    if duplicate and settings.RPG_REDELIVERY_POLICY != REDELIVERY_REPOST:
        result.skip_reason = DUPLICATE_DELIVERY
        logger.info("Skipping re-delivery of %s [%s] for %s", story.issue_key, story.status, player.pk)
        return result

    client = client or get_client()

    if not guilds:
        result.reason = DM_FALLBACK
        if not player.slack_user_id:
            result.skip_reason = NO_CHAT_USER
            logger.info("No Slack user bound to %s, story %s not sent", player.pk, story.issue_key)
            return result
        _send_dm(story, player, level_up, client, result)
        return result

    result.reason = GUILD_CHANNELS
    hero = player.display_name or player.pk
    dm_attempted = False
    seen: set[str] = set()
    for guild in guilds:
        channel = guild.slack_channel_id
        if channel in seen:
            continue
        seen.add(channel)
        try:
            post_blocks(
                channel,
                story_fallback_text(story),
                format_team_story(story, guild.name, hero, level_up),
                client=client,
            )
        except (SlackApiError, OSError) as exc:
            logger.error("Team post of %s to %s failed: %s", story.issue_key, channel, _error_code(exc))
            result.errors.append(f"{channel}:{_error_code(exc)}")
            if not dm_attempted:
                dm_attempted = True
                _send_dm(story, player, level_up, client, result)
            continue
        result.channels.append(channel)

    return result
