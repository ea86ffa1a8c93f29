"""App Home dashboard rendering and publishing."""

from __future__ import annotations

import logging

from slack_sdk.errors import SlackApiError

from integrations.slack import publish_home
from integrations.slack_format import format_home_view, format_welcome_view
from rpg.models import Player
from rpg.stories import get_stories_by_player

logger = logging.getLogger("rpg.home")

HOME_STORY_COUNT = 3


def build_home_view(player: Player | None) -> dict:
    if player is None:
        return format_welcome_view()
    guilds = list(player.guilds.filter(is_active=True).order_by("name"))
    stories = get_stories_by_player(player, HOME_STORY_COUNT)
    return format_home_view(player, guilds, stories)


def refresh_home(player: Player) -> bool:
    """Re-publish *player*'s App Home if they have a Slack user.

    Failures are logged and reported as ``False``; they never propagate.
    """
    if not player.slack_user_id:
        return False
    try:
        player.refresh_from_db()
        publish_home(player.slack_user_id, build_home_view(player))
    except SlackApiError as exc:
        logger.warning("Home refresh failed for %s: %s", player.slack_user_id, exc.response.get("error"))
        return False
    except Exception:
        logger.exception("Unexpected error refreshing home for %s", player.pk)
        return False
    return True


def publish_home_for_user(slack_user_id: str, client=None) -> None:
    """Publish the dashboard or the welcome view for a Slack user.

    Raises:
        SlackApiError: If Slack rejects the view.
    """
    player = Player.objects.filter(slack_user_id=slack_user_id).first()
    publish_home(slack_user_id, build_home_view(player), client=client)
