"""Slack Bolt application with slash commands, App Home, and direct-message listeners."""

import logging

from django.conf import settings
from slack_bolt import App
from slack_bolt.adapter.django import SlackRequestHandler
from slack_sdk.errors import SlackApiError

from integrations.slack_format import format_error_message
from rpg.commands import (
    lazy_guild,
    lazy_guild_stats,
    lazy_help,
    lazy_join,
    lazy_leaderboard,
    lazy_leave,
    lazy_register,
    lazy_status,
    lazy_teams,
)
from rpg.conversation import build_reply, seen_message
from rpg.home import publish_home_for_user

logger = logging.getLogger("rpg.slack")

app = App(
    token=settings.SLACK_BOT_TOKEN,
    signing_secret=settings.SLACK_SIGNING_SECRET,
    process_before_response=True,
)


# ---------------------------------------------------------------------------
# Lazy listeners (ack immediately, work after the response)
# ---------------------------------------------------------------------------


def ack_event(ack):
    ack()


def lazy_home_opened(event, client):
    if event.get("tab", "home") != "home":
        return
    user_id = event["user"]
    try:
        publish_home_for_user(user_id, client=client)
    except SlackApiError as exc:
        logger.warning("Could not publish home for %s: %s", user_id, exc.response.get("error"))


app.event("app_home_opened")(ack=ack_event, lazy=[lazy_home_opened])


def lazy_direct_message(event, say):
    if event.get("channel_type") != "im" or event.get("bot_id") or event.get("subtype"):
        return
    user_id = event.get("user")
    if not user_id or seen_message(user_id, event.get("ts", "")):
        return

    try:
        blocks = build_reply(user_id, event.get("text", ""))
    except Exception:
        logger.exception("Failed to answer DM from %s", user_id)
        blocks = format_error_message("Something went wrong on my side. Please try again in a moment.")

    try:
        say(blocks=blocks, text="A message from the Backlog Bard")
    except SlackApiError as exc:
        logger.error("Could not reply to %s: %s", user_id, exc.response.get("error"))


app.event("message")(ack=ack_event, lazy=[lazy_direct_message])


# ---------------------------------------------------------------------------
# Slash commands (handlers live in rpg.commands)
# ---------------------------------------------------------------------------


def ack_command(ack):
    ack()


app.command("/rpg-help")(ack=ack_command, lazy=[lazy_help])
app.command("/rpg-status")(ack=ack_command, lazy=[lazy_status])
app.command("/rpg-register")(ack=ack_command, lazy=[lazy_register])
app.command("/rpg-leaderboard")(ack=ack_command, lazy=[lazy_leaderboard])
app.command("/rpg-teams")(ack=ack_command, lazy=[lazy_teams])
app.command("/rpg-join")(ack=ack_command, lazy=[lazy_join])
app.command("/rpg-leave")(ack=ack_command, lazy=[lazy_leave])
app.command("/rpg-guild-stats")(ack=ack_command, lazy=[lazy_guild_stats])
app.command("/rpg-guild")(ack=ack_command, lazy=[lazy_guild])


handler = SlackRequestHandler(app)
