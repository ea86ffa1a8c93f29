"""Thin wrappers over the Slack Web API used by the pipeline."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from django.conf import settings
from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError

logger = logging.getLogger("integrations.slack")

CHANNEL_ERROR_MESSAGES = {
    "channel_not_found": "Channel not found. Make sure the channel exists and you've invited the bot.",
    "not_in_channel": "Bot is not a member of this channel. Please invite the bot to the channel first.",
    "invalid_auth": "Bot authentication failed. Please contact an administrator.",
    "missing_scope": "Bot lacks required permissions. Please contact an administrator.",
}


def get_client() -> WebClient:
    return WebClient(token=settings.SLACK_BOT_TOKEN, timeout=settings.SLACK_TIMEOUT)


def post_blocks(channel: str, text: str, blocks: list[dict], client: WebClient | None = None) -> str | None:
    """Post a Block Kit message and return its timestamp.

    A user id works as *channel* for direct messages.

    Raises:
        SlackApiError: If Slack rejects the post.
    """
    client = client or get_client()
    response = client.chat_postMessage(channel=channel, text=text, blocks=blocks)
    return response.get("ts")


def publish_home(user_id: str, view: dict, client: WebClient | None = None) -> None:
    """Publish an App Home view for *user_id*.

    Raises:
        SlackApiError: If Slack rejects the view.
    """
    client = client or get_client()
    client.views_publish(user_id=user_id, view=view)


def get_bot_user_id(client: WebClient | None = None) -> str | None:
    client = client or get_client()
    try:
        return client.auth_test().get("user_id")
    except SlackApiError as exc:
        logger.warning("auth.test failed: %s", exc.response.get("error"))
        return None


def channel_error_message(error_code: str) -> str:
    return CHANNEL_ERROR_MESSAGES.get(error_code, f"Channel validation failed: {error_code}")


@dataclass
class ChannelCheck:
    """Outcome of validating a channel for guild use."""

    is_valid: bool
    channel_id: str = ""
    name: str = ""
    is_private: bool = False
    bot_is_member: bool = False
    error: str = ""
    message: str = ""


def validate_channel(channel_id: str, client: WebClient | None = None) -> ChannelCheck:
    """Look up *channel_id* and check whether the bot has joined it.

    Slack errors are converted into a ``ChannelCheck`` carrying a message fit
    to show the user; nothing is raised.
    """
    client = client or get_client()
    try:
        info = client.conversations_info(channel=channel_id)
    except SlackApiError as exc:
        error = exc.response.get("error", "unknown_error")
        logger.info("Channel %s failed validation: %s", channel_id, error)
        return ChannelCheck(is_valid=False, channel_id=channel_id, error=error, message=channel_error_message(error))

    channel = info.get("channel") or {}
    bot_is_member = False
    try:
        members = client.conversations_members(channel=channel_id).get("members") or []
        bot_id = get_bot_user_id(client)
        bot_is_member = bool(bot_id) and bot_id in members
    except SlackApiError as exc:
        logger.info("Could not list members of %s: %s", channel_id, exc.response.get("error"))

    return ChannelCheck(
        is_valid=True,
        channel_id=channel.get("id", channel_id),
        name=channel.get("name", ""),
        is_private=bool(channel.get("is_private")),
        bot_is_member=bot_is_member,
    )
