"""Direct-message handling: redelivery dedup, registration, and story recall."""

from __future__ import annotations

import logging
import re

from django.conf import settings
from django.core.cache import cache

from integrations.jira import JiraAPIError, fetch_done_issues
from integrations.slack_format import (
    format_error_message,
    format_registration_hint,
    format_registration_result,
    format_story_recall,
)
from rpg.players import RegistrationError, get_player_by_slack_id, register_player
from rpg.stories import get_stories_by_player

logger = logging.getLogger("rpg.conversation")

DEFAULT_RECALL_COUNT = 3
MAX_RECALL_COUNT = 10

REGISTER_RE = re.compile(r"^\s*register\s+(\S+)\s*$", re.IGNORECASE)
COUNT_RE = re.compile(r"\b(\d{1,3})\b")

WORD_NUMBERS = {
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5,
    "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10,
    "couple": 2, "few": 3, "several": 5,
}


def seen_message(user_id: str, ts: str) -> bool:
    """Return ``True`` if this (user, message ts) pair was already handled.

    The first call for a pair records it for ``CHAT_DEDUP_TTL`` seconds.
    """
    key = f"slack-msg:{user_id}-{ts}"
    return not cache.add(key, True, timeout=settings.CHAT_DEDUP_TTL)


def parse_requested_count(text: str) -> int:
    """Pull a story count out of a message like "show my last 5 stories"."""
    text = (text or "").lower()
    match = COUNT_RE.search(text)
    if match:
        count = int(match.group(1))
    else:
        count = next((n for word, n in WORD_NUMBERS.items() if re.search(rf"\b{word}\b", text)), DEFAULT_RECALL_COUNT)
    return max(1, min(count, MAX_RECALL_COUNT))


def build_reply(slack_user_id: str, text: str) -> list[dict]:
    """Return the Block Kit reply to a direct message."""
    match = REGISTER_RE.match(text or "")
    if match:
        try:
            player = register_player(slack_user_id, match.group(1))
        except RegistrationError as exc:
            return format_error_message(str(exc))
        return format_registration_result(player)

    player = get_player_by_slack_id(slack_user_id)
    if player is None:
        return format_registration_hint()

    count = parse_requested_count(text)
    stories = get_stories_by_player(player, count)

    done_issues: list[dict] = []
    if len(stories) < count:
        told = {s.issue_key for s in stories}
        try:
            issues = fetch_done_issues(count, assignee=player.tracker_account_id or player.pk)
        except JiraAPIError as exc:
            logger.warning("JIRA lookup for %s failed: %s", player.pk, exc)
        else:
            done_issues = [i for i in issues if i["key"] not in told][: count - len(stories)]

    return format_story_recall(stories, done_issues)
