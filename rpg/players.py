"""Player lookup, auto-provisioning, registration, and XP bookkeeping."""

from __future__ import annotations

import logging

from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from integrations.jira import JiraAPIError, find_user
from rpg.events import Actor
from rpg.home import refresh_home
from rpg.models import Player
from rpg.progression import LevelUp, XpAward, check_level_up, level_for, title_for

logger = logging.getLogger("rpg.players")


class RegistrationError(Exception):
    """Raised when a Slack user cannot be bound to a JIRA identity."""


def _lookup(actor: Actor) -> Player | None:
    if actor.username:
        player = Player.objects.filter(pk=actor.username).first()
        if player:
            return player
    if actor.account_id:
        player = Player.objects.filter(tracker_account_id=actor.account_id).first()
        if player:
            return player
    if actor.email:
        player = Player.objects.filter(email=actor.email).first()
        if player:
            return player
    if actor.display_name:
        # Two tracker users sharing a display name end up on one player.
        return Player.objects.filter(display_name__iexact=actor.display_name).order_by("created_at").first()
    return None


def _backfill(player: Player, actor: Actor) -> None:
    changed = []
    if actor.account_id and not player.tracker_account_id:
        player.tracker_account_id = actor.account_id
        changed.append("tracker_account_id")
    if actor.email and not player.email:
        player.email = actor.email
        changed.append("email")
    if actor.display_name and not player.display_name:
        player.display_name = actor.display_name
        changed.append("display_name")
    if changed:
        player.save(update_fields=changed)


def resolve_player(actor: Actor) -> Player:
    """Return the player behind a webhook actor, creating one if unknown.

    Lookup runs username, tracker account id, email, then case-insensitive
    display name. A new player is keyed by the first of username, account
    id, or email and is marked ``auto_created``.
    """
    player = _lookup(actor)
    if player is not None:
        _backfill(player, actor)
        return player

    key = actor.username or actor.account_id or actor.email or actor.display_name
    player, created = Player.objects.get_or_create(
        key=key,
        defaults={
            "tracker_account_id": actor.account_id or "",
            "email": actor.email or "",
            "display_name": actor.display_name or "",
            "auto_created": True,
        },
    )
    if created:
        logger.info("Auto-created player %s from webhook actor", key)
    return player


def get_player_by_slack_id(slack_user_id: str) -> Player | None:
    return Player.objects.filter(slack_user_id=slack_user_id).first()


def apply_award(player: Player, award: XpAward) -> tuple[Player, LevelUp | None]:
    """Apply *award* to *player* and recompute level and title.

    XP and counters are incremented in the database so concurrent awards
    add up; level and title are then derived from the stored XP.

    Returns:
        The refreshed player and a ``LevelUp`` when a threshold was crossed.
    """
    updates = {"xp": F("xp") + award.xp, "last_activity": timezone.now()}
    if award.completion:
        updates["total_tickets"] = F("total_tickets") + 1
        if award.bug:
            updates["total_bugs"] = F("total_bugs") + 1

    with transaction.atomic():
        Player.objects.filter(pk=player.pk).update(**updates)
        player.refresh_from_db()
        level = level_for(player.xp)
        title = title_for(level)
        if player.level != level or player.current_title != title:
            Player.objects.filter(pk=player.pk).update(level=level, current_title=title)
            player.level = level
            player.current_title = title

    level_up = check_level_up(player.xp - award.xp, player.xp)
    logger.info(
        "Awarded %d XP to %s (now %d XP, level %d): %s",
        award.xp, player.pk, player.xp, player.level, award.reason,
    )
    return player, level_up


def register_player(slack_user_id: str, username: str) -> Player:
    """Bind a Slack user to the JIRA user *username*.

    An auto-created player for the same JIRA identity is adopted, keeping
    its XP and stories.

    Raises:
        RegistrationError: If the Slack user is already bound elsewhere, the
            JIRA user cannot be found, or the JIRA player belongs to another
            Slack user.
    """
    username = username.strip()
    if not username:
        raise RegistrationError("Please provide your JIRA username.")

    existing = get_player_by_slack_id(slack_user_id)
    if existing is not None:
        if existing.key == username:
            return existing
        raise RegistrationError(f"You are already registered as `{existing.key}`.")

    try:
        jira_user = find_user(username)
    except JiraAPIError as exc:
        logger.error("JIRA user search failed for %s: %s", username, exc)
        raise RegistrationError("Could not reach JIRA to validate your username. Please try again later.") from exc
    if jira_user is None:
        raise RegistrationError(f"No JIRA user named `{username}` was found.")

    actor = Actor(
        username=username,
        account_id=jira_user.get("accountId"),
        email=jira_user.get("emailAddress"),
        display_name=jira_user.get("displayName"),
    )
    player = resolve_player(actor)
    if player.slack_user_id and player.slack_user_id != slack_user_id:
        raise RegistrationError(f"JIRA user `{username}` is already linked to another Slack account.")

    player.slack_user_id = slack_user_id
    player.auto_created = False
    try:
        player.save(update_fields=["slack_user_id", "auto_created"])
    except IntegrityError as exc:
        raise RegistrationError("That Slack account is already registered.") from exc
    logger.info("Registered Slack user %s as player %s", slack_user_id, player.pk)

    transaction.on_commit(lambda: refresh_home(player))
    return player
