"""Guild management and issue-to-guild matching."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Avg, Count, Sum

from integrations.slack import channel_error_message, validate_channel
from rpg.events import IssueEvent
from rpg.home import refresh_home
from rpg.models import Guild, GuildMembership, Player

logger = logging.getLogger("rpg.guilds")

MAX_NAME_LENGTH = 100


class GuildError(Exception):
    """Raised when a guild operation would break a guild rule."""


def _refresh_after_commit(*players: Player) -> None:
    for player in players:
        if player is not None and player.slack_user_id:
            transaction.on_commit(lambda p=player: refresh_home(p))


def _clean_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise GuildError("Guild name cannot be empty.")
    if len(name) > MAX_NAME_LENGTH:
        raise GuildError(f"Guild name must be at most {MAX_NAME_LENGTH} characters.")
    return name


def _clean_keys(values: Iterable[str] | None) -> list[str]:
    keys: list[str] = []
    for value in values or []:
        value = str(value).strip()
        if value and value not in keys:
            keys.append(value)
    return keys


def _name_taken(name: str, exclude_pk: int | None = None) -> bool:
    qs = Guild.objects.filter(is_active=True, name__iexact=name)
    if exclude_pk is not None:
        qs = qs.exclude(pk=exclude_pk)
    return qs.exists()


def _require_registered(player: Player) -> None:
    if not player.slack_user_id:
        raise GuildError("You need to register before joining guilds.")


def _require_leader(guild: Guild, player: Player) -> None:
    if guild.leader_id != player.pk:
        raise GuildError(f"Only the leader of {guild.name} can do that.")


def get_guild_by_name(name: str) -> Guild | None:
    return Guild.objects.filter(is_active=True, name__iexact=(name or "").strip()).first()


def get_guild_by_channel(channel_id: str) -> Guild | None:
    return Guild.objects.filter(is_active=True, slack_channel_id=channel_id).first()


def _get_active(name: str, *, lock: bool = False) -> Guild:
    qs = Guild.objects.filter(is_active=True, name__iexact=(name or "").strip())
    if lock:
        qs = qs.select_for_update()
    guild = qs.first()
    if guild is None:
        raise GuildError(f"No active guild named '{name}'.")
    return guild


def get_guilds_for_player(player: Player) -> list[Guild]:
    return list(player.guilds.filter(is_active=True).order_by("name"))


def is_member(guild: Guild, player: Player) -> bool:
    return GuildMembership.objects.filter(guild=guild, player=player).exists()


def update_guild_stats(guild: Guild) -> Guild:
    """Recompute the aggregate stats of *guild* from its members."""
    stats = guild.members.aggregate(
        total_xp=Sum("xp"),
        average_level=Avg("level"),
        total_tickets=Sum("total_tickets"),
        active_members=Count("pk"),
    )
    guild.total_xp = stats["total_xp"] or 0
    guild.average_level = round(stats["average_level"] or 1.0, 1)
    guild.total_tickets = stats["total_tickets"] or 0
    guild.active_members = stats["active_members"] or 0
    guild.save(update_fields=["total_xp", "average_level", "total_tickets", "active_members"])
    return guild


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


def create_guild(
    leader: Player,
    name: str,
    channel_id: str,
    *,
    description: str = "",
    components: Iterable[str] | None = None,
    labels: Iterable[str] | None = None,
    project_key: str = "",
    max_members: int | None = None,
) -> Guild:
    """Create a guild led by *leader* and bound to a Slack channel.

    A deactivated guild that still owns the channel is revived in place.

    Raises:
        GuildError: If the leader is unregistered, the channel is unusable
            or already bound, or the name is taken.
    """
    _require_registered(leader)
    name = _clean_name(name)

    check = validate_channel(channel_id)
    if not check.is_valid:
        raise GuildError(check.message)
    if not check.bot_is_member:
        raise GuildError(channel_error_message("not_in_channel"))

    fields = {
        "name": name,
        "slack_channel_name": check.name,
        "description": (description or "").strip(),
        "leader": leader,
        "jira_components": _clean_keys(components),
        "jira_labels": _clean_keys(labels),
        "project_key": (project_key or "").strip(),
        "is_active": True,
        "max_members": max_members or settings.GUILD_MAX_MEMBERS,
        "created_by": leader,
    }

    try:
        with transaction.atomic():
            bound = Guild.objects.select_for_update().filter(slack_channel_id=channel_id).first()
            if bound is not None and bound.is_active:
                raise GuildError(f"<#{channel_id}> already belongs to the guild {bound.name}.")
            if _name_taken(name):
                raise GuildError(f"The guild name '{name}' is already taken.")

            if bound is not None:
                guild = bound
                for attr, value in fields.items():
                    setattr(guild, attr, value)
                guild.save()
                guild.memberships.all().delete()
            else:
                guild = Guild.objects.create(slack_channel_id=channel_id, **fields)
            GuildMembership.objects.create(guild=guild, player=leader, role=GuildMembership.LEADER)
            update_guild_stats(guild)
    except IntegrityError as exc:
        raise GuildError("That guild name or channel is already in use.") from exc

    logger.info("Guild %s created by %s in channel %s", guild.name, leader.pk, channel_id)
    _refresh_after_commit(leader)
    return guild


def join_guild(player: Player, guild_name: str) -> Guild:
    _require_registered(player)
    with transaction.atomic():
        guild = _get_active(guild_name, lock=True)
        if is_member(guild, player):
            raise GuildError(f"You are already a member of {guild.name}.")
        if not guild.allow_auto_join:
            raise GuildError(f"{guild.name} is not accepting new members.")
        if guild.memberships.count() >= guild.max_members:
            raise GuildError(f"{guild.name} is full ({guild.max_members} members).")
        GuildMembership.objects.create(guild=guild, player=player, role=GuildMembership.MEMBER)
        update_guild_stats(guild)

    logger.info("%s joined guild %s", player.pk, guild.name)
    _refresh_after_commit(player)
    return guild


def leave_guild(player: Player, guild_name: str) -> Guild:
    """Remove *player* from a guild.

    A leader may only leave once leadership has been transferred, unless
    they are the last member, in which case the guild is deactivated.
    """
    with transaction.atomic():
        guild = _get_active(guild_name, lock=True)
        membership = GuildMembership.objects.filter(guild=guild, player=player).first()
        if membership is None:
            raise GuildError(f"You are not a member of {guild.name}.")

        others = guild.memberships.exclude(player=player).count()
        if guild.leader_id == player.pk:
            if others:
                raise GuildError(
                    f"You lead {guild.name}. Transfer leadership to another member before leaving."
                )
            guild.memberships.all().delete()
            guild.is_active = False
            guild.leader = None
            guild.save(update_fields=["is_active", "leader"])
            logger.info("Guild %s deactivated after its last member left", guild.name)
        else:
            membership.delete()
        update_guild_stats(guild)

    _refresh_after_commit(player)
    return guild


def transfer_leadership(leader: Player, guild_name: str, new_leader: Player) -> Guild:
    with transaction.atomic():
        guild = _get_active(guild_name, lock=True)
        _require_leader(guild, leader)
        if new_leader.pk == leader.pk:
            raise GuildError("You already lead this guild.")
        target = GuildMembership.objects.filter(guild=guild, player=new_leader).first()
        if target is None:
            raise GuildError(f"{new_leader.display_name or new_leader.pk} is not a member of {guild.name}.")

        GuildMembership.objects.filter(guild=guild, player=leader).update(role=GuildMembership.MEMBER)
        target.role = GuildMembership.LEADER
        target.save(update_fields=["role"])
        guild.leader = new_leader
        guild.save(update_fields=["leader"])

    logger.info("Leadership of %s passed from %s to %s", guild.name, leader.pk, new_leader.pk)
    _refresh_after_commit(leader, new_leader)
    return guild


def kick_member(leader: Player, guild_name: str, target: Player) -> Guild:
    with transaction.atomic():
        guild = _get_active(guild_name, lock=True)
        _require_leader(guild, leader)
        if target.pk == leader.pk:
            raise GuildError("You cannot kick yourself. Transfer leadership or leave instead.")
        deleted, _ = GuildMembership.objects.filter(guild=guild, player=target).delete()
        if not deleted:
            raise GuildError(f"{target.display_name or target.pk} is not a member of {guild.name}.")
        update_guild_stats(guild)

    logger.info("%s kicked %s from %s", leader.pk, target.pk, guild.name)
    _refresh_after_commit(target)
    return guild


def rename_guild(leader: Player, guild_name: str, new_name: str) -> Guild:
    new_name = _clean_name(new_name)
    try:
        with transaction.atomic():
            guild = _get_active(guild_name, lock=True)
            _require_leader(guild, leader)
            if _name_taken(new_name, exclude_pk=guild.pk):
                raise GuildError(f"The guild name '{new_name}' is already taken.")
            old_name = guild.name
            guild.name = new_name
            guild.save(update_fields=["name"])
    except IntegrityError as exc:
        raise GuildError(f"The guild name '{new_name}' is already taken.") from exc

    logger.info("Guild %s renamed to %s", old_name, new_name)
    _refresh_after_commit(*guild.members.all())
    return guild


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


def find_guilds_for_issue(components: Iterable[str], labels: Iterable[str]) -> list[Guild]:
    """Return active guilds sharing a component or a label with an issue."""
    components = set(components or [])
    labels = set(labels or [])
    if not components and not labels:
        return []
    return [
        guild
        for guild in Guild.objects.filter(is_active=True).order_by("pk")
        if components & set(guild.jira_components or []) or labels & set(guild.jira_labels or [])
    ]


def match_guilds(event: IssueEvent, player: Player) -> list[Guild]:
    """Return the guilds a story about *event* should be posted to.

    Only guilds *player* belongs to qualify, and each channel appears once.
    """
    member_of = set(GuildMembership.objects.filter(player=player).values_list("guild_id", flat=True))
    targets: list[Guild] = []
    channels: set[str] = set()
    for guild in find_guilds_for_issue(event.components, event.labels):
        if guild.pk not in member_of or guild.slack_channel_id in channels:
            continue
        channels.add(guild.slack_channel_id)
        targets.append(guild)
    return targets
