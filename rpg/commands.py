"""Slash command handlers for player status and guild management.

Every handler is a Bolt lazy listener taking ``(respond, command)`` and
answering with an ephemeral Block Kit reply. Guild commands are accepted
from the guild's own channel or from a direct message with the bot.
"""

from __future__ import annotations

import logging
import re

from integrations.slack_format import (
    format_command_help,
    format_error_message,
    format_guild_list,
    format_guild_result,
    format_guild_stats,
    format_leaderboard,
    format_registration_hint,
    format_registration_result,
    format_status,
)
from rpg.guilds import (
    GuildError,
    create_guild,
    get_guild_by_channel,
    get_guild_by_name,
    get_guilds_for_player,
    join_guild,
    kick_member,
    leave_guild,
    rename_guild,
    transfer_leadership,
    update_guild_stats,
)
from rpg.models import Guild, Player
from rpg.players import RegistrationError, get_player_by_slack_id, register_player
from rpg.stories import get_stories_by_player

logger = logging.getLogger("rpg.commands")

LEADERBOARD_SIZE = 10
USER_MENTION_RE = re.compile(r"^<@([^>|]+)(?:\|[^>]*)?>$")
OPTION_NAMES = ("components", "labels")


class CommandError(Exception):
    """Raised when a command is malformed or used in the wrong place."""


class NotRegistered(CommandError):
    pass


def is_direct_message(command: dict) -> bool:
    return command.get("channel_name") == "directmessage" or command.get("channel_id", "").startswith("D")


def split_mentions(text: str) -> tuple[list[str], list[str]]:
    """Split command text into plain words and mentioned Slack user ids."""
    words: list[str] = []
    mentions: list[str] = []
    for token in (text or "").split():
        match = USER_MENTION_RE.match(token)
        if match:
            mentions.append(match.group(1))
        else:
            words.append(token)
    return words, mentions


def parse_create_args(words: list[str]) -> tuple[str, dict[str, list[str]]]:
    """Split ``create`` arguments into the guild name and its match keys.

    ``components=UI,Web`` and ``labels=frontend`` may appear anywhere; the
    remaining words form the name.
    """
    name_words: list[str] = []
    options: dict[str, list[str]] = {key: [] for key in OPTION_NAMES}
    for word in words:
        key, sep, value = word.partition("=")
        if sep and key.lower() in options:
            options[key.lower()].extend(v for v in value.split(",") if v.strip())
        else:
            name_words.append(word)
    return " ".join(name_words), options


def _require_player(command: dict) -> Player:
    player = get_player_by_slack_id(command["user_id"])
    if player is None:
        raise NotRegistered()
    return player


def _mentioned_player(slack_user_id: str) -> Player:
    player = get_player_by_slack_id(slack_user_id)
    if player is None:
        raise CommandError(f"<@{slack_user_id}> has not registered yet.")
    return player


def resolve_command_guild(command: dict, name: str = "") -> Guild:
    """Return the guild a command targets, enforcing where it may be run.

    A named guild is looked up by name; otherwise the guild bound to the
    current channel is used. Outside a DM the guild must own the channel.

    Raises:
        CommandError: If no guild is found or the channel is the wrong one.
    """
    channel_id = command.get("channel_id", "")
    in_dm = is_direct_message(command)
    if name:
        guild = get_guild_by_name(name)
        if guild is None:
            raise CommandError(f"No active guild named '{name}'.")
    elif in_dm:
        raise CommandError("Which guild? Add its name after the command.")
    else:
        guild = get_guild_by_channel(channel_id)
        if guild is None:
            raise CommandError("This channel has no guild. Name one, or run `/rpg-teams` to list them.")
    if not in_dm and guild.slack_channel_id != channel_id:
        raise CommandError(f"Run this in <#{guild.slack_channel_id}> or in a DM with me.")
    return guild


def _reply(respond, command: dict, build) -> None:
    user_id = command.get("user_id")
    try:
        blocks = build(command)
    except NotRegistered:
        blocks = format_registration_hint()
    except (CommandError, GuildError, RegistrationError) as exc:
        logger.info("Command %s from %s refused: %s", command.get("command"), user_id, exc)
        blocks = format_error_message(str(exc))
    respond(blocks=blocks)


# ---------------------------------------------------------------------------
# Player commands
# ---------------------------------------------------------------------------


def _status(command: dict) -> list[dict]:
    player = _require_player(command)
    recent = get_stories_by_player(player, 1)
    return format_status(player, get_guilds_for_player(player), recent[0] if recent else None)


def _register(command: dict) -> list[dict]:
    words = (command.get("text") or "").split()
    if len(words) != 1:
        raise CommandError("Usage: `/rpg-register <jira-username>`")
    return format_registration_result(register_player(command["user_id"], words[0]))


def _leaderboard(command: dict) -> list[dict]:
    players = Player.objects.filter(slack_user_id__isnull=False).order_by("-xp", "key")[:LEADERBOARD_SIZE]
    return format_leaderboard(list(players))


def _teams(command: dict) -> list[dict]:
    return format_guild_list(list(Guild.objects.filter(is_active=True).order_by("name")))


def lazy_help(respond, command):
    respond(blocks=format_command_help())


def lazy_status(respond, command):
    _reply(respond, command, _status)


def lazy_register(respond, command):
    _reply(respond, command, _register)


def lazy_leaderboard(respond, command):
    _reply(respond, command, _leaderboard)


def lazy_teams(respond, command):
    _reply(respond, command, _teams)


# ---------------------------------------------------------------------------
# Guild membership
# ---------------------------------------------------------------------------


def _join(command: dict) -> list[dict]:
    player = _require_player(command)
    guild = resolve_command_guild(command, (command.get("text") or "").strip())
    join_guild(player, guild.name)
    return format_guild_result(
        f"Welcome to *{guild.name}*! Your quests will now be sung in <#{guild.slack_channel_id}>."
    )


def _leave(command: dict) -> list[dict]:
    player = _require_player(command)
    guild = resolve_command_guild(command, (command.get("text") or "").strip())
    guild = leave_guild(player, guild.name)
    if not guild.is_active:
        return format_guild_result(f"You left *{guild.name}*. It has no members left and is now disbanded.")
    return format_guild_result(f"You left *{guild.name}*.")


def _guild_stats(command: dict) -> list[dict]:
    guild = resolve_command_guild(command, (command.get("text") or "").strip())
    guild = update_guild_stats(guild)
    return format_guild_stats(guild, list(guild.members.order_by("-xp", "key")))


def lazy_join(respond, command):
    _reply(respond, command, _join)


def lazy_leave(respond, command):
    _reply(respond, command, _leave)


def lazy_guild_stats(respond, command):
    _reply(respond, command, _guild_stats)


# ---------------------------------------------------------------------------
# Guild administration: /rpg-guild <create|transfer|kick|rename> ...
# ---------------------------------------------------------------------------


def _create(command: dict, words: list[str], mentions: list[str]) -> list[dict]:
    if is_direct_message(command):
        raise CommandError("Run `/rpg-guild create` in the channel the guild will use.")
    name, options = parse_create_args(words)
    if not name:
        raise CommandError("Usage: `/rpg-guild create <name> [components=A,B] [labels=x,y]`")
    player = _require_player(command)
    guild = create_guild(
        player,
        name,
        command["channel_id"],
        components=options["components"],
        labels=options["labels"],
    )
    return format_guild_result(
        f"*{guild.name}* is founded in <#{guild.slack_channel_id}> and you are its leader! "
        "Members can join with `/rpg-join`."
    )


def _transfer(command: dict, words: list[str], mentions: list[str]) -> list[dict]:
    if len(mentions) != 1:
        raise CommandError("Usage: `/rpg-guild transfer [guild] @user`")
    player = _require_player(command)
    target = _mentioned_player(mentions[0])
    guild = resolve_command_guild(command, " ".join(words))
    transfer_leadership(player, guild.name, target)
    return format_guild_result(f"<@{mentions[0]}> now leads *{guild.name}*.")


def _kick(command: dict, words: list[str], mentions: list[str]) -> list[dict]:
    if len(mentions) != 1:
        raise CommandError("Usage: `/rpg-guild kick [guild] @user`")
    player = _require_player(command)
    target = _mentioned_player(mentions[0])
    guild = resolve_command_guild(command, " ".join(words))
    kick_member(player, guild.name, target)
    return format_guild_result(f"<@{mentions[0]}> was removed from *{guild.name}*.")


def _rename(command: dict, words: list[str], mentions: list[str]) -> list[dict]:
    if is_direct_message(command):
        raise CommandError("Run `/rpg-guild rename` in the guild's channel.")
    if not words:
        raise CommandError("Usage: `/rpg-guild rename <new name>`")
    player = _require_player(command)
    guild = resolve_command_guild(command)
    old_name = guild.name
    guild = rename_guild(player, old_name, " ".join(words))
    return format_guild_result(f"*{old_name}* is now known as *{guild.name}*.")


GUILD_ACTIONS = {
    "create": _create,
    "transfer": _transfer,
    "kick": _kick,
    "rename": _rename,
}


def _guild(command: dict) -> list[dict]:
    words, mentions = split_mentions(command.get("text") or "")
    action = GUILD_ACTIONS.get(words[0].lower()) if words else None
    if action is None:
        return format_command_help()
    return action(command, words[1:], mentions)


def lazy_guild(respond, command):
    _reply(respond, command, _guild)
