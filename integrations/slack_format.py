"""Slack Block Kit message and view formatting helpers."""

from __future__ import annotations

from integrations.jira import browse_url
from rpg.progression import MAX_LEVEL, xp_for_level

PROGRESS_BAR_LENGTH = 10
HOME_NARRATIVE_CHARS = 150


def level_badge(level: int) -> str:
    if level >= 20:
        return "🏆"
    if level >= 15:
        return "💎"
    if level >= 10:
        return "🥇"
    if level >= 5:
        return "🥈"
    return "🥉"


def _section(text: str) -> dict:
    return {"type": "section", "text": {"type": "mrkdwn", "text": text}}


def _context(text: str) -> dict:
    return {"type": "context", "elements": [{"type": "mrkdwn", "text": text}]}


def _xp_line(award: dict) -> str:
    xp = award.get("xp", 0)
    reason = award.get("reason")
    return f"⚡ *XP Gained:* +{xp} XP" + (f" ({reason})" if reason else "")


def format_level_up(level_up) -> dict:
    """Return the celebration block for a ``LevelUp`` record."""
    text = (
        f"🎉 *LEVEL UP!* Level {level_up.old_level} → *Level {level_up.new_level}*\n"
        f"{level_up.old_title} → *{level_up.new_title}*"
    )
    if level_up.xp_to_next:
        text += f"\n{level_up.xp_to_next} XP to the next level"
    return _section(text)


def _loot_blocks(story) -> list[dict]:
    blocks = []
    if story.loot:
        blocks.append(_section(f"🎁 *Loot Acquired:* {story.loot}"))
    if story.achievement:
        blocks.append(_section(f"🏆 *Achievement Unlocked:* {story.achievement}"))
    return blocks


def format_team_story(story, guild_name: str, hero: str, level_up=None) -> list[dict]:
    """Format a story for a guild channel.

    Args:
        story: The stored story (narrative, loot, achievement, xp_award).
        guild_name: Name shown in the header.
        hero: Display name of the player.
        level_up: Optional ``LevelUp`` to celebrate.

    Returns:
        A list of Block Kit block dicts.
    """
    blocks = [
        _section(f"🏰 *{guild_name} Quest Update*"),
        _section(story.narrative),
        _section(_xp_line(story.xp_award or {})),
    ]
    blocks.extend(_loot_blocks(story))
    if level_up is not None:
        blocks.append(format_level_up(level_up))
    blocks.append({"type": "divider"})
    blocks.append(_context(f"👤 *Hero:* {hero} • 📋 *Quest:* <{browse_url(story.issue_key)}|{story.issue_key}>"))
    return blocks


def format_personal_story(story, level_up=None) -> list[dict]:
    """Format a story for a direct message to its player."""
    blocks = [
        _section(story.narrative),
        _section(_xp_line(story.xp_award or {})),
    ]
    blocks.extend(_loot_blocks(story))
    if level_up is not None:
        blocks.append(format_level_up(level_up))
    blocks.append({"type": "divider"})
    blocks.append(_section(f"📋 *JIRA Ticket:* <{browse_url(story.issue_key)}|{story.issue_key}>"))
    return blocks


def story_fallback_text(story) -> str:
    return f"New quest story for {story.issue_key}"


# ---------------------------------------------------------------------------
# App Home
# ---------------------------------------------------------------------------


def progress_bar(xp: int, level: int) -> tuple[str, int, int, int]:
    """Return (bar, percent, progress_xp, required_xp) toward the next level."""
    if level >= MAX_LEVEL:
        return "🟩" * PROGRESS_BAR_LENGTH, 100, 0, 0
    floor = xp_for_level(level)
    required = xp_for_level(level + 1) - floor
    progress = max(0, xp - floor)
    percent = min(round(progress / required * 100), 100) if required else 100
    filled = round(percent / 100 * PROGRESS_BAR_LENGTH)
    return "🟩" * filled + "⬜" * (PROGRESS_BAR_LENGTH - filled), percent, progress, required


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def format_home_view(player, guilds: list, stories: list) -> dict:
    """Build the dashboard view for a registered player.

    The output depends only on its arguments.
    """
    bar, percent, progress, required = progress_bar(player.xp, player.level)
    blocks = [
        {"type": "header", "text": {"type": "plain_text", "text": "🎮 Backlog Bard RPG Dashboard"}},
        _section(
            f"{level_badge(player.level)} *Level {player.level} {player.current_title}*\n"
            f"🌟 {player.xp:,} Total XP • 🎫 {player.total_tickets} quests • 🐛 {player.total_bugs} bugs slain"
        ),
    ]
    if required:
        blocks.append(_section(
            f"📊 *Progress to Level {player.level + 1}*\n{bar} {percent}%\n{progress:,}/{required:,} XP"
        ))
    else:
        blocks.append(_section(f"📊 *Maximum level reached*\n{bar}"))

    blocks.append({"type": "divider"})
    if guilds:
        lines = [f"• *{g.name}* (<#{g.slack_channel_id}>)" for g in guilds]
        blocks.append(_section("🏰 *Your Guilds*\n" + "\n".join(lines)))
    else:
        blocks.append(_section(
            "🏰 *Guilds*\nYou haven't joined any guilds yet. Join a guild to collaborate on epic quests!"
        ))

    blocks.append({"type": "divider"})
    if not stories:
        blocks.append(_section(
            "📜 *Recent Adventures*\nNo epic tales yet! Complete JIRA tickets to see your heroic stories appear here. ⚔️"
        ))
    else:
        blocks.append(_section("📜 *Recent Adventures*"))
        for story in stories:
            xp = (story.xp_award or {}).get("xp", 0)
            when = story.created_at.strftime("%b %d") if story.created_at else ""
            blocks.append(_section(
                f"🎯 *{story.issue_key}* • +{xp} XP • {when}\n"
                f"{_truncate(story.narrative or 'Epic tale completed!', HOME_NARRATIVE_CHARS)}"
            ))

    return {"type": "home", "blocks": blocks}


def format_welcome_view() -> dict:
    """Build the view shown to a Slack user with no player record."""
    return {
        "type": "home",
        "blocks": [
            {"type": "header", "text": {"type": "plain_text", "text": "🎮 Welcome to Backlog Bard RPG!"}},
            _section(
                "⚔️ *Ready to transform your JIRA work into epic adventures?*\n\n"
                "Register now to start earning XP, joining guilds, and receiving epic tales of your coding conquests!"
            ),
            _section(
                "🚀 *Get Started:*\nSend me a direct message with `register your-jira-username` "
                "to link your JIRA account and begin your adventure!"
            ),
        ],
    }


# ---------------------------------------------------------------------------
# Direct messages
# ---------------------------------------------------------------------------


def format_story_recall(stories: list, done_issues: list[dict]) -> list[dict]:
    """Format a recap of stored stories followed by resolved JIRA issues."""
    if not stories and not done_issues:
        return [_section("📜 No tales to tell yet! Complete a JIRA ticket and your first story will appear. ⚔️")]

    blocks = []
    if stories:
        blocks.append(_section(f"📜 *Your last {len(stories)} adventure(s)*"))
        for story in stories:
            blocks.append(_section(
                f"🎯 *<{browse_url(story.issue_key)}|{story.issue_key}>* ({story.status})\n{story.narrative}"
            ))
    if done_issues:
        lines = [f"• <{i['url']}|{i['key']}> {i['summary']}" for i in done_issues]
        blocks.append(_section("✅ *Recently completed in JIRA*\n" + "\n".join(lines)))
    return blocks


def format_registration_hint() -> list[dict]:
    return [
        _section(
            "👋 You're not registered yet! Run `/rpg-register your-jira-username` or send me "
            "`register your-jira-username` to link your JIRA account and start earning XP."
        )
    ]


def format_registration_result(player) -> list[dict]:
    return [
        _section(
            f"🎉 Welcome, *{player.display_name or player.key}*! You are linked to JIRA user "
            f"`{player.key}` at {level_badge(player.level)} Level {player.level} ({player.current_title})."
        )
    ]


# ---------------------------------------------------------------------------
# Slash commands
# ---------------------------------------------------------------------------

COMMAND_HELP = [
    ("/rpg-status", "Your level, XP, and guilds"),
    ("/rpg-register <jira-username>", "Link your Slack account to JIRA"),
    ("/rpg-leaderboard", "Top heroes by XP"),
    ("/rpg-teams", "Every active guild"),
    ("/rpg-join <guild>", "Join a guild"),
    ("/rpg-leave <guild>", "Leave a guild"),
    ("/rpg-guild-stats [guild]", "Stats and roster of a guild"),
    ("/rpg-guild create <name> [components=A,B] [labels=x,y]", "Found a guild bound to this channel"),
    ("/rpg-guild transfer [guild] @user", "Hand leadership to a member"),
    ("/rpg-guild kick [guild] @user", "Remove a member"),
    ("/rpg-guild rename <new name>", "Rename the guild of this channel"),
]


def format_command_help() -> list[dict]:
    lines = [f"• `{usage}` {summary}" for usage, summary in COMMAND_HELP]
    return [
        _section("🎮 *Backlog Bard commands*\n" + "\n".join(lines)),
        _context("Guild commands work in the guild's own channel or in a DM with me."),
    ]


def format_status(player, guilds: list, last_story=None) -> list[dict]:
    """Format a player's character sheet for an ephemeral reply."""
    bar, percent, progress, required = progress_bar(player.xp, player.level)
    lines = [
        f"{level_badge(player.level)} *{player.display_name or player.key}*, {player.current_title}",
        f"*Level:* {player.level} • *XP:* {player.xp:,}",
    ]
    if required:
        lines.append(f"*Next level:* {bar} {percent}% ({progress:,}/{required:,} XP)")
    else:
        lines.append("*Next level:* maximum level reached")
    guild_names = ", ".join(g.name for g in guilds) or "none yet"
    lines.append(f"*Guilds:* {guild_names}")
    lines.append(f"*Quests completed:* {player.total_tickets} • *Bugs slain:* {player.total_bugs}")
    if last_story is not None:
        lines.append(f"*Last quest:* <{browse_url(last_story.issue_key)}|{last_story.issue_key}> ({last_story.status})")
    return [_section("\n".join(lines))]


def format_leaderboard(players: list, title: str = "🏆 Leaderboard") -> list[dict]:
    if not players:
        return [_section(f"*{title}*\nNo heroes have earned XP yet.")]
    lines = [
        f"{rank}. {level_badge(p.level)} *{p.display_name or p.key}* Level {p.level} • {p.xp:,} XP"
        for rank, p in enumerate(players, start=1)
    ]
    return [_section(f"*{title}*\n" + "\n".join(lines))]


def format_guild_list(guilds: list) -> list[dict]:
    if not guilds:
        return [_section("🏰 No guilds yet. Found one with `/rpg-guild create <name>` in its channel.")]
    lines = []
    for guild in guilds:
        keys = ", ".join([*guild.jira_components, *guild.jira_labels]) or "no filters"
        lines.append(
            f"• *{guild.name}* <#{guild.slack_channel_id}> {guild.active_members} member(s), "
            f"{guild.total_xp:,} XP ({keys})"
        )
    return [_section("🏰 *Guilds*\n" + "\n".join(lines))]


def format_guild_stats(guild, members: list) -> list[dict]:
    leader = (guild.leader.display_name or guild.leader.key) if guild.leader else "nobody"
    blocks = [
        _section(
            f"🏰 *{guild.name}* <#{guild.slack_channel_id}>\n"
            f"👑 *Leader:* {leader}\n"
            f"👥 {guild.active_members} member(s) • 🌟 {guild.total_xp:,} XP • "
            f"📈 average level {guild.average_level} • 🎫 {guild.total_tickets} quests"
        ),
    ]
    if members:
        blocks.extend(format_leaderboard(members, title="Roster"))
    return blocks


def format_guild_result(message: str) -> list[dict]:
    return [_section(f"🏰 {message}")]


def format_error_message(error: str) -> list[dict]:
    """Format an error message as Block Kit blocks.

    Args:
        error: The error description.

    Returns:
        A list of Block Kit block dicts.
    """
    return [
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": f":warning: {error}",
            },
        }
    ]
