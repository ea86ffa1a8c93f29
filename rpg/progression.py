"""XP award rules, level thresholds, and titles."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rpg.events import IssueEvent

MAX_LEVEL = 20

# Minimum XP for each level; index 0 is level 1.
LEVEL_THRESHOLDS = [
    0, 160, 320, 480, 640, 800,
    1200, 1600, 2000, 2400, 2800,
    3400, 4000, 4600, 5200, 5800,
    6600, 7400, 8200, 9000,
]

TITLES = [
    "Novice Adventurer",
    "Apprentice Developer",
    "Junior Craftsperson",
    "Skilled Artisan",
    "Elite Specialist",
    "Master Developer",
    "Senior Master",
    "Master Craftsperson",
    "Grand Master",
    "Master Architect",
    "Legendary Coder",
    "Legendary Artisan",
    "Legendary Master",
    "Grand Legendary",
    "Legendary Architect",
    "Mythic Developer",
    "Mythic Overlord",
    "Grand Mythic",
    "Mythic Legend",
    "Debugging God",
]

XP_IN_PROGRESS = 15
XP_COMPLETED = 50
XP_PER_STORY_POINT = 10
XP_ASSIGNED = 10
XP_BUG_BONUS = 25
XP_SPEED_BONUS = 20
XP_ACTIVITY_FLOOR = 5
SPEED_BONUS_HOURS = 24

STATUS_TODO = "To Do"
STATUS_IN_PROGRESS = "In Progress"
COMPLETION_STATUSES = frozenset({"Done", "Resolved", "Closed"})


def level_for(xp: int) -> int:
    """Return the level (1..20) reached with *xp* experience points."""
    if xp is None or xp < 0:
        return 1
    for level in range(MAX_LEVEL, 0, -1):
        if xp >= LEVEL_THRESHOLDS[level - 1]:
            return level
    return 1


def xp_for_level(level: int) -> int:
    """Return the minimum XP for *level*, clamped to 1..20."""
    level = max(1, min(level, MAX_LEVEL))
    return LEVEL_THRESHOLDS[level - 1]


def title_for(level: int) -> str:
    level = max(1, min(level, MAX_LEVEL))
    return TITLES[level - 1]


def is_completion(from_status: str | None, to_status: str | None) -> bool:
    return to_status in COMPLETION_STATUSES and from_status != to_status


@dataclass
class XpAward:
    """The XP delta computed for one issue event, with audit reasons."""

    xp: int = 0
    reasons: list[str] = field(default_factory=list)
    from_status: str | None = None
    to_status: str | None = None
    completion: bool = False
    bug: bool = False

    @property
    def reason(self) -> str:
        return ", ".join(self.reasons) or "No XP awarded"

    def add(self, amount: int, reason: str) -> None:
        self.xp += amount
        self.reasons.append(f"{reason} (+{amount} XP)")

    def to_dict(self) -> dict:
        data = asdict(self)
        data["reason"] = self.reason
        return data


@dataclass
class LevelUp:
    old_level: int
    new_level: int
    old_title: str
    new_title: str
    levels_gained: int
    xp_to_next: int

    def to_dict(self) -> dict:
        return asdict(self)


def calculate_award(event: IssueEvent) -> XpAward:
    """Compute the XP award for a normalized issue event.

    Exactly one of the in-progress, completion, or assignment rules acts as
    the base. Story points, bug, and speed bonuses only apply on completion.
    When nothing fires but the event carries a status, a small activity floor
    is awarded instead.
    """
    from_status, to_status = event.from_status, event.to_status
    award = XpAward(
        from_status=from_status,
        to_status=to_status,
        completion=is_completion(from_status, to_status),
        bug="bug" in (event.issue_type or "").lower(),
    )

    if to_status == STATUS_IN_PROGRESS and from_status != STATUS_IN_PROGRESS:
        award.add(XP_IN_PROGRESS, "Ticket moved to In Progress")
    elif award.completion:
        award.add(XP_COMPLETED, "Ticket completed")
        if event.story_points and event.story_points > 0:
            bonus = int(round(event.story_points * XP_PER_STORY_POINT))
            award.add(bonus, f"Story points bonus for {event.story_points:g} points")
    elif event.assignee is not None and (from_status == STATUS_TODO or not from_status):
        award.add(XP_ASSIGNED, "Ticket assigned")

    if award.xp == 0 and to_status:
        award.add(XP_ACTIVITY_FLOOR, f"Activity on {event.kind or 'status update'}")

    if award.completion and award.bug:
        award.add(XP_BUG_BONUS, "Bug fix bonus")

    if award.completion and event.created and event.updated:
        hours = (event.updated - event.created).total_seconds() / 3600
        if hours < SPEED_BONUS_HOURS:
            award.add(XP_SPEED_BONUS, f"Quick completion bonus, done in {round(hours)} hours")

    return award


def check_level_up(old_xp: int, new_xp: int) -> LevelUp | None:
    """Return a ``LevelUp`` record when *new_xp* crosses a level threshold."""
    old_level = level_for(old_xp)
    new_level = level_for(new_xp)
    if new_level <= old_level:
        return None
    if new_level >= MAX_LEVEL:
        xp_to_next = 0
    else:
        xp_to_next = xp_for_level(new_level + 1) - new_xp
    return LevelUp(
        old_level=old_level,
        new_level=new_level,
        old_title=title_for(old_level),
        new_title=title_for(new_level),
        levels_gained=new_level - old_level,
        xp_to_next=xp_to_next,
    )
