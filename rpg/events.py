"""Normalization of JIRA webhook payloads into ``IssueEvent`` records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from django.utils.dateparse import parse_datetime

from rpg.progression import COMPLETION_STATUSES, STATUS_IN_PROGRESS, STATUS_TODO

STORY_POINT_FIELDS = ("customfield_10016", "story_points", "storyPoints")


class PayloadError(ValueError):
    """Raised when a webhook body cannot be normalized."""


@dataclass(frozen=True)
class Actor:
    """A tracker user as it appears on a webhook (actor, assignee, reporter)."""

    username: str | None = None
    account_id: str | None = None
    email: str | None = None
    display_name: str | None = None

    @classmethod
    def from_payload(cls, data: dict | None) -> Actor | None:
        if not isinstance(data, dict):
            return None
        actor = cls(
            username=data.get("name") or None,
            account_id=data.get("accountId") or None,
            email=data.get("emailAddress") or None,
            display_name=data.get("displayName") or None,
        )
        if not any((actor.username, actor.account_id, actor.email, actor.display_name)):
            return None
        return actor


@dataclass
class IssueEvent:
    kind: str
    issue_key: str
    project: str
    issue_type: str
    priority: str
    summary: str
    description: str
    story_points: float | None
    components: list[str] = field(default_factory=list)
    labels: list[str] = field(default_factory=list)
    actor: Actor | None = None
    assignee: Actor | None = None
    reporter: Actor | None = None
    status: str | None = None
    from_status: str | None = None
    to_status: str | None = None
    created: datetime | None = None
    updated: datetime | None = None


INLINE_NODE_TYPES = frozenset({"text", "hardBreak", "mention", "emoji", "inlineCard"})


def _inline_text(node: dict) -> str:
    kind = node.get("type")
    if kind == "text":
        return node.get("text") or ""
    if kind == "hardBreak":
        return " "
    if kind in ("mention", "emoji"):
        return (node.get("attrs") or {}).get("text") or ""
    return "".join(_inline_text(c) for c in node.get("content") or [] if isinstance(c, dict))


def extract_description(description) -> str:
    """Flatten a JIRA description into plain text.

    Plain strings are returned as-is. In Atlassian Document Format trees the
    inline nodes of one block (paragraph, heading, ...) are concatenated
    as written, since marks split a word into several text nodes, and
    blocks are separated by a single space.
    """
    if not description:
        return ""
    if isinstance(description, str):
        return description.strip()

    blocks: list[str] = []

    def _walk(node) -> None:
        if isinstance(node, list):
            for child in node:
                _walk(child)
        elif isinstance(node, dict):
            children = node.get("content") or []
            if node.get("type") == "text" or any(
                isinstance(c, dict) and c.get("type") in INLINE_NODE_TYPES for c in children
            ):
                blocks.append(_inline_text(node))
            else:
                for child in children:
                    _walk(child)

    _walk(description)
    return " ".join(b.strip() for b in blocks if b.strip())


def _story_points(fields: dict) -> float | None:
    for name in STORY_POINT_FIELDS:
        value = fields.get(name)
        if value is None:
            continue
        try:
            return float(value)
        except (TypeError, ValueError):
            continue
    return None


def _parse_timestamp(value) -> datetime | None:
    if not value or not isinstance(value, str):
        return None
    # JIRA sends offsets without a colon (e.g. +0000).
    text = value.strip()
    if len(text) > 5 and text[-5] in "+-" and text[-4:].isdigit():
        text = f"{text[:-2]}:{text[-2:]}"
    try:
        return parse_datetime(text)
    except ValueError:
        return None


def _named(value) -> str | None:
    if isinstance(value, dict):
        return value.get("name") or value.get("key")
    return value or None


def _project_key(project) -> str:
    if isinstance(project, dict):
        return project.get("key") or project.get("name") or ""
    return str(project or "")


def _transition(payload: dict, current_status: str | None) -> tuple[str | None, str | None]:
    """Return (from_status, to_status) for the event.

    The first changelog item on the ``status`` field wins. Without one, the
    transition is synthesized from the current status along
    To Do -> In Progress -> Done.
    """
    items = (payload.get("changelog") or {}).get("items") or []
    for item in items:
        if isinstance(item, dict) and item.get("field") == "status":
            return item.get("fromString") or None, item.get("toString") or current_status

    if current_status == STATUS_IN_PROGRESS:
        return STATUS_TODO, current_status
    if current_status in COMPLETION_STATUSES:
        return STATUS_IN_PROGRESS, current_status
    return None, current_status


def normalize_payload(payload) -> IssueEvent:
    """Build an ``IssueEvent`` from a decoded JIRA webhook body.

    Raises:
        PayloadError: If the payload has no issue key or no identifiable actor.
    """
    if not isinstance(payload, dict):
        raise PayloadError("webhook body must be a JSON object")

    issue = payload.get("issue")
    if not isinstance(issue, dict) or not issue.get("key"):
        raise PayloadError("webhook body has no issue key")

    fields = issue.get("fields") or {}
    if not isinstance(fields, dict):
        raise PayloadError("issue fields must be an object")

    assignee = Actor.from_payload(fields.get("assignee"))
    actor = Actor.from_payload(payload.get("user")) or assignee
    if actor is None:
        raise PayloadError("webhook body has no user")

    status = _named(fields.get("status"))
    from_status, to_status = _transition(payload, status)
    summary = fields.get("summary") or ""

    return IssueEvent(
        kind=payload.get("webhookEvent") or "",
        issue_key=issue["key"],
        project=_project_key(fields.get("project")),
        issue_type=_named(fields.get("issuetype")) or "Task",
        priority=_named(fields.get("priority")) or "Medium",
        summary=summary,
        description=extract_description(fields.get("description")) or summary,
        story_points=_story_points(fields),
        components=[_named(c) for c in fields.get("components") or [] if _named(c)],
        labels=[str(label) for label in fields.get("labels") or []],
        actor=actor,
        assignee=assignee,
        reporter=Actor.from_payload(fields.get("reporter")),
        status=status,
        from_status=from_status,
        to_status=to_status,
        created=_parse_timestamp(fields.get("created")),
        updated=_parse_timestamp(fields.get("updated")),
    )
