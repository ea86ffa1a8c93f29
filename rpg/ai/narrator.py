"""Quest narrative generation from ticket snapshots."""

from __future__ import annotations

import json
import logging
import re
import zlib
from dataclasses import dataclass

from django.conf import settings

from integrations.ollama import ModelServiceError, generate, list_models
from rpg.ai.prompts import load_prompt
from rpg.events import Actor, IssueEvent

logger = logging.getLogger("rpg.ai.narrator")

MAX_NARRATIVE_CHARS = 300
MIN_NARRATIVE_CHARS = 50
MAX_EXTRA_CHARS = 255
DEFAULT_EMOJI = "⚔️"
EXCITED_ENDINGS = ("!", "⚔️", "✨")

EMOJI_RE = re.compile("[\U0001F300-\U0001FAFF\u2600-\u27BF]")

FALLBACK_TEMPLATES = [
    '⚔️ [{key}] The brave developer {assignee} embarks on a quest to conquer "{title}" and emerge victorious!',
    '🗡️ [{key}] {assignee} takes up their keyboard-sword to battle the challenges of "{title}" with determination and skill!',
    '✨ [{key}] The legendary coder {assignee} ventures forth to master the mystical arts of "{title}" and claim victory!',
    '🛡️ [{key}] Armed with caffeine and courage, {assignee} faces the epic challenge of "{title}" with unwavering resolve!',
    '🌟 [{key}] The mighty {assignee} channels their coding powers to overcome the trials of "{title}" and achieve greatness!',
]


@dataclass
class Narrative:
    text: str
    loot: str = ""
    achievement: str = ""
    source: str = "model"


def _name(actor: Actor | None) -> str | None:
    if actor is None:
        return None
    return actor.display_name or actor.username or actor.email or actor.account_id


def build_ticket_snapshot(event: IssueEvent) -> dict:
    """Collect the ticket fields the storyteller sees."""
    return {
        "ticket_key": event.issue_key,
        "assignee": _name(event.assignee) or _name(event.actor) or "Unknown Hero",
        "title": event.summary,
        "description": event.description,
        "status": event.to_status or event.status or "",
        "reporter": _name(event.reporter) or "Unknown",
        "ticket_type": event.issue_type,
        "priority": event.priority,
        "story_points": event.story_points,
        "project": event.project,
        "components": list(event.components),
        "labels": list(event.labels),
    }


def build_prompt(snapshot: dict) -> str:
    lines = [
        f"ASSIGNEE: {snapshot['assignee']}",
        f"TITLE: {snapshot['title']}",
        f"DESCRIPTION: {snapshot['description']}",
        f"STATUS: {snapshot['status']}",
        f"REPORTER: {snapshot['reporter']}",
        f"TICKET_TYPE: {snapshot['ticket_type']}",
        f"PRIORITY: {snapshot['priority']}",
    ]
    if snapshot.get("story_points"):
        lines.append(f"STORY_POINTS: {snapshot['story_points']:g}")
    if snapshot.get("project"):
        lines.append(f"PROJECT: {snapshot['project']}")
    if snapshot.get("components"):
        lines.append(f"COMPONENTS: {', '.join(snapshot['components'])}")
    if snapshot.get("labels"):
        lines.append(f"LABELS: {', '.join(snapshot['labels'])}")
    return load_prompt("narrative").replace("{ticket}", "\n".join(lines))


def _extract_json(raw: str) -> dict | None:
    # Models often wrap the object in prose, so take the first decodable one.
    decoder = json.JSONDecoder()
    for match in re.finditer(r"\{", raw):
        try:
            obj, _ = decoder.raw_decode(raw, match.start())
        except json.JSONDecodeError:
            continue
        if isinstance(obj, dict):
            return obj
    return None


def _fit(text: str, limit: int) -> str:
    """Cut *text* to at most *limit* chars on a word boundary and re-excite it."""
    if len(text) <= limit:
        return text
    cut = text[: limit - 1].rstrip()
    if " " in cut[-40:]:
        cut = cut.rsplit(" ", 1)[0]
    return cut.rstrip(" ,;:-.") + "!"


def shape_narrative(text: str, ticket_key: str = "") -> str:
    """Force *text* into the narrative shape.

    The result starts with an emoji, ends with ``!``, ``⚔️`` or ``✨``, and is
    at most 300 characters long.
    """
    text = " ".join((text or "").split())
    match = EMOJI_RE.search(text)
    if match and match.start() > 0:
        text = text[match.start():]
    if not EMOJI_RE.match(text):
        text = f"{DEFAULT_EMOJI} {text}"
    if ticket_key and len(text) < MIN_NARRATIVE_CHARS and ticket_key not in text:
        text = f"{text.rstrip('!')} [{ticket_key}]"
    if not text.endswith(EXCITED_ENDINGS):
        text = f"{text}!"
    return _fit(text, MAX_NARRATIVE_CHARS)


def is_valid_narrative(text: str) -> bool:
    return (
        bool(text)
        and len(text) <= MAX_NARRATIVE_CHARS
        and bool(EMOJI_RE.match(text))
        and text.endswith(EXCITED_ENDINGS)
    )


def fallback_narrative(snapshot: dict) -> Narrative:
    """Return a deterministic template story for *snapshot*.

    The template is picked by a stable hash of the assignee name, so the same
    hero always gets the same fallback.
    """
    assignee = snapshot.get("assignee") or "Unknown Hero"
    key = snapshot.get("ticket_key") or ""
    title = " ".join((snapshot.get("title") or "an untitled quest").split())
    template = FALLBACK_TEMPLATES[zlib.crc32(assignee.encode("utf-8")) % len(FALLBACK_TEMPLATES)]

    text = template.format(key=key, assignee=assignee, title=title)
    overflow = len(text) - MAX_NARRATIVE_CHARS
    if overflow > 0:
        keep = max(len(title) - overflow - 1, 0)
        text = template.format(key=key, assignee=assignee, title=title[:keep].rstrip() + "…")
    return Narrative(text=_fit(text, MAX_NARRATIVE_CHARS), source="fallback")


def generate_narrative(snapshot: dict, model: str | None = None) -> Narrative:
    """Ask the model service for a narrative, falling back on any failure.

    Never raises and never touches the database.
    """
    try:
        raw = generate(build_prompt(snapshot), model=model or settings.NARRATIVE_MODEL)
    except ModelServiceError as exc:
        logger.warning("Narrative generation failed for %s: %s", snapshot.get("ticket_key"), exc)
        return fallback_narrative(snapshot)
    except Exception:
        logger.exception("Unexpected error generating narrative for %s", snapshot.get("ticket_key"))
        return fallback_narrative(snapshot)

    parsed = _extract_json(raw)
    if parsed is not None:
        story = str(parsed.get("story") or parsed.get("narrative") or "").strip()
        loot = str(parsed.get("loot") or "").strip()[:MAX_EXTRA_CHARS]
        achievement = str(parsed.get("achievement") or parsed.get("achievements") or "").strip()[:MAX_EXTRA_CHARS]
    else:
        story, loot, achievement = raw.strip(), "", ""

    if not story:
        logger.warning("Model returned no story for %s", snapshot.get("ticket_key"))
        return fallback_narrative(snapshot)

    return Narrative(
        text=shape_narrative(story, snapshot.get("ticket_key", "")),
        loot=loot,
        achievement=achievement,
    )


def check_model_health(model: str | None = None) -> bool:
    """Return whether the model service is up and has the narrative model."""
    model = model or settings.NARRATIVE_MODEL
    try:
        names = list_models()
    except ModelServiceError as exc:
        logger.warning("Model service health check failed: %s", exc)
        return False
    # An untagged name means the ":latest" tag, as the model service resolves it.
    tagged = model if ":" in model else f"{model}:latest"
    return model in names or tagged in names
