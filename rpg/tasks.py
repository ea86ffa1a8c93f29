"""Celery background tasks for issue-event processing."""

import json
import logging

from celery import shared_task

from rpg.events import PayloadError, normalize_payload
from rpg.pipeline import run_pipeline

logger = logging.getLogger("rpg.tasks")


@shared_task
def process_issue_event(payload: dict) -> dict:
    """Run a decoded JIRA webhook body through the pipeline.

    Args:
        payload: The webhook body as accepted by the ingress view.

    Returns:
        A dict describing what the pipeline did, or ``{"ok": False}`` when it
        failed. Failures are logged with the full payload and never re-raised,
        so the sender is never asked to retry.
    """
    try:
        event = normalize_payload(payload)
    except PayloadError as exc:
        logger.error("Dropping unparseable payload (%s): %s", exc, json.dumps(payload, default=str))
        return {"ok": False, "error": str(exc)}

    try:
        result = run_pipeline(event)
    except Exception:
        logger.exception("Pipeline failed for %s, payload: %s", event.issue_key, json.dumps(payload, default=str))
        return {"ok": False, "issue_key": event.issue_key}

    return {"ok": True, **result.to_dict()}
