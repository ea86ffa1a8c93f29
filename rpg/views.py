"""View functions for health checks, the JIRA webhook, Slack events, and the story API."""

import json
import logging

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST
from rest_framework.decorators import api_view
from rest_framework.response import Response

from rpg.ai.narrator import check_model_health
from rpg.ingress import SigningSecretMissing, WebhookRejected, accept_webhook
from rpg.models import Player
from rpg.stories import get_stories_by_player
from rpg.tasks import process_issue_event

logger = logging.getLogger("rpg.views")

DEFAULT_STORY_LIMIT = 5
MAX_STORY_LIMIT = 50


def health_check(request):
    """Return a simple health-check response.

    ``?deep=1`` also asks the model service whether the narrative model is
    loaded.
    """
    body = {"status": "ok"}
    if request.GET.get("deep"):
        body["model"] = "ok" if check_model_health() else "unavailable"
    return JsonResponse(body)


@csrf_exempt
@require_POST
def jira_webhook(request):
    """Verify a signed JIRA webhook and queue it for processing."""
    try:
        payload, event = accept_webhook(request)
    except SigningSecretMissing:
        logger.error("Rejecting webhook: SLACK_SIGNING_SECRET is not configured")
        return JsonResponse({"ok": False, "error": "server_error"}, status=500)
    except WebhookRejected as exc:
        logger.warning("Rejected webhook: %s", exc)
        return JsonResponse({"ok": False, "error": exc.reason}, status=exc.status)

    try:
        process_issue_event.delay(payload)
    except Exception:
        logger.exception("Could not queue %s, payload: %s", event.issue_key, json.dumps(payload, default=str))

    return JsonResponse({"ok": True, "issue_key": event.issue_key})


@csrf_exempt
def slack_events(request):
    """Hand Slack Events API requests to the Bolt app."""
    from rpg.slack_app import handler

    return handler.handle(request)


def _serialize_story(story) -> dict:
    return {
        "id": story.pk,
        "issue_key": story.issue_key,
        "status": story.status,
        "narrative": story.narrative,
        "loot": story.loot,
        "achievement": story.achievement,
        "source": story.source,
        "xp_award": story.xp_award,
        "guild_ids": story.guild_ids,
        "created_at": story.created_at.isoformat() if story.created_at else None,
    }


@api_view(["GET"])
def player_stories(request, key):
    """Return a player's recent stories, newest first, one per issue."""
    player = Player.objects.filter(pk=key).first()
    if player is None:
        return Response({"error": "player not found"}, status=404)

    raw_limit = request.query_params.get("limit", DEFAULT_STORY_LIMIT)
    try:
        limit = int(raw_limit)
    except (TypeError, ValueError):
        return Response({"error": "limit must be an integer"}, status=400)
    limit = max(1, min(limit, MAX_STORY_LIMIT))

    stories = get_stories_by_player(player, limit)
    return Response({
        "player": {
            "key": player.pk,
            "display_name": player.display_name,
            "xp": player.xp,
            "level": player.level,
            "title": player.current_title,
        },
        "stories": [_serialize_story(s) for s in stories],
    })
