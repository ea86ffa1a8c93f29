"""System checks for required secrets and service settings."""

from django.conf import settings
from django.core.checks import Error, Warning, register

from rpg.delivery import REDELIVERY_REPOST, REDELIVERY_SUPPRESS


@register()
def check_rpg_settings(app_configs, **kwargs):
    messages = []

    for name, check_id in (("SLACK_SIGNING_SECRET", "rpg.E001"), ("SLACK_BOT_TOKEN", "rpg.E002")):
        if not getattr(settings, name, ""):
            messages.append(Error(
                f"{name} is not set.",
                hint=f"Add {name} to the environment or .env file.",
                id=check_id,
            ))

    for name in ("JIRA_BASE_URL", "JIRA_API_EMAIL", "JIRA_API_TOKEN", "OLLAMA_API_URL"):
        if not getattr(settings, name, ""):
            messages.append(Warning(
                f"{name} is not set; features depending on it will degrade.",
                id="rpg.W001",
            ))

    if settings.RPG_REDELIVERY_POLICY not in (REDELIVERY_SUPPRESS, REDELIVERY_REPOST):
        messages.append(Error(
            f"RPG_REDELIVERY_POLICY must be '{REDELIVERY_SUPPRESS}' or '{REDELIVERY_REPOST}'.",
            id="rpg.E003",
        ))

    if settings.WEBHOOK_REPLAY_WINDOW <= 0:
        messages.append(Error("WEBHOOK_REPLAY_WINDOW must be positive.", id="rpg.E004"))

    if settings.CHAT_DEDUP_TTL < 600:
        messages.append(Warning(
            "CHAT_DEDUP_TTL is below 600 seconds; Slack retries may be answered twice.",
            id="rpg.W002",
        ))

    return messages
