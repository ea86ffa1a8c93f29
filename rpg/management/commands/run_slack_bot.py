"""Management command to start the Slack listeners in Socket Mode."""

import logging

from django.conf import settings
from django.core.management import call_command
from django.core.management.base import BaseCommand, CommandError
from slack_bolt.adapter.socket_mode import SocketModeHandler

logger = logging.getLogger("rpg")


class Command(BaseCommand):
    help = "Start the Backlog Bard Slack listeners via Socket Mode"

    def handle(self, *args, **options):
        if not settings.SLACK_APP_TOKEN:
            raise CommandError("SLACK_APP_TOKEN is required for Socket Mode")

        call_command("check")

        from rpg.slack_app import app

        logger.info("Starting Backlog Bard Slack listeners...")
        SocketModeHandler(app, settings.SLACK_APP_TOKEN).start()
