"""URL routes for the rpg app."""

from django.urls import path

from . import views

app_name = "rpg"

urlpatterns = [
    path("health/", views.health_check, name="health_check"),
    path("jira/webhook/", views.jira_webhook, name="jira_webhook"),
    path("slack/events/", views.slack_events, name="slack_events"),
    path("players/<str:key>/stories/", views.player_stories, name="player_stories"),
]
