"""Data models for players, guilds, guild membership, and stories."""

from django.db import models
from django.db.models import Q

from rpg.progression import level_for, title_for


class Player(models.Model):
    """A registered human, keyed by their issue-tracker username."""

    key = models.CharField(max_length=255, primary_key=True)
    tracker_account_id = models.CharField(max_length=128, blank=True, default="", db_index=True)
    email = models.EmailField(blank=True, default="", db_index=True)
    display_name = models.CharField(max_length=255, blank=True, default="")
    slack_user_id = models.CharField(max_length=20, unique=True, null=True, blank=True)
    xp = models.PositiveIntegerField(default=0)
    level = models.PositiveSmallIntegerField(default=1)
    current_title = models.CharField(max_length=64, default=title_for(1))
    total_tickets = models.PositiveIntegerField(default=0)
    total_bugs = models.PositiveIntegerField(default=0)
    auto_created = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    last_activity = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.display_name or self.key} (L{self.level})"

    def save(self, *args, **kwargs):
        # Level and title always follow XP, whichever path edits it.
        self.level = level_for(self.xp)
        self.current_title = title_for(self.level)
        update_fields = kwargs.get("update_fields")
        if update_fields is not None and "xp" in update_fields:
            kwargs["update_fields"] = {*update_fields, "level", "current_title"}
        super().save(*args, **kwargs)


class Guild(models.Model):
    """A named group of players bound 1:1 to a Slack channel."""

    name = models.CharField(max_length=100)
    slack_channel_id = models.CharField(max_length=20, unique=True)
    slack_channel_name = models.CharField(max_length=100, blank=True, default="")
    description = models.CharField(max_length=255, blank=True, default="")
    leader = models.ForeignKey(
        Player, null=True, blank=True, on_delete=models.SET_NULL, related_name="led_guilds",
    )
    members = models.ManyToManyField(Player, through="GuildMembership", related_name="guilds")

    jira_components = models.JSONField(default=list, blank=True)
    jira_labels = models.JSONField(default=list, blank=True)
    project_key = models.CharField(max_length=32, blank=True, default="")

    total_xp = models.PositiveIntegerField(default=0)
    average_level = models.FloatField(default=1.0)
    total_tickets = models.PositiveIntegerField(default=0)
    active_members = models.PositiveIntegerField(default=0)

    is_active = models.BooleanField(default=True)
    max_members = models.PositiveIntegerField(default=50)
    allow_auto_join = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    created_by = models.ForeignKey(
        Player, null=True, blank=True, on_delete=models.SET_NULL, related_name="+",
    )

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["name"],
                condition=Q(is_active=True),
                name="unique_active_guild_name",
            ),
        ]

    def __str__(self) -> str:
        return self.name


class GuildMembership(models.Model):
    """One player's seat in one guild."""

    LEADER = "leader"
    MEMBER = "member"
    ROLE_CHOICES = [(LEADER, "Leader"), (MEMBER, "Member")]

    guild = models.ForeignKey(Guild, on_delete=models.CASCADE, related_name="memberships")
    player = models.ForeignKey(Player, on_delete=models.CASCADE, related_name="memberships")
    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default=MEMBER)
    joined_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["guild", "player"], name="unique_guild_member"),
        ]

    def __str__(self) -> str:
        return f"{self.player_id} in {self.guild_id} ({self.role})"


class Story(models.Model):
    """A generated narrative for one (player, issue, status) transition."""

    player = models.ForeignKey(Player, on_delete=models.CASCADE, related_name="stories")
    issue_key = models.CharField(max_length=64)
    status = models.CharField(max_length=64)
    narrative = models.TextField()
    loot = models.CharField(max_length=255, blank=True, default="")
    achievement = models.CharField(max_length=255, blank=True, default="")
    source = models.CharField(max_length=16, default="model")
    ticket_snapshot = models.JSONField(default=dict)
    xp_award = models.JSONField(default=dict)
    guild_ids = models.JSONField(default=list)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        constraints = [
            models.UniqueConstraint(
                fields=["player", "issue_key", "status"],
                name="unique_story_per_transition",
            ),
        ]
        verbose_name_plural = "stories"

    def __str__(self) -> str:
        return f"{self.issue_key} [{self.status}] for {self.player_id}"
