import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Player",
            fields=[
                ("key", models.CharField(max_length=255, primary_key=True, serialize=False)),
                ("tracker_account_id", models.CharField(blank=True, db_index=True, default="", max_length=128)),
                ("email", models.EmailField(blank=True, db_index=True, default="", max_length=254)),
                ("display_name", models.CharField(blank=True, default="", max_length=255)),
                ("slack_user_id", models.CharField(blank=True, max_length=20, null=True, unique=True)),
                ("xp", models.PositiveIntegerField(default=0)),
                ("level", models.PositiveSmallIntegerField(default=1)),
                ("current_title", models.CharField(default="Novice Adventurer", max_length=64)),
                ("total_tickets", models.PositiveIntegerField(default=0)),
                ("total_bugs", models.PositiveIntegerField(default=0)),
                ("auto_created", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("last_activity", models.DateTimeField(auto_now=True)),
            ],
        ),
        migrations.CreateModel(
            name="Guild",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=100)),
                ("slack_channel_id", models.CharField(max_length=20, unique=True)),
                ("slack_channel_name", models.CharField(blank=True, default="", max_length=100)),
                ("description", models.CharField(blank=True, default="", max_length=255)),
                ("jira_components", models.JSONField(blank=True, default=list)),
                ("jira_labels", models.JSONField(blank=True, default=list)),
                ("project_key", models.CharField(blank=True, default="", max_length=32)),
                ("total_xp", models.PositiveIntegerField(default=0)),
                ("average_level", models.FloatField(default=1.0)),
                ("total_tickets", models.PositiveIntegerField(default=0)),
                ("active_members", models.PositiveIntegerField(default=0)),
                ("is_active", models.BooleanField(default=True)),
                ("max_members", models.PositiveIntegerField(default=50)),
                ("allow_auto_join", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to="rpg.player",
                    ),
                ),
                (
                    "leader",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="led_guilds",
                        to="rpg.player",
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name="GuildMembership",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "role",
                    models.CharField(
                        choices=[("leader", "Leader"), ("member", "Member")],
                        default="member",
                        max_length=10,
                    ),
                ),
                ("joined_at", models.DateTimeField(auto_now_add=True)),
                (
                    "guild",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="memberships",
                        to="rpg.guild",
                    ),
                ),
                (
                    "player",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="memberships",
                        to="rpg.player",
                    ),
                ),
            ],
        ),
        migrations.AddField(
            model_name="guild",
            name="members",
            field=models.ManyToManyField(related_name="guilds", through="rpg.GuildMembership", to="rpg.player"),
        ),
        migrations.CreateModel(
            name="Story",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("issue_key", models.CharField(max_length=64)),
                ("status", models.CharField(max_length=64)),
                ("narrative", models.TextField()),
                ("loot", models.CharField(blank=True, default="", max_length=255)),
                ("achievement", models.CharField(blank=True, default="", max_length=255)),
                ("source", models.CharField(default="model", max_length=16)),
                ("ticket_snapshot", models.JSONField(default=dict)),
                ("xp_award", models.JSONField(default=dict)),
                ("guild_ids", models.JSONField(default=list)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "player",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="stories",
                        to="rpg.player",
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "stories",
                "ordering": ["-created_at", "-id"],
            },
        ),
        migrations.AddConstraint(
            model_name="guild",
            constraint=models.UniqueConstraint(
                condition=models.Q(("is_active", True)),
                fields=("name",),
                name="unique_active_guild_name",
            ),
        ),
        migrations.AddConstraint(
            model_name="guildmembership",
            constraint=models.UniqueConstraint(fields=("guild", "player"), name="unique_guild_member"),
        ),
        migrations.AddConstraint(
            model_name="story",
            constraint=models.UniqueConstraint(
                fields=("player", "issue_key", "status"),
                name="unique_story_per_transition",
            ),
        ),
    ]
