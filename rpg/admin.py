from django.contrib import admin

from rpg.models import Guild, GuildMembership, Player, Story


class GuildMembershipInline(admin.TabularInline):
    model = GuildMembership
    extra = 0
    raw_id_fields = ("player",)


@admin.register(Player)
class PlayerAdmin(admin.ModelAdmin):
    list_display = ("key", "display_name", "slack_user_id", "level", "xp", "total_tickets", "auto_created")
    list_filter = ("auto_created", "level")
    search_fields = ("key", "display_name", "email", "slack_user_id", "tracker_account_id")
    readonly_fields = ("level", "current_title", "created_at", "last_activity")


@admin.register(Guild)
class GuildAdmin(admin.ModelAdmin):
    list_display = ("name", "slack_channel_id", "leader", "active_members", "total_xp", "is_active")
    list_filter = ("is_active",)
    search_fields = ("name", "slack_channel_id", "slack_channel_name")
    inlines = [GuildMembershipInline]


@admin.register(Story)
class StoryAdmin(admin.ModelAdmin):
    list_display = ("issue_key", "status", "player", "source", "created_at")
    list_filter = ("status", "source")
    search_fields = ("issue_key", "player__key", "narrative")
    raw_id_fields = ("player",)
