from django.apps import AppConfig


class RpgConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "rpg"
    verbose_name = "Backlog Bard RPG"

    def ready(self):
        from rpg import checks  # noqa: F401
