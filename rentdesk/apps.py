from django.apps import AppConfig


class RentdeskConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "rentdesk"
    verbose_name = "Rentdesk"

    def ready(self):
        from . import signals  # noqa: F401
