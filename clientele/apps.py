from django.apps import AppConfig


class ClienteleConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "clientele"
    verbose_name = "Clientele - Customer Identity & Tagging"
