from django.apps import AppConfig


class TooltrackConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'TOOLTRACK'
    verbose_name = 'Tool tracking'
