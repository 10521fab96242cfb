from django.apps import AppConfig


class LookupsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.lookups'
