from django.apps import AppConfig


class EconomyAppConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'economy'
    verbose_name = 'Fantasy Economy'
