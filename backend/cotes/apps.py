from django.apps import AppConfig


class CotesConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'cotes'
    verbose_name = 'Cotes et jurys'
