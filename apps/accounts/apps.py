from django.apps import AppConfig


class AccountsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.accounts"     # full dotted path (app lives under apps/)
    label = "accounts"         # AUTH_USER_MODEL points at this label

    def ready(self):
        # auth events are audited once signal handlers are imported
        from . import signals  # noqa: F401
