# config/settings.py
"""
Shim so DJANGO_SETTINGS_MODULE='config.settings' works.
Prefer dev in local; prod when DJANGO_ENV=production.
"""
import os

if os.getenv("DJANGO_ENV", "").lower() == "production":
    from .prod import *  # noqa
else:
    from .dev import *  # noqa
