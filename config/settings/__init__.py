# backend/config/settings/__init__.py
import os

env = os.getenv("DJANGO_ENV", "local").lower()

if env == "prod":
    from .prod import *  # noqa
elif env == "test":
    from .test import *  # noqa
else:
    from .local import *  # noqa
