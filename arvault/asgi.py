"""ASGI entry point: ``hypercorn arvault.asgi:app``."""

from arvault.app_factory import create_app
from arvault.lib import observability

app = observability.instrument_app(create_app())
