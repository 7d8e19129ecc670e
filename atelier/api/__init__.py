"""
API — the storefront's HTTP surface.

    from atelier.api import build_application
    from atelier.wire.contrib import fastapi

    fapp = fastapi.from_application(build_application(runner, settings))
"""

from atelier.api._routes import build_application, MOCK_SECRET_HEADER
from atelier.api import _schemas as schemas

__all__ = ("build_application", "MOCK_SECRET_HEADER", "schemas")
