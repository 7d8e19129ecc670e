"""
FastAPI integration for atelier.wire.

    from atelier.wire.contrib import fastapi
    # fapp = fastapi.from_application(app)
"""

from ._fastapi import (
    add_endpoint_to_app,
    from_application,
    compile_to_fastapi_route,
    failure_response,
    install_error_handlers,
)

__all__ = (
    "add_endpoint_to_app",
    "from_application",
    "compile_to_fastapi_route",
    "failure_response",
    "install_error_handlers",
)
