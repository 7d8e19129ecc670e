"""
atelier — the Crystal Atelier storefront backend.

    from atelier import ops as O       # typed op dispatch
    from atelier import wire as W      # HTTP exposure of ops
    from atelier.app import create_app # assembled FastAPI application
"""

from atelier import ops
from atelier import wire
from atelier._types import (
    Lazy,
    Result,
    Ok,
    Error,
    Clock,
)
from atelier.errors import ErrorKind, Errors, Failure

__version__ = "0.1.0"

__all__ = (
    "ops",
    "wire",
    "Lazy",
    "Result",
    "Ok",
    "Error",
    "Clock",
    "ErrorKind",
    "Errors",
    "Failure",
)
