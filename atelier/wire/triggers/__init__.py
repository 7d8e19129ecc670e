"""
Triggers — describe how endpoints are exposed (e.g., HTTP routes).

    from atelier.wire.triggers.http import HTTPRouteTrigger

    http = HTTPRouteTrigger("GET", "/api/product/{id}")
"""

from atelier.wire.triggers import http


__all__ = ("http",)
