"""
Wire — expose ops via triggers and codecs.

    from atelier import ops as O
    from atelier.wire import endpoint, Application
    from atelier.wire.triggers.http import HTTPRouteTrigger
    from atelier.wire.codecs.rrc import RequestResponseCodec

    # runner = O.ops() ... .compile()
    # endp = endpoint(runner).expose(
    #     HTTPRouteTrigger("GET", "/api/product/{id}"),
    #     RequestResponseCodec(ProductPath, ProductOut),
    # )
    # app = Application().mount(endp)
"""

from atelier.wire._endpoint import (
    Endpoint,
    endpoint,
)
from atelier.wire._app import Application
from atelier.wire._types import (
    Guard,
    Trigger,
    Codec,
    Exposure,
)

# Common codecs and triggers
from atelier.wire.codecs.rrc import RequestResponseCodec
from atelier.wire.triggers.http import (
    HTTPRouteTrigger,
    Method,
    Path,
    Source,
)

# Subpackages
from atelier.wire import codecs, triggers, contrib

__all__ = (
    # Core API
    "Endpoint",
    "endpoint",
    "Application",
    "Guard",
    "Trigger",
    "Codec",
    "Exposure",
    # Built-ins
    "RequestResponseCodec",
    "HTTPRouteTrigger",
    "Method",
    "Path",
    "Source",
    # Subpackages
    "codecs",
    "triggers",
    "contrib",
)
