"""
Codecs — convert transport payloads to domain ops and back.

    from atelier.wire.codecs import RequestResponseCodec

    # class Request(BaseModel): implements to_domain(caller)
    # class Response(BaseModel): implements from_domain(value)
    # codec = RequestResponseCodec(Request, Response)
"""

from atelier.wire.codecs.rrc import (
    RequestResponseCodec,
    ToDomain,
    FromDomain,
)

__all__ = (
    "RequestResponseCodec",
    "ToDomain",
    "FromDomain",
)
