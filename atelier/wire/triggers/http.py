from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from atelier.wire._types import Guard


type Method = Literal["GET", "POST", "PUT", "DELETE", "PATCH"]
type Path = str
type Source = Literal["query", "body"]


@dataclass(frozen=True, slots=True)
class HTTPRouteTrigger:
    """
    One HTTP route.

    ``source`` says where request fields come from; by default GET reads the
    query string and every other method reads a JSON body. Path parameters are
    merged in on top either way.
    """

    method: Method
    path: Path
    guard: Guard | None = None
    status_code: int = 200
    source: Source | None = None

    @property
    def reads(self) -> Source:
        if self.source is not None:
            return self.source
        return "query" if self.method == "GET" else "body"
