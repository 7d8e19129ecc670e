from typing import Self

from atelier.wire._endpoint import Endpoint
from atelier.wire.triggers.http import HTTPRouteTrigger


class Application:
    def __init__(self) -> None:
        self.endpoints: list[Endpoint] = []

    def mount(self, *endps: Endpoint) -> Self:
        self.endpoints.extend(endps)
        return self

    def routes(self) -> list[tuple[str, str]]:
        """(method, path) of every HTTP exposure, in mount order."""
        return [
            (trigger.method, trigger.path)
            for endp in self.endpoints
            for trigger, _ in endp.exposures
            if isinstance(trigger, HTTPRouteTrigger)
        ]