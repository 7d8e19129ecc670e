from collections.abc import Mapping
from typing import Any, Protocol

from kungfu import Result

from atelier.errors import Failure
from atelier.wire.codecs.rrc import RequestResponseCodec


class Guard(Protocol):
    """Headers in, caller out. The caller is handed to ``to_domain``."""

    def authorize(self, headers: Mapping[str, str]) -> Result[Any, Failure]: ...


# compiler can support any possible pairs
type Trigger = Any
type Codec = RequestResponseCodec | Any
type Exposure = tuple[Trigger, Codec]
