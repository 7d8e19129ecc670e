from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, TypeVar

from pydantic import BaseModel

from atelier.ops import Op


T_co = TypeVar("T_co", covariant=True)
E_co = TypeVar("E_co", covariant=True)
DomainT_co = TypeVar("DomainT_co", covariant=True)
DomainT_contra = TypeVar("DomainT_contra", contravariant=True)


class ToDomain(Protocol[DomainT_co]):
    """Validated request → op. ``caller`` is whatever the route's guard returned."""

    def to_domain(self, caller: Any) -> DomainT_co: ...


class FromDomain(Protocol[DomainT_contra]):
    """Success value → response model. Failures never reach the codec."""

    @classmethod
    def from_domain(cls, dom: DomainT_contra) -> BaseModel: ...


@dataclass(frozen=True, slots=True)
class RequestResponseCodec:
    request: type[ToDomain[Any]]
    response: type[FromDomain[Any]] | None = None

    if TYPE_CHECKING:

        def __init__(
            self,
            request: type[ToDomain[Op[T_co, E_co]]],
            response: type[FromDomain[T_co]] | None = None,
        ) -> None: ...
