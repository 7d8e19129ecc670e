"""
Ops — typed dispatch from request dataclass to handler.

Core idea:
- Op[T, E] is the base class for operations (frozen dataclasses)
- A handler is registered per Op type with ``ops().on(OpType, handler)``
- Handler params are resolved by annotation when the op runs:
    - req: OpType   → the request being run
    - dep: SomeType → the instance injected with ``.inject(SomeType, impl)``
- Expected failures come back as ``Error(Failure)``; anything a handler raises
  is logged with its traceback and becomes ``Error(Errors.internal())``.

Example:
    @dataclass(frozen=True, slots=True)
    class ValidateDiscount(Op[DiscountQuote, Failure]):
        code: str
        cart_total: Decimal

    async def validate_discount(
        req: ValidateDiscount,
        db: Database,     # injected
        clock: Clock,     # injected
    ) -> Result[DiscountQuote, Failure]:
        ...

    runner = ops().on(ValidateDiscount, validate_discount).compile()
    runner.inject(Database, db).inject(Clock, Clock())
    result = await runner.run(ValidateDiscount("SAVE10", Decimal("1250")))
"""

from __future__ import annotations

import inspect
import logging
from abc import ABC
from dataclasses import dataclass, field
from typing import Any, Callable, Awaitable, Generic, TypeVar, cast, get_type_hints

from kungfu import Result, Error, LazyCoroResult

from atelier._types import Lazy
from atelier.errors import Errors, Failure

log = logging.getLogger(__name__)

T = TypeVar("T")
E = TypeVar("E")
T_co = TypeVar("T_co", covariant=True)
E_co = TypeVar("E_co", covariant=True)

HandlerFunc = Callable[..., Awaitable[Result[Any, Any]]]


class Op(ABC, Generic[T_co, E_co]):
    """
    Base class for operations.

    The type parameters document what a handler returns: ``Result[T, E]``.
    """


def _is_op_type(typ: object) -> bool:
    """Check if type is an Op subclass."""
    try:
        return isinstance(typ, type) and issubclass(typ, Op)
    except TypeError:
        return False


@dataclass(frozen=True, slots=True)
class _OpReg:
    """Registration: Op type → handler + resolved parameter list."""
    op_type: type[Op[Any, Any]]
    handler: HandlerFunc
    params: tuple[tuple[str, Any], ...]


def _handler_params(
    op_type: type[Op[Any, Any]],
    handler: HandlerFunc,
) -> tuple[tuple[str, Any], ...]:
    """Read (name, type) pairs off the handler signature."""
    sig = inspect.signature(handler)
    hints = get_type_hints(handler)

    params: list[tuple[str, Any]] = []
    saw_request = False
    for pname, p in sig.parameters.items():
        ptype = hints.get(pname, p.annotation)
        if ptype is inspect.Parameter.empty:
            raise TypeError(
                f"{handler.__qualname__}: parameter {pname!r} needs a type annotation"
            )
        if ptype is op_type:
            saw_request = True
        elif _is_op_type(ptype):
            raise TypeError(
                f"{handler.__qualname__}: {pname!r} asks for another op ({ptype.__name__})"
            )
        params.append((pname, ptype))

    if not saw_request:
        raise TypeError(f"{handler.__qualname__} does not accept {op_type.__name__}")
    return tuple(params)


@dataclass(slots=True, frozen=True)
class OpsBuilder:
    """Builder for operation handlers."""
    _items: tuple[tuple[type[Op[Any, Any]], HandlerFunc], ...] = ()

    def on(
        self,
        op_type: type[Op[Any, Any]],
        handler: HandlerFunc,
    ) -> OpsBuilder:
        """Register handler for operation type."""
        # Last registration wins
        others = tuple(i for i in self._items if i[0] is not op_type)
        return OpsBuilder(_items=(*others, (op_type, handler)))

    def merge(self, other: OpsBuilder) -> OpsBuilder:
        """Combine two builders; registrations in ``other`` win."""
        merged = self
        for op_type, handler in other._items:
            merged = merged.on(op_type, handler)
        return merged

    def compile(self) -> Runner:
        """Compile into runner; signatures are checked here, not per call."""
        registrations: dict[type[Op[Any, Any]], _OpReg] = {}
        for op_type, handler in self._items:
            registrations[op_type] = _OpReg(
                op_type=op_type,
                handler=handler,
                params=_handler_params(op_type, handler),
            )
        return Runner(_registry=registrations)


@dataclass(slots=True)
class Runner:
    """
    Executes operations.

    When running an operation:
    1. Look up the registration for the request's type
    2. Build handler arguments from the request and injected dependencies
    3. Await the handler; convert escaped exceptions into an internal failure
    """
    _registry: dict[type[Op[Any, Any]], _OpReg]
    _injected: dict[Any, object] = field(default_factory=dict[Any, object])

    def inject(self, typ: Any, impl: object) -> Runner:
        """Inject shared dependency."""
        self._injected[typ] = impl
        return self

    def resolve[V](self, typ: type[V]) -> V:
        """Fetch an injected dependency (for wiring code outside handlers)."""
        try:
            return cast(V, self._injected[typ])
        except KeyError:
            raise LookupError(f"{typ.__name__} not injected") from None

    def _arguments(self, reg: _OpReg, req: Op[Any, Any]) -> dict[str, Any]:
        kwargs: dict[str, Any] = {}
        for pname, ptype in reg.params:
            if ptype is reg.op_type:
                kwargs[pname] = req
            elif ptype in self._injected:
                kwargs[pname] = self._injected[ptype]
            else:
                raise LookupError(
                    f"{reg.handler.__qualname__}: nothing injected for "
                    f"{pname}: {getattr(ptype, '__name__', ptype)}"
                )
        return kwargs

    async def run(self, req: Op[T, E]) -> Result[T, E | Failure]:
        """Execute operation."""
        op_type = type(req)
        reg = self._registry.get(op_type)
        if not reg:
            log.error("Op not registered: %s", op_type.__name__)
            return Error(Errors.internal())

        # wiring mistakes are programming errors; let them surface
        kwargs = self._arguments(reg, req)

        try:
            result = await reg.handler(**kwargs)
        except Exception:
            log.exception("Op %s raised", op_type.__name__)
            return Error(Errors.internal())
        return cast(Result[T, E | Failure], result)

    def __call__(self, req: Op[T, E]) -> Lazy[T, E | Failure]:
        """Execute operation (returns awaitable)."""
        async def inner() -> Result[T, E | Failure]:
            return await self.run(req)
        return LazyCoroResult(inner)


def ops() -> OpsBuilder:
    """Create ops builder: ops().on(...).compile()"""
    return OpsBuilder()


# Aliases
Returns = Op
Returning = Op

__all__ = ("Op", "Returns", "Returning", "OpsBuilder", "Runner", "ops")
