from __future__ import annotations

from dataclasses import dataclass

import pytest
from kungfu import Result, Ok, Error

from atelier import ops as O
from atelier.errors import ErrorKind, Errors, Failure

from conftest import err, ok


@dataclass(frozen=True, slots=True)
class Greet(O.Returning[str, Failure]):
    name: str


@dataclass(frozen=True, slots=True)
class Explode(O.Returning[None, Failure]):
    pass


class Greeter:
    def __init__(self, greeting: str) -> None:
        self.greeting = greeting


async def greet(req: Greet, greeter: Greeter) -> Result[str, Failure]:
    if not req.name:
        return Error(Errors.invalid_argument("Name is required"))
    return Ok(f"{greeter.greeting}, {req.name}")


async def explode(req: Explode) -> Result[None, Failure]:
    raise RuntimeError("boom")


async def test_injects_collaborators_by_type():
    runner = O.ops().on(Greet, greet).compile().inject(Greeter, Greeter("Hello"))

    assert ok(await runner.run(Greet("Ada"))) == "Hello, Ada"
    assert err(await runner.run(Greet(""))).kind is ErrorKind.INVALID_ARGUMENT


async def test_lazy_call_defers_until_awaited():
    runner = O.ops().on(Greet, greet).compile().inject(Greeter, Greeter("Hi"))

    pending = runner(Greet("Bo"))

    assert ok(await pending) == "Hi, Bo"


async def test_handler_exception_becomes_internal_failure():
    runner = O.ops().on(Explode, explode).compile()

    failure = err(await runner.run(Explode()))

    assert failure.kind is ErrorKind.INTERNAL
    assert "boom" not in failure.message


async def test_unregistered_op_is_internal():
    runner = O.ops().compile()

    assert err(await runner.run(Greet("Ada"))).kind is ErrorKind.INTERNAL


async def test_missing_injection_is_a_wiring_error():
    runner = O.ops().on(Greet, greet).compile()

    with pytest.raises(LookupError):
        await runner.run(Greet("Ada"))


def test_compile_rejects_unannotated_handlers():
    async def sloppy(req: Greet, thing) -> Result[str, Failure]:  # noqa: ANN001
        return Ok("")

    with pytest.raises(TypeError):
        O.ops().on(Greet, sloppy).compile()


async def test_merged_registration_wins():
    async def other(req: Greet) -> Result[str, Failure]:
        return Ok("other")

    runner = O.ops().on(Greet, greet).merge(O.ops().on(Greet, other)).compile()

    assert ok(await runner.run(Greet("Ada"))) == "other"
    with pytest.raises(LookupError):
        runner.resolve(Greeter)
