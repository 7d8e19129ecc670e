"""
Ops — data-driven dispatch with injection by type.

Replaces per-route if/else with declarative registration:
    from atelier import ops as O

    @dataclass(frozen=True, slots=True)
    class GetCart(O.Returning[CartView, Failure]):
        user_id: int

    async def get_cart(req: GetCart, db: Database) -> Result[CartView, Failure]:
        ...

    runner = O.ops().on(GetCart, get_cart).compile().inject(Database, db)
    result = await runner.run(GetCart(42))

Handlers name their collaborators by annotation; the runner hands over the
instance injected for that type. The request itself is matched by its Op type.
"""

from atelier.ops._dispatch import (
    Op,
    Returns,
    Returning,
    OpsBuilder,
    Runner,
    ops,
)

__all__ = (
    "Op",
    "Returns",
    "Returning",
    "OpsBuilder",
    "Runner",
    "ops",
)
