"""Concurrency helpers built on anyio task groups."""

from collections.abc import Awaitable, Callable
from typing import cast

import anyio


def _first_leaf(group: BaseExceptionGroup[BaseException]) -> BaseException:
    exc: BaseException = group
    while isinstance(exc, BaseExceptionGroup):
        exc = cast("BaseExceptionGroup[BaseException]", exc).exceptions[0]
    return exc


async def gather[T](*calls: Callable[[], Awaitable[T]]) -> list[T]:
    """Run independent coroutine factories concurrently.

    Results keep the order of ``calls``. If any call fails the others are
    cancelled and the first failure is re-raised unwrapped, so callers can
    catch the original exception type instead of an exception group.

    Args:
        *calls: Zero-argument callables returning awaitables.

    Returns:
        The results in call order.
    """
    results: list[T | None] = [None] * len(calls)

    async def _run(index: int, call: Callable[[], Awaitable[T]]) -> None:
        results[index] = await call()

    try:
        async with anyio.create_task_group() as tg:
            for index, call in enumerate(calls):
                tg.start_soon(_run, index, call)
    except BaseExceptionGroup as group:
        raise _first_leaf(group) from None

    return cast("list[T]", results)
