"""Actions and transactions — one unit of work, one scheduler tick.

Wrapping cell writes in an @action or `with transaction()` collects them
and flushes the affected statements once, when the outermost scope exits.
Statements never observe a half-applied unit of work.

A scope left by an exception still flushes, so statements never lag behind
the cells that were written. A failing flush then propagates, chained
to the original exception.
"""

from __future__ import annotations

import functools
from contextlib import contextmanager
from typing import TYPE_CHECKING, Callable, Iterator, ParamSpec, TypeVar

if TYPE_CHECKING:
    from storefx.scheduler import Scheduler

P = ParamSpec("P")
R = TypeVar("R")


def action(scheduler: Scheduler) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """Decorator: run fn as a single tick of scheduler.

    Statements only run after fn returns, not during.

    Usage:
        sched = Scheduler()
        first = sched.cell("Ada")
        last = sched.cell("Lovelace")

        @action(sched)
        def rename(f, l):
            first.set(f)
            last.set(l)
            # a statement reading both runs once, after both are set
    """

    def decorator(fn: Callable[P, R]) -> Callable[P, R]:
        @functools.wraps(fn)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            with transaction(scheduler):
                return fn(*args, **kwargs)

        return wrapper

    return decorator


@contextmanager
def transaction(scheduler: Scheduler) -> Iterator[None]:
    """Context manager for one tick.

    Usage:
        with transaction(sched):
            a.set(1)
            b.set(2)
            # statements run here, after both are set
    """
    scheduler.begin()
    try:
        yield
    finally:
        scheduler.end()
