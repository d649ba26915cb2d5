"""Owners — a single teardown point for subscriptions and other cleanups.

An Owner stands in for whatever external object (a component instance, a
widget) is responsible for releasing subscriptions. Register disposers with
it as they are created; destroy() calls every one of them exactly once.

    owner = Owner()
    owner.subscribe(count, render)
    owner.on_teardown(lambda: log.append("gone"))
    ...
    owner.destroy()

Owners are also context managers, and scope() makes an owner current so
setup code can call the module-level on_teardown() without passing it around:

    with Owner() as owner:
        with owner.scope():
            on_teardown(connection.close)
"""

from __future__ import annotations

import contextvars
import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator, TypeVar

from storefx.errors import InvalidCallback, NoCurrentOwner, OwnerDestroyed
from storefx.store import Disposer, Store

logger = logging.getLogger("storefx.lifecycle")

T = TypeVar("T")

# The owner that module-level on_teardown() registers with.
current_owner: contextvars.ContextVar[Owner | None] = contextvars.ContextVar(
    "current_owner", default=None
)


class Owner:
    """Collects teardown callables and runs each once on destroy()."""

    __slots__ = ("name", "_teardowns", "_destroyed")

    def __init__(self, name: str | None = None) -> None:
        self.name = name
        self._teardowns: list[Callable[[], Any]] = []
        self._destroyed = False

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def on_teardown(self, fn: Callable[[], Any]) -> Callable[[], Any]:
        """Register fn to run when this owner is destroyed. Returns fn."""
        if not callable(fn):
            raise InvalidCallback(fn)
        if self._destroyed:
            raise OwnerDestroyed(f"{self!r} is already destroyed")
        self._teardowns.append(fn)
        return fn

    def subscribe(self, store: Store[T], callback: Callable[[T], None]) -> Disposer:
        """Subscribe and release the subscription on destroy()."""
        if self._destroyed:
            raise OwnerDestroyed(f"{self!r} is already destroyed")
        dispose = store.subscribe(callback)
        self._teardowns.append(dispose)
        return dispose

    def destroy(self) -> None:
        """Run every registered teardown once, in registration order.

        A failing teardown does not stop the rest. Failures are logged and the
        first one is re-raised after all teardowns ran.
        """
        if self._destroyed:
            return
        self._destroyed = True
        teardowns, self._teardowns = self._teardowns, []

        first_error: BaseException | None = None
        for fn in teardowns:
            try:
                fn()
            except Exception as exc:
                logger.exception("Teardown %r of %r failed", fn, self)
                if first_error is None:
                    first_error = exc
        logger.debug("Destroyed %r: %d teardowns", self, len(teardowns))
        if first_error is not None:
            raise first_error

    @contextmanager
    def scope(self) -> Iterator[Owner]:
        """Make this owner current for module-level on_teardown()."""
        token = current_owner.set(self)
        try:
            yield self
        finally:
            current_owner.reset(token)

    def __enter__(self) -> Owner:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.destroy()

    def __repr__(self) -> str:
        state = "destroyed" if self._destroyed else f"{len(self._teardowns)} pending"
        return f"Owner({self.name or hex(id(self))}, {state})"


def on_teardown(fn: Callable[[], Any]) -> Callable[[], Any]:
    """Register fn with the current owner. Usable as a decorator."""
    owner = current_owner.get()
    if owner is None:
        raise NoCurrentOwner("on_teardown() called outside an owner scope")
    return owner.on_teardown(fn)
