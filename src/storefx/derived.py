"""Derived stores — values computed from other stores.

A Derived is lazy: while nobody subscribes to it, it holds no subscriptions
upstream. The first subscriber makes it subscribe to every upstream in
declared order and compute once; the last disposer releases them all again,
so deactivation propagates up through chains of derived stores.

Every upstream notification recomputes immediately. There is no coalescing
across upstreams, so a diamond of derived stores can recompute more than once
per logical change.

Two forms:
- sync: ``combine(values) -> value``; the result goes through the usual
  unchanged-value check.
- setter (``uses_setter=True``): ``combine(values, set_)`` calls ``set_`` now,
  later, or never, and may return a cleanup callable that runs before the next
  combine and on deactivation. In-flight calls are not tracked or cancelled.

Usage:
    width = Writable(2)
    height = Writable(3)
    area = Derived([width, height], lambda wh: wh[0] * wh[1])

    doubled = Derived(width, lambda w: w * 2)   # single store -> bare value
"""

from __future__ import annotations

from typing import Any, Callable, Generic, Sequence, TypeVar, Union

from storefx._core import Setter, StartFn, StoreCore
from storefx.errors import ComputationFailure
from storefx.store import Disposer, Store, _finalize_with, _HandleDisposer, _label, get

T = TypeVar("T")

Upstreams = Union[Store[Any], Sequence[Store[Any]]]


def _derived_start(
    stores: tuple[Store[Any], ...],
    combine: Callable[..., Any],
    single: bool,
    uses_setter: bool,
    label: str,
) -> StartFn:
    """Build the start function of a derived store.

    Closes over the upstreams and combine only, never over the handle.
    """

    def start(set_: Setter) -> Callable[[], None]:
        values: list[Any] = [None] * len(stores)
        cleanup: Callable[[], None] | None = None
        ready = False

        def run() -> None:
            nonlocal cleanup
            if cleanup is not None:
                pending, cleanup = cleanup, None
                pending()
            args = values[0] if single else tuple(values)
            try:
                result = combine(args, set_) if uses_setter else combine(args)
            except Exception as exc:
                raise ComputationFailure(f"combine of {label}", exc) from exc
            if uses_setter:
                if callable(result):
                    cleanup = result
            else:
                set_(result)

        def on_upstream(index: int) -> Callable[[Any], None]:
            def callback(value: Any) -> None:
                values[index] = value
                if ready:
                    run()

            return callback

        disposers: list[Disposer] = []
        try:
            for index, store in enumerate(stores):
                disposers.append(store.subscribe(on_upstream(index)))
            ready = True
            run()
        except BaseException:
            for dispose in disposers:
                dispose()
            raise

        def stop() -> None:
            nonlocal cleanup
            for dispose in disposers:
                dispose()
            disposers.clear()
            if cleanup is not None:
                pending, cleanup = cleanup, None
                pending()

        return stop

    return start


class Derived(Generic[T]):
    """A store whose value is a function of one or more upstream stores."""

    __slots__ = ("_core", "__weakref__")

    def __init__(
        self,
        upstreams: Upstreams,
        combine: Callable[..., Any],
        initial: T | None = None,
        *,
        uses_setter: bool = False,
        name: str | None = None,
    ) -> None:
        single = isinstance(upstreams, Store)
        stores = (upstreams,) if single else tuple(upstreams)
        for store in stores:
            if not isinstance(store, Store):
                raise TypeError(f"derived upstream is not a store: {store!r}")
        if not callable(combine):
            raise TypeError(f"combine must be callable, got {type(combine).__name__}")

        label = _label(self, name)
        start = _derived_start(stores, combine, single, uses_setter, label)
        self._core: StoreCore[T] = StoreCore(initial, start, label)
        _finalize_with(self, self._core)

    def subscribe(self, callback: Callable[[T], None]) -> Disposer:
        return _HandleDisposer(self._core.subscribe(callback), self)

    def get(self) -> T:
        return get(self)

    def __repr__(self) -> str:
        state = "active" if self._core.active else "stopped"
        return f"Derived({self._core.value!r}, {state})"


def derived(
    upstreams: Upstreams,
    combine: Callable[..., Any],
    initial: Any = None,
    *,
    uses_setter: bool = False,
    name: str | None = None,
) -> Derived[Any]:
    """Factory for Derived.

    Usage:
        total = derived([price, qty], lambda pq: pq[0] * pq[1])
    """
    return Derived(upstreams, combine, initial, uses_setter=uses_setter, name=name)
