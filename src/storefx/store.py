"""Stores — externally observable values.

Anything with ``subscribe(callback) -> disposer`` is a store. Built-in
stores are thin handles over a StoreCore (see _core.py):

    count = Writable(0)
    dispose = count.subscribe(print)   # prints 0
    count.set(1)                       # prints 1
    count.update(lambda n: n + 1)      # prints 2
    dispose()

A Readable's value is pushed by whoever it was started with:

    def start(set_):
        timer = Timer(set_)
        return timer.cancel

    clock = Readable(None, start)  # start runs on first subscribe, stop on last dispose
"""

from __future__ import annotations

import weakref
from typing import Any, Callable, Generic, Protocol, TypeVar, runtime_checkable

from storefx._core import StartFn, StoreCore, Subscription
from storefx.errors import ComputationFailure

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)

Disposer = Callable[[], None]

_MISSING = object()


@runtime_checkable
class Store(Protocol[T_co]):
    """The store capability: one operation, nothing else."""

    def subscribe(self, callback: Callable[[T_co], None]) -> Disposer: ...


def _label(handle: object, name: str | None) -> str:
    return name or f"{type(handle).__name__}@{id(handle):#x}"


def _finalize_with(handle: object, core: StoreCore) -> None:
    """Close the core (stopping it if active) once the handle is released.

    A handle counts as released only when neither the handle nor any disposer
    obtained from it is referenced anymore (see _HandleDisposer).
    """
    weakref.finalize(handle, core.close)


class _HandleDisposer:
    """Disposer returned by built-in stores.

    Holds the store handle until disposed, so a subscription made on a
    temporary handle keeps the store running. The core's subscriber list
    only sees the inner Subscription, never the handle.
    """

    __slots__ = ("_subscription", "_handle")

    def __init__(self, subscription: Subscription, handle: object) -> None:
        self._subscription = subscription
        self._handle: object | None = handle

    @property
    def disposed(self) -> bool:
        return self._subscription.disposed

    def dispose(self) -> None:
        self._subscription.dispose()
        self._handle = None

    def __call__(self) -> None:
        self.dispose()

    def __repr__(self) -> str:
        return f"Disposer({self._subscription!r})"


class Writable(Generic[T]):
    """A store mutated directly through set() and update()."""

    __slots__ = ("_core", "__weakref__")

    def __init__(self, value: T, start: StartFn | None = None, *, name: str | None = None) -> None:
        self._core: StoreCore[T] = StoreCore(value, start, _label(self, name))
        if start is not None:
            _finalize_with(self, self._core)

    def subscribe(self, callback: Callable[[T], None]) -> Disposer:
        return _HandleDisposer(self._core.subscribe(callback), self)

    def set(self, value: T) -> None:
        """Store value and notify subscribers in order. No-op if unchanged."""
        self._core.set(value)

    def update(self, fn: Callable[[T], T]) -> None:
        """set(fn(current)). If fn raises, nothing changes."""
        try:
            value = fn(self._core.value)
        except Exception as exc:
            raise ComputationFailure(f"update of {self._core.label}", exc) from exc
        self._core.set(value)

    def get(self) -> T:
        return get(self)

    def __repr__(self) -> str:
        return f"Writable({self._core.value!r})"


class Readable(Generic[T]):
    """A store whose value is driven by its start function.

    ``start(set_)`` runs on every stopped -> active transition and may return
    a ``stop`` callable, which runs exactly once when the last subscriber
    leaves. Nothing carries over from one activation to the next.
    """

    __slots__ = ("_core", "__weakref__")

    def __init__(self, value: T, start: StartFn | None = None, *, name: str | None = None) -> None:
        self._core: StoreCore[T] = StoreCore(value, start, _label(self, name))
        if start is not None:
            _finalize_with(self, self._core)

    def subscribe(self, callback: Callable[[T], None]) -> Disposer:
        return _HandleDisposer(self._core.subscribe(callback), self)

    def get(self) -> T:
        return get(self)

    def __repr__(self) -> str:
        state = "active" if self._core.active else "stopped"
        return f"Readable({self._core.value!r}, {state})"


class ReadOnly(Generic[T]):
    """Subscribe-only view of another store."""

    __slots__ = ("_store",)

    def __init__(self, store: Store[T]) -> None:
        self._store = store

    def subscribe(self, callback: Callable[[T], None]) -> Disposer:
        return self._store.subscribe(callback)

    def get(self) -> T:
        return get(self._store)

    def __repr__(self) -> str:
        return f"ReadOnly({self._store!r})"


def readonly(store: Store[T]) -> ReadOnly[T]:
    """Hide a store's mutators, keeping only subscribe()."""
    return ReadOnly(store)


def get(store: Store[T]) -> T:
    """Current value of any store.

    Active built-in stores answer from their cached value. Anything else is
    subscribed to and immediately released, which briefly activates a lazy
    store.
    """
    core = getattr(store, "_core", None)
    if isinstance(core, StoreCore) and core.active:
        return core.value

    value: Any = _MISSING

    def _capture(v: T) -> None:
        nonlocal value
        value = v

    dispose = store.subscribe(_capture)
    dispose()
    if value is _MISSING:
        raise RuntimeError(f"{store!r} did not deliver a value on subscribe")
    return value
