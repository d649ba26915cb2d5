"""Store core — the state behind every built-in store.

Store classes are thin handles around a StoreCore: the current value, the
ordered subscriber list, and the lazy start/stop activation pair. The core
never references its handle, so a handle can be finalized (and the core
closed) while subscriptions to the core are still held elsewhere.

Invariant: the core is active iff it has at least one subscriber, except
while a single 0 <-> 1 transition is in progress.
"""

from __future__ import annotations

import logging
import math
from enum import Enum
from numbers import Number
from typing import Callable, Generic, Optional, TypeVar

from storefx.errors import InvalidCallback, ReentrantMutation

logger = logging.getLogger("storefx.core")

T = TypeVar("T")

Setter = Callable[[T], None]
Stop = Callable[[], None]
StartFn = Callable[[Setter], Optional[Stop]]

# Compared by value. Everything else is compared by identity.
_PRIMITIVES = (type(None), bool, Number, str, bytes, Enum)


def safe_not_equal(old: object, new: object) -> bool:
    """True if ``new`` counts as a change from ``old``.

    Primitives compare by value, everything else by identity, so setting the
    same (possibly mutated) list again is a no-op while an equal copy is not.
    NaN replacing NaN is not a change.
    """
    if old is new:
        return False
    if isinstance(old, _PRIMITIVES) and isinstance(new, _PRIMITIVES):
        if type(old) is not type(new):
            return True
        if isinstance(old, float) and math.isnan(old) and math.isnan(new):
            return False
        return old != new
    return True


class Subscription(Generic[T]):
    """A registered callback plus its disposer.

    Calling the subscription (or ``dispose()``) removes it from its store.
    Once disposed it is permanently inert.
    """

    __slots__ = ("callback", "_core", "_disposed")

    def __init__(self, core: StoreCore[T], callback: Callable[[T], None]) -> None:
        self.callback = callback
        self._core: StoreCore[T] | None = core
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        core, self._core = self._core, None
        if core is not None:
            core._remove(self)

    def __call__(self) -> None:
        self.dispose()

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else "live"
        return f"Subscription({getattr(self.callback, '__name__', self.callback)!r}, {state})"


class StoreCore(Generic[T]):
    """Value + ordered subscribers + lazy activation."""

    __slots__ = ("value", "label", "_subscribers", "_start", "_stop", "_active", "_notifying", "__weakref__")

    def __init__(self, value: T, start: StartFn | None = None, label: str = "store") -> None:
        self.value = value
        self.label = label
        self._subscribers: list[Subscription[T]] = []
        self._start = start
        self._stop: Stop | None = None
        self._active = False
        self._notifying = False

    @property
    def active(self) -> bool:
        return self._active

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, callback: Callable[[T], None]) -> Subscription[T]:
        """Activate if needed, deliver the current value, then register."""
        if not callable(callback):
            raise InvalidCallback(callback)

        first = not self._active
        if first:
            self._activate()
        try:
            callback(self.value)
        except BaseException:
            if first and not self._subscribers:
                self._deactivate()
            raise

        subscription = Subscription(self, callback)
        self._subscribers.append(subscription)
        return subscription

    def set(self, value: T) -> None:
        """Store and notify, unless the value is unchanged."""
        if not safe_not_equal(self.value, value):
            return
        if self._notifying:
            raise ReentrantMutation(f"{self.label} was changed from inside its own notification pass")
        self.value = value
        self._notify(value)

    def _notify(self, value: T) -> None:
        self._notifying = True
        try:
            # Snapshot: subscribers added mid-pass wait for the next change,
            # subscribers disposed mid-pass are skipped.
            for subscription in list(self._subscribers):
                if not subscription.disposed:
                    subscription.callback(value)
        finally:
            self._notifying = False

    def _activate(self) -> None:
        self._active = True
        if self._start is None:
            return
        logger.debug("starting %s", self.label)
        try:
            self._stop = self._start(self.set)
        except BaseException:
            self._active = False
            raise

    def _deactivate(self) -> None:
        self._active = False
        stop, self._stop = self._stop, None
        if stop is not None:
            logger.debug("stopping %s", self.label)
            stop()

    def _remove(self, subscription: Subscription[T]) -> None:
        try:
            self._subscribers.remove(subscription)
        except ValueError:
            return
        if not self._subscribers and self._active:
            self._deactivate()

    def close(self) -> None:
        """Drop every subscriber and stop. Used when the owning handle is released."""
        subscriptions, self._subscribers = self._subscribers, []
        for subscription in subscriptions:
            subscription._disposed = True
            subscription._core = None
        if self._active:
            self._deactivate()

    def __repr__(self) -> str:
        state = "active" if self._active else "stopped"
        return f"StoreCore({self.label}, {self.value!r}, {state}, subscribers={len(self._subscribers)})"
