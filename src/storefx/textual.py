"""Textual integration for storefx. Opt-in — requires textual.

A Textual app or widget is the external owner runtime: subscriptions made
on behalf of a widget are released when it unmounts. Callbacks are guarded
so they never touch the widget tree while it is being replaced or before
the app runs, and are marshaled onto the app thread.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Any, Callable, Iterator, TypeVar

from textual.css.query import NoMatches

from storefx.lifecycle import Owner
from storefx.store import Disposer, Store

T = TypeVar("T")

# Module-owned pause state, keyed by id(app) so multiple apps work in tests.
_paused_apps: set[int] = set()


@contextmanager
def pause(app: Any) -> Iterator[None]:
    """Drop deliveries to app while its widgets are being replaced."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app: Any) -> bool:
    """True when app is running and not paused, so widget queries can succeed."""
    return app.is_running and id(app) not in _paused_apps


def subscribe(app: Any, store: Store[T], callback: Callable[[T], None]) -> Disposer:
    """Subscribe callback to store on behalf of a widget of app.

    Values are dropped (not queued) while the app is paused or not running;
    the next change delivers the then-current value. A NoMatches raised by a
    widget query inside callback means the widget is gone and is ignored.
    Values set from a worker thread are delivered on the app thread.
    Returns the store's disposer.
    """
    app_thread = threading.get_ident()

    def deliver(value: T) -> None:
        try:
            callback(value)
        except NoMatches:
            pass

    def on_value(value: T) -> None:
        if not is_safe(app):
            return
        if threading.get_ident() == app_thread:
            deliver(value)
        else:
            app.call_from_thread(deliver, value)

    return store.subscribe(on_value)


class OwnerMixin:
    """Widget mixin: store subscriptions that end when the widget unmounts.

    class Counter(OwnerMixin, Static):
        def on_mount(self) -> None:
            self.bind(count, lambda n: self.update(str(n)))
    """

    _storefx_owner: Owner | None = None

    @property
    def owner(self) -> Owner:
        if self._storefx_owner is None or self._storefx_owner.destroyed:
            self._storefx_owner = Owner(type(self).__name__)
        return self._storefx_owner

    def bind(self, store: Store[T], callback: Callable[[T], None]) -> Disposer:
        """Guarded subscribe, released on unmount."""
        dispose = subscribe(self.app, store, callback)
        self.owner.on_teardown(dispose)
        return dispose

    def on_unmount(self) -> None:
        if self._storefx_owner is not None:
            owner, self._storefx_owner = self._storefx_owner, None
            owner.destroy()
