"""Exception taxonomy for storefx.

Every error surfaces synchronously to the caller of the operation that
triggered it. Nothing here is ever swallowed or deferred to a later tick.
"""

from __future__ import annotations


class StoreError(Exception):
    """Base class for all storefx errors."""


class InvalidCallback(StoreError, TypeError):
    """A subscriber or teardown argument is not callable."""

    def __init__(self, callback: object) -> None:
        super().__init__(f"expected a callable, got {type(callback).__name__}: {callback!r}")
        self.callback = callback


class ReentrantMutation(StoreError, RuntimeError):
    """A store was changed from inside its own notification pass."""


class CyclicDependency(StoreError, ValueError):
    """Registering a statement would close a loop through two or more statements."""

    def __init__(self, cycle: list[str]) -> None:
        super().__init__("cyclic dependency: " + " -> ".join(cycle))
        self.cycle = cycle


class ComputationFailure(StoreError):
    """An update function, derived combine, or statement body raised.

    The original exception is always available as ``__cause__``.
    """

    def __init__(self, source: str, error: BaseException) -> None:
        super().__init__(f"{source} failed: {type(error).__name__}: {error}")
        self.source = source
        self.error = error


class UndeclaredWrite(StoreError, RuntimeError):
    """A cell was written during a flush by something that did not declare it."""


class OwnerDestroyed(StoreError, RuntimeError):
    """Teardown registration on an owner that has already been destroyed."""


class NoCurrentOwner(StoreError, LookupError):
    """on_teardown() was called outside any owner scope."""
