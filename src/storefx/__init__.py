"""storefx: Svelte-style stores and an ordered reactive statement scheduler."""

from importlib.metadata import version as _version

__version__ = _version("storefx")

from storefx.errors import (
    StoreError,
    InvalidCallback,
    ReentrantMutation,
    CyclicDependency,
    ComputationFailure,
    UndeclaredWrite,
    OwnerDestroyed,
    NoCurrentOwner,
)
from storefx.store import Store, Disposer, Writable, Readable, ReadOnly, readonly, get
from storefx.derived import Derived, derived
from storefx.lifecycle import Owner, on_teardown
from storefx.scheduler import Scheduler, Cell, Statement, TickState
from storefx.action import action, transaction
# textual NOT auto-imported — opt-in only

__all__ = [
    "Store",
    "Disposer",
    "Writable",
    "Readable",
    "ReadOnly",
    "readonly",
    "get",
    "Derived",
    "derived",
    "Owner",
    "on_teardown",
    "Scheduler",
    "Cell",
    "Statement",
    "TickState",
    "action",
    "transaction",
    "StoreError",
    "InvalidCallback",
    "ReentrantMutation",
    "CyclicDependency",
    "ComputationFailure",
    "UndeclaredWrite",
    "OwnerDestroyed",
    "NoCurrentOwner",
]
