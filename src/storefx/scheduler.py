"""Reactive statement scheduler — recompute-when-inputs-change, in order.

Cells are named mutable values. Statements declare, at registration time,
which cells they read and which they write. The declared sets form the
graph Statement -> Cell (writes) -> Statement (reads), which must not loop
through two or more statements; registration rejects such a statement with
CyclicDependency.

One tick goes IDLE -> COLLECTING -> FLUSHING -> IDLE:

    sched = Scheduler()
    a = sched.cell(1, "a")
    b = sched.cell(0, "b")

    @sched.statement(reads=[a], writes=[b])
    def bump():
        b.set(a.get() + 1)

    a.set(5)          # a lone write is its own tick; bump runs before set returns

    with sched.tick():
        a.set(6)
        a.set(7)      # collected, bump runs once when the block exits

The flush runs every statement reachable from the written cells exactly
once, writers of a cell before its readers, ties by declaration order.
"""

from __future__ import annotations

import heapq
import logging
from enum import Enum
from typing import Any, Callable, ContextManager, Generic, Iterable, Iterator, TypeVar

from storefx._core import safe_not_equal
from storefx.action import transaction
from storefx.errors import ComputationFailure, CyclicDependency, UndeclaredWrite

logger = logging.getLogger("storefx.scheduler")

T = TypeVar("T")


class TickState(Enum):
    IDLE = "idle"
    COLLECTING = "collecting"
    FLUSHING = "flushing"


class Cell(Generic[T]):
    """A named reactive binding owned by one Scheduler."""

    __slots__ = ("name", "index", "_value", "_scheduler", "_readers", "_writers")

    def __init__(self, scheduler: Scheduler, value: T, name: str, index: int) -> None:
        self.name = name
        self.index = index
        self._value = value
        self._scheduler = scheduler
        self._readers: list[Statement] = []
        self._writers: list[Statement] = []

    def get(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        """Write the cell. Outside a tick this flushes before returning."""
        self._scheduler._write(self, value)

    def __repr__(self) -> str:
        return f"Cell({self.name}={self._value!r})"


class Statement:
    """A body plus its declared read and write sets."""

    __slots__ = ("index", "name", "reads", "writes", "body")

    def __init__(
        self,
        index: int,
        name: str,
        reads: tuple[Cell[Any], ...],
        writes: tuple[Cell[Any], ...],
        body: Callable[[], Any],
    ) -> None:
        self.index = index
        self.name = name
        self.reads = reads
        self.writes = writes
        self.body = body

    def __repr__(self) -> str:
        reads = ", ".join(c.name for c in self.reads)
        writes = ", ".join(c.name for c in self.writes)
        return f"Statement(#{self.index} {self.name}: [{reads}] -> [{writes}])"


def _unique(cells: Iterable[Cell[Any]]) -> tuple[Cell[Any], ...]:
    return tuple(dict.fromkeys(cells))


class Scheduler:
    """Owns cells and statements and runs one flush per tick."""

    def __init__(self, name: str | None = None) -> None:
        self.name = name or f"Scheduler@{id(self):#x}"
        self._cells: list[Cell[Any]] = []
        self._statements: list[Statement] = []
        self._state = TickState.IDLE
        self._depth = 0
        # Insertion-ordered set of cells written directly during this tick.
        self._dirty: dict[Cell[Any], None] = {}
        self._running: Statement | None = None

    @property
    def state(self) -> TickState:
        return self._state

    @property
    def pending_count(self) -> int:
        """Number of directly written cells waiting for the flush."""
        return len(self._dirty)

    @property
    def statements(self) -> tuple[Statement, ...]:
        return tuple(self._statements)

    # ─── Registration ──────────────────────────────────────────────────────

    def cell(self, value: T, name: str | None = None) -> Cell[T]:
        index = len(self._cells)
        cell = Cell(self, value, name or f"cell{index}", index)
        self._cells.append(cell)
        return cell

    def add_statement(
        self,
        body: Callable[[], Any],
        reads: Iterable[Cell[Any]],
        writes: Iterable[Cell[Any]] = (),
        *,
        name: str | None = None,
    ) -> Statement:
        """Register a statement. Rejects it if it would close a cycle."""
        if not callable(body):
            raise TypeError(f"statement body must be callable, got {type(body).__name__}")
        reads, writes = _unique(reads), _unique(writes)
        for cell in reads + writes:
            if not isinstance(cell, Cell) or cell._scheduler is not self:
                raise ValueError(f"{cell!r} is not a cell of {self.name}")

        index = len(self._statements)
        if name is None:
            name = getattr(body, "__name__", "<lambda>")
            if name == "<lambda>":
                name = f"statement{index}"
        statement = Statement(index, name, reads, writes, body)

        for cell in reads:
            cell._readers.append(statement)
        for cell in writes:
            cell._writers.append(statement)

        cycle = self._find_cycle(statement)
        if cycle is not None:
            for cell in reads:
                cell._readers.remove(statement)
            for cell in writes:
                cell._writers.remove(statement)
            raise CyclicDependency([s.name for s in cycle])

        self._statements.append(statement)
        return statement

    def statement(
        self,
        reads: Iterable[Cell[Any]],
        writes: Iterable[Cell[Any]] = (),
        *,
        name: str | None = None,
    ) -> Callable[[Callable[[], Any]], Statement]:
        """Decorator form of add_statement()."""

        def decorator(body: Callable[[], Any]) -> Statement:
            return self.add_statement(body, reads, writes, name=name)

        return decorator

    @staticmethod
    def _successors(statement: Statement) -> Iterator[Statement]:
        """Statements that read a cell this one writes. Self-loops excluded."""
        for cell in statement.writes:
            for reader in cell._readers:
                if reader is not statement:
                    yield reader

    def _find_cycle(self, start: Statement) -> list[Statement] | None:
        """Path start -> ... -> start through other statements, if any.

        The graph was acyclic before start was added, so any new cycle passes
        through start.
        """
        visited = {start}
        stack = [(start, self._successors(start))]
        while stack:
            _, successors = stack[-1]
            for nxt in successors:
                if nxt is start:
                    return [node for node, _ in stack] + [start]
                if nxt not in visited:
                    visited.add(nxt)
                    stack.append((nxt, self._successors(nxt)))
                    break
            else:
                stack.pop()
        return None

    # ─── Ticks ─────────────────────────────────────────────────────────────

    def tick(self) -> ContextManager[None]:
        """Collect direct writes; flush once when the outermost scope exits."""
        return transaction(self)

    def begin(self) -> None:
        """Enter a tick scope. Nested scopes are supported."""
        self._depth += 1
        if self._state is TickState.IDLE:
            self._state = TickState.COLLECTING

    def end(self) -> None:
        """Exit a tick scope. The outermost exit flushes."""
        self._depth -= 1
        if self._depth > 0 or self._state is not TickState.COLLECTING:
            return
        self._flush()

    def _write(self, cell: Cell[Any], value: Any) -> None:
        if self._state is TickState.FLUSHING:
            running = self._running
            if running is None or cell not in running.writes:
                who = running.name if running is not None else "code outside any statement"
                raise UndeclaredWrite(f"{who} wrote {cell.name} during a flush of {self.name}")
            cell._value = value
            return

        if not safe_not_equal(cell._value, value):
            return
        cell._value = value
        self._dirty[cell] = None
        self._state = TickState.COLLECTING
        if self._depth == 0:
            self._flush()

    # ─── Flush ─────────────────────────────────────────────────────────────

    def _affected(self, written: Iterable[Cell[Any]]) -> set[Statement]:
        """Forward closure of statements reachable from the written cells."""
        affected: set[Statement] = set()
        frontier = [reader for cell in written for reader in cell._readers]
        while frontier:
            statement = frontier.pop()
            if statement in affected:
                continue
            affected.add(statement)
            for cell in statement.writes:
                frontier.extend(r for r in cell._readers if r not in affected)
        return affected

    def _order(self, subset: set[Statement]) -> list[Statement]:
        """Topological order of subset, ties by ascending declaration index."""
        indegree = {statement: 0 for statement in subset}
        successors: dict[Statement, set[Statement]] = {}
        for statement in subset:
            following = {s for s in self._successors(statement) if s in subset}
            successors[statement] = following
            for s in following:
                indegree[s] += 1

        by_index = {statement.index: statement for statement in subset}
        ready = [s.index for s, degree in indegree.items() if degree == 0]
        heapq.heapify(ready)
        order: list[Statement] = []
        while ready:
            statement = by_index[heapq.heappop(ready)]
            order.append(statement)
            for s in successors[statement]:
                indegree[s] -= 1
                if indegree[s] == 0:
                    heapq.heappush(ready, s.index)

        if len(order) != len(subset):
            stuck = sorted(set(subset) - set(order), key=lambda s: s.index)
            raise CyclicDependency([s.name for s in stuck])
        return order

    def _flush(self) -> None:
        written = list(self._dirty)
        self._dirty.clear()
        try:
            order = self._order(self._affected(written))
        except CyclicDependency:
            self._state = TickState.IDLE
            raise
        self._run(order)

    def run_all(self) -> None:
        """Run every statement once in dependency order (an initial pass)."""
        if self._state is not TickState.IDLE:
            raise RuntimeError(f"run_all() called during a {self._state.value} tick of {self.name}")
        self._state = TickState.COLLECTING
        self._run(self._order(set(self._statements)))

    def _run(self, order: list[Statement]) -> None:
        self._state = TickState.FLUSHING
        logger.debug("%s: flushing %s", self.name, [s.name for s in order])
        try:
            for statement in order:
                self._running = statement
                try:
                    statement.body()
                except Exception as exc:
                    logger.debug("%s: %s failed, abandoning flush", self.name, statement.name)
                    raise ComputationFailure(f"statement {statement.name}", exc) from exc
                finally:
                    self._running = None
        finally:
            self._state = TickState.IDLE

    def __repr__(self) -> str:
        return (
            f"Scheduler({self.name}, {self._state.value}, "
            f"cells={len(self._cells)}, statements={len(self._statements)})"
        )
