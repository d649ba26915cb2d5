"""Tests for Writable, Readable, readonly() and get()."""

import gc
import math

import pytest

from storefx import (
    ComputationFailure,
    InvalidCallback,
    Readable,
    ReentrantMutation,
    Store,
    Writable,
    get,
    readonly,
)


class TestWritable:
    def test_scenario(self):
        w = Writable(0)
        log = []
        w.subscribe(log.append)
        assert log == [0]
        w.set(0)
        assert log == [0]
        w.set(5)
        assert log == [0, 5]
        w.update(lambda n: n + 1)
        assert log == [0, 5, 6]

    def test_dedup(self):
        """Setting an equal primitive should not notify."""
        w = Writable("hello")
        log = []
        w.subscribe(log.append)
        w.set("hello")
        w.set("hel" + "lo")
        assert log == ["hello"]

    def test_subscription_order(self):
        w = Writable(1)
        calls = []
        w.subscribe(lambda v: calls.append(("a", v)))
        w.subscribe(lambda v: calls.append(("b", v)))
        w.subscribe(lambda v: calls.append(("c", v)))
        calls.clear()
        w.set(2)
        w.set(3)
        assert calls == [("a", 2), ("b", 2), ("c", 2), ("a", 3), ("b", 3), ("c", 3)]

    def test_reference_types_compare_by_identity(self):
        items = [1, 2]
        w = Writable(items)
        log = []
        w.subscribe(lambda v: log.append(list(v)))
        items.append(3)
        w.set(items)  # same object, not a change
        assert log == [[1, 2]]
        w.set([1, 2, 3])  # equal but new object
        assert log == [[1, 2], [1, 2, 3]]

    def test_nan_is_unchanged(self):
        w = Writable(float("nan"))
        log = []
        w.subscribe(log.append)
        w.set(float("nan"))
        assert len(log) == 1
        assert math.isnan(log[0])

    def test_type_change_is_a_change(self):
        w = Writable(1)
        log = []
        w.subscribe(log.append)
        w.set(True)
        w.set(1.0)
        assert log == [1, True, 1.0]
        assert [type(v) for v in log] == [int, bool, float]

    def test_unsubscribe(self):
        w = Writable(0)
        log = []
        dispose = w.subscribe(log.append)
        w.set(1)
        dispose()
        w.set(2)
        assert log == [0, 1]

    def test_dispose_idempotent(self):
        w = Writable(0)
        a, b = [], []
        dispose_a = w.subscribe(a.append)
        w.subscribe(b.append)
        dispose_a()
        dispose_a()
        dispose_a.dispose()
        assert dispose_a.disposed
        w.set(1)
        assert a == [0]
        assert b == [0, 1]

    def test_update_failure_leaves_value(self):
        w = Writable(10)
        log = []
        w.subscribe(log.append)

        def boom(n):
            raise ValueError("boom")

        with pytest.raises(ComputationFailure) as info:
            w.update(boom)
        assert isinstance(info.value.__cause__, ValueError)
        assert w.get() == 10
        assert log == [10]

    def test_invalid_callback(self):
        w = Writable(0)
        with pytest.raises(InvalidCallback):
            w.subscribe(42)
        with pytest.raises(TypeError):
            w.subscribe(None)

    def test_reentrant_set_raises(self):
        w = Writable(0)

        def bounce(v):
            if v > 0:
                w.set(v + 1)

        w.subscribe(bounce)
        with pytest.raises(ReentrantMutation):
            w.set(1)
        # the outer set was applied before the failing pass
        assert w.get() == 1

    def test_reentrant_unchanged_set_is_noop(self):
        w = Writable(0)
        log = []
        w.subscribe(lambda v: w.set(v))
        w.subscribe(log.append)
        w.set(3)
        assert log == [0, 3]

    def test_set_other_store_from_callback(self):
        """Cross-store writes inside a callback are processed immediately."""
        a = Writable(0)
        b = Writable(0)
        log = []
        a.subscribe(lambda v: b.set(v * 10))
        b.subscribe(lambda v: log.append(("b", v)))
        a.subscribe(lambda v: log.append(("a", v)))
        log.clear()
        a.set(2)
        assert log == [("b", 20), ("a", 2)]

    def test_dispose_during_notification_skips(self):
        w = Writable(0)
        log = []
        disposers = {}

        def first(v):
            if v == 1:
                disposers["second"]()

        w.subscribe(first)
        disposers["second"] = w.subscribe(lambda v: log.append(v))
        w.set(1)
        assert log == [0]

    def test_subscriber_error_propagates(self):
        w = Writable(0)

        def fail(v):
            if v:
                raise KeyError("nope")

        w.subscribe(fail)
        with pytest.raises(KeyError):
            w.set(1)

    def test_failed_initial_callback_not_registered(self):
        stops = []
        w = Writable(0, lambda set_: lambda: stops.append(1))

        def fail(v):
            raise RuntimeError("first delivery")

        with pytest.raises(RuntimeError):
            w.subscribe(fail)
        assert stops == [1]  # activated, then rolled back
        assert not w._core.active

    def test_is_a_store(self):
        assert isinstance(Writable(0), Store)

    def test_repr(self):
        assert "Writable(5)" in repr(Writable(5))


class TestReadable:
    def _counting(self):
        counts = {"activations": 0, "deactivations": 0}

        def start(set_):
            counts["activations"] += 1

            def stop():
                counts["deactivations"] += 1

            return stop

        return counts, start

    def test_activation_scenario(self):
        counts, start = self._counting()
        r = Readable(0, start)
        dispose = r.subscribe(lambda v: None)
        dispose()
        r.subscribe(lambda v: None)
        assert counts == {"activations": 2, "deactivations": 1}

    def test_start_only_on_first_subscriber(self):
        counts, start = self._counting()
        r = Readable(0, start)
        d1 = r.subscribe(lambda v: None)
        d2 = r.subscribe(lambda v: None)
        assert counts["activations"] == 1
        d1()
        assert counts["deactivations"] == 0
        d2()
        d2()
        assert counts == {"activations": 1, "deactivations": 1}

    def test_start_runs_before_initial_value(self):
        r = Readable("initial", lambda set_: set_("started"))
        log = []
        r.subscribe(log.append)
        assert log == ["started"]

    def test_setter_pushes_values(self):
        setters = []
        r = Readable(0, lambda set_: setters.append(set_))
        log = []
        r.subscribe(log.append)
        setters[0](1)
        setters[0](1)
        setters[0](2)
        assert log == [0, 1, 2]

    def test_fresh_start_each_activation(self):
        setters = []
        r = Readable(0, lambda set_: setters.append(set_))
        r.subscribe(lambda v: None)()
        r.subscribe(lambda v: None)()
        assert len(setters) == 2

    def test_start_may_return_none(self):
        r = Readable(7, lambda set_: None)
        dispose = r.subscribe(lambda v: None)
        dispose()
        assert not r._core.active

    def test_get_activates_briefly(self):
        counts, start = self._counting()
        r = Readable(3, start)
        assert r.get() == 3
        assert counts == {"activations": 1, "deactivations": 1}

    def test_release_stops_active_store(self):
        counts, start = self._counting()
        r = Readable(0, start)
        dispose = r.subscribe(lambda v: None)
        del r
        gc.collect()
        # the held disposer keeps the store running
        assert counts == {"activations": 1, "deactivations": 0}
        del dispose
        gc.collect()
        assert counts == {"activations": 1, "deactivations": 1}

    def test_temporary_handle_stays_active_until_disposed(self):
        counts, start = self._counting()
        setters = []

        def start_and_keep(set_):
            setters.append(set_)
            return start(set_)

        log = []
        dispose = Readable(0, start_and_keep).subscribe(log.append)
        gc.collect()
        assert counts == {"activations": 1, "deactivations": 0}
        setters[0](1)
        assert log == [0, 1]
        dispose()
        assert counts == {"activations": 1, "deactivations": 1}

    def test_start_failure_leaves_store_stopped(self):
        def start(set_):
            raise OSError("no device")

        r = Readable(0, start)
        with pytest.raises(OSError):
            r.subscribe(lambda v: None)
        assert not r._core.active


class TestReadonly:
    def test_hides_mutators(self):
        w = Writable(1)
        ro = readonly(w)
        assert not hasattr(ro, "set")
        log = []
        ro.subscribe(log.append)
        w.set(2)
        assert log == [1, 2]
        assert ro.get() == 2


class TestGet:
    def test_custom_store(self):
        """Any object with subscribe() works with get()."""

        class Constant:
            def __init__(self, value):
                self.value = value
                self.disposed = 0

            def subscribe(self, callback):
                callback(self.value)

                def dispose():
                    self.disposed += 1

                return dispose

        c = Constant("x")
        assert isinstance(c, Store)
        assert get(c) == "x"
        assert c.disposed == 1

    def test_active_store_uses_cache(self):
        counts = {"starts": 0}

        def start(set_):
            counts["starts"] += 1

        r = Readable(1, start)
        r.subscribe(lambda v: None)
        assert get(r) == 1
        assert get(r) == 1
        assert counts["starts"] == 1

    def test_silent_store_raises(self):
        class Silent:
            def subscribe(self, callback):
                return lambda: None

        with pytest.raises(RuntimeError):
            get(Silent())
