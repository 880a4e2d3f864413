"""Tests for watch() and watch_effect() — effects driven by merged dependencies."""

import asyncio
import threading

import pytest

from composed import EventStream, Ref, as_dependency, watch, watch_effect


class TestWatch:
    def test_not_eager(self):
        dep = Ref(0)
        calls = []
        handle = watch(lambda: calls.append(1), dep)
        handle.dispose()
        assert calls == []

    def test_fan_in(self):
        """One call per change, whichever dependency changed."""
        dep1 = Ref(0)
        dep2 = Ref("a")
        calls = []
        watch(lambda: calls.append((dep1.value, dep2.value)), dep1, dep2)
        dep1.value = 1
        dep2.value = "b"
        assert calls == [(1, "a"), (1, "b")]

    def test_equal_write_does_not_trigger(self):
        dep = Ref(0)
        calls = []
        watch(lambda: calls.append(1), dep)
        dep.value = 0
        assert calls == []

    def test_no_dependencies_never_runs(self):
        calls = []
        handle = watch(lambda: calls.append(1))
        assert calls == []
        assert not handle.disposed
        handle.dispose()

    def test_dispose_stops_effect(self):
        dep = Ref(0)
        calls = []
        handle = watch(lambda: calls.append(dep.value), dep)
        dep.value = 1
        handle.dispose()
        dep.value = 2
        assert calls == [1]
        assert handle.disposed

    def test_dispose_is_idempotent(self):
        handle = watch(lambda: None, Ref(0))
        handle.dispose()
        handle.dispose()

    def test_dispose_unsubscribes_from_dependencies(self):
        dep = Ref(0)
        handle = watch(lambda: None, dep)
        handle.dispose()
        assert dep.changed._subscribers == []

    def test_context_manager(self):
        dep = Ref(0)
        calls = []
        with watch(lambda: calls.append(1), dep):
            dep.value = 1
        dep.value = 2
        assert calls == [1]

    def test_raw_stream_and_adapted_dependency(self):
        stream = EventStream()
        source = EventStream()
        calls = []
        watch(lambda: calls.append(1), stream, as_dependency(source))
        stream.emit(None)
        source.emit("payload")
        assert calls == [1, 1]

    def test_effect_error_propagates_to_writer(self):
        dep = Ref(0)
        calls = []

        def effect():
            calls.append(dep.value)
            if dep.value == 1:
                raise RuntimeError("effect failed")

        watch(effect, dep)
        with pytest.raises(RuntimeError, match="effect failed"):
            dep.value = 1
        assert dep.value == 1

        # Subscription survives the failure
        dep.value = 2
        assert calls == [1, 2]

    def test_scheduler_delivery(self):
        queue = []
        dep = Ref(0)
        calls = []
        handle = watch(lambda: calls.append(dep.value), dep, scheduler=queue.append)
        dep.value = 1
        assert calls == []
        queue.pop(0)()
        assert calls == [1]

        dep.value = 2
        handle.dispose()
        queue.pop(0)()
        assert calls == [1]

    def test_rejects_non_callable_effect(self):
        with pytest.raises(TypeError):
            watch(None, Ref(0))

    def test_rejects_none_dependency_before_subscribing(self):
        dep = Ref(0)
        with pytest.raises(ValueError):
            watch(lambda: None, dep, None)
        assert dep.changed._subscribers == []


class TestWatchEffect:
    def test_runs_immediately_then_on_change(self):
        dep = Ref(0)
        calls = []
        watch_effect(lambda: calls.append(dep.value), dep)
        assert calls == [0]
        dep.value = 1
        assert calls == [0, 1]

    def test_no_dependencies_runs_once(self):
        calls = []
        watch_effect(lambda: calls.append(1))
        assert calls == [1]

    def test_immediate_run_goes_through_scheduler(self):
        queue = []
        calls = []
        watch_effect(lambda: calls.append(1), Ref(0), scheduler=queue.append)
        assert calls == []
        queue.pop()()
        assert calls == [1]


    def test_failed_first_run_leaves_nothing_subscribed(self):
        dep = Ref(0)
        calls = []

        def effect():
            calls.append(dep.value)
            if dep.value == 0:
                raise ValueError("not ready")

        with pytest.raises(ValueError, match="not ready"):
            watch_effect(effect, dep)
        assert dep.changed._subscribers == []

        dep.value = 1
        assert calls == [0]


class TestAsyncEffect:
    def test_starts_task_per_change(self):
        dep = Ref(0)
        seen = []

        async def effect():
            await asyncio.sleep(0)
            seen.append(dep.value)

        async def main():
            watch(effect, dep)
            dep.value = 1
            await asyncio.sleep(0.01)
            dep.value = 2
            await asyncio.sleep(0.01)

        asyncio.run(main())
        assert seen == [1, 2]

    def test_dispose_cancels_running_tasks(self):
        dep = Ref(0)
        started = []
        finished = []

        async def effect():
            started.append(1)
            await asyncio.sleep(10)
            finished.append(1)

        async def main():
            handle = watch(effect, dep)
            dep.value = 1
            await asyncio.sleep(0)
            handle.dispose()
            await asyncio.sleep(0.01)

        asyncio.run(main())
        assert started == [1]
        assert finished == []

    def test_failed_effect_is_logged(self, caplog):
        dep = Ref(0)

        async def effect():
            raise ValueError("async boom")

        async def main():
            watch(effect, dep)
            dep.value = 1
            await asyncio.sleep(0.01)

        asyncio.run(main())
        assert "Async watch effect failed" in caplog.text

    def test_requires_running_loop(self):
        dep = Ref(0)

        async def effect():
            pass

        with pytest.raises(RuntimeError, match="running event loop"):
            watch(effect, dep)
        assert dep.changed._subscribers == []

    def test_write_from_another_thread_starts_task_on_loop(self):
        dep = Ref(0)
        seen = []

        async def effect():
            seen.append((dep.value, threading.get_ident()))

        async def main():
            watch(effect, dep)
            writer = threading.Thread(target=lambda: setattr(dep, "value", 1))
            writer.start()
            writer.join()
            await asyncio.sleep(0.01)
            return threading.get_ident()

        loop_thread = asyncio.run(main())
        assert seen == [(1, loop_thread)]

    def test_write_after_loop_closed_reaches_other_subscribers(self, caplog):
        dep = Ref(0)
        ran = []
        notified = []

        async def effect():
            ran.append(1)

        async def main():
            watch(effect, dep)

        asyncio.run(main())
        dep.property_changed.subscribe(notified.append)

        dep.value = 1
        assert dep.value == 1
        assert notified == ["value"]
        assert ran == []
        assert "event loop is closed" in caplog.text
