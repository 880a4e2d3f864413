"""watch() — run an effect whenever any of its dependencies changes.

The change signals of all dependencies are merged into one stream and the
effect runs once per event in it, in arrival order. Nothing runs at
subscription time; watch_effect() additionally runs the effect once up front.
Both return a WatchHandle for cleanup via .dispose().

Effects that raise propagate to whoever triggered the change (usually the
code that wrote to a Ref). The subscription itself stays alive, except when
watch_effect()'s first run fails: then nothing is left subscribed.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable

from composed.dependency import changed_streams
from composed.stream import EventStream, Scheduler

logger = logging.getLogger("composed.watch")


class WatchHandle:
    """Disposable handle for a watch subscription."""

    __slots__ = ("_disposed", "_stream", "_tasks")

    def __init__(self, stream: EventStream[None]) -> None:
        self._disposed = False
        self._stream = stream
        self._tasks: set[asyncio.Task] = set()

    @property
    def disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        """Unsubscribe from every dependency and cancel running async effects."""
        if self._disposed:
            return
        self._disposed = True
        self._stream.dispose()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    def __enter__(self) -> WatchHandle:
        return self

    def __exit__(self, *exc_info) -> None:
        self.dispose()

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else "active"
        return f"WatchHandle({state})"


def watch(
    effect: Callable[[], Any], *dependencies: Any, scheduler: Scheduler | None = None
) -> WatchHandle:
    """Call effect() each time any dependency changes.

    Usage:
        first = Ref("Alice")
        last = Ref("Smith")
        log = []

        handle = watch(lambda: log.append(f"{first.value} {last.value}"), first, last)
        # log == [] (not run eagerly)

        first.value = "Bob"
        # log == ["Bob Smith"]

        handle.dispose()
        last.value = "Jones"
        # log == ["Bob Smith"], stopped

    A coroutine function effect is started as a task for every change, on
    the event loop running when watch() was called (writes from other threads
    are handed over to it). Calling watch() with such an effect outside a
    running loop raises RuntimeError. Disposing the handle cancels unfinished
    tasks.
    With scheduler, each change is delivered through scheduler(fn).
    """
    return _watch(effect, dependencies, scheduler, run_now=False)


def watch_effect(
    effect: Callable[[], Any], *dependencies: Any, scheduler: Scheduler | None = None
) -> WatchHandle:
    """Like watch(), but also runs effect() once right away."""
    return _watch(effect, dependencies, scheduler, run_now=True)


def _watch(effect, dependencies, scheduler, *, run_now: bool) -> WatchHandle:
    if not callable(effect):
        raise TypeError(f"effect must be callable, got {type(effect).__name__}")
    streams = changed_streams(dependencies)
    loop = _effect_loop() if inspect.iscoroutinefunction(effect) else None

    merged: EventStream[None] = EventStream.merge(*streams)
    handle = WatchHandle(merged)
    run = _task_starter(effect, handle, loop) if loop is not None else effect

    delivered = merged.observe_on(scheduler) if scheduler is not None else merged
    delivered.subscribe(lambda _: run())

    if run_now:
        if scheduler is not None:
            scheduler(lambda: None if handle.disposed else run())
        else:
            try:
                run()
            except BaseException:
                handle.dispose()
                raise
    return handle


def _effect_loop() -> asyncio.AbstractEventLoop:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        raise RuntimeError(
            "watching with a coroutine function effect requires a running event loop"
        ) from None


def _task_starter(
    effect: Callable[[], Any], handle: WatchHandle, loop: asyncio.AbstractEventLoop
) -> Callable[[], None]:
    """Start effect() as a task on loop, from whichever thread the change came."""

    def _spawn() -> None:
        if handle.disposed:
            return
        task = loop.create_task(effect())
        handle._tasks.add(task)
        task.add_done_callback(_finished)

    def _start() -> None:
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None
        if current is loop:
            _spawn()
            return
        try:
            loop.call_soon_threadsafe(_spawn)
        except RuntimeError:
            logger.warning("Dropped async watch effect %r, its event loop is closed", effect)

    def _finished(task: asyncio.Task) -> None:
        handle._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Async watch effect failed", exc_info=task.exception())

    return _start
