"""Push-based event stream with operator chaining.

The substrate every change signal in composed is built on: emit values,
subscribe to them, and compose with map/filter/merge/observe_on. Each
operator returns a new stream (immutable chain). dispose() tears down the
entire downstream chain and detaches the stream from its upstreams.
"""

from __future__ import annotations

from typing import Callable, Generic, TypeVar

T = TypeVar("T")
U = TypeVar("U")

Disposer = Callable[[], None]
Scheduler = Callable[[Callable[[], None]], None]


def _noop() -> None:
    pass


class EventStream(Generic[T]):
    """Push-based event stream with operator chaining."""

    def __init__(self) -> None:
        self._subscribers: list[Callable[[T], None]] = []
        self._children: list[EventStream] = []  # downstream streams for dispose
        self._disposed = False
        self._upstream_disposers: list[Disposer] = []

    @property
    def disposed(self) -> bool:
        return self._disposed

    def emit(self, value: T) -> None:
        """Push a value to all subscribers, in subscription order."""
        if self._disposed:
            return
        for cb in list(self._subscribers):
            cb(value)

    def subscribe(self, callback: Callable[[T], None]) -> Disposer:
        """Register a callback. Returns a function that removes it.

        A disposed stream never emits again, so the callback is not kept.
        """
        if self._disposed:
            return _noop
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            try:
                self._subscribers.remove(callback)
            except ValueError:
                pass  # already removed

        return _unsubscribe

    def map(self, fn: Callable[[T], U]) -> EventStream[U]:
        """Transform events through fn."""
        child: EventStream[U] = EventStream()
        self._link(child, lambda v: child.emit(fn(v)))
        return child

    def filter(self, fn: Callable[[T], bool]) -> EventStream[T]:
        """Only pass events where fn returns True."""
        child: EventStream[T] = EventStream()
        self._link(child, lambda v: child.emit(v) if fn(v) else None)
        return child

    def observe_on(self, scheduler: Scheduler) -> EventStream[T]:
        """Re-deliver every event through scheduler.

        scheduler(fn) must eventually call fn, e.g. a UI framework's
        call_from_thread or loop.call_soon_threadsafe. Events that arrive
        after dispose() are dropped.
        """
        child: EventStream[T] = EventStream()
        self._link(child, lambda v: scheduler(lambda: child.emit(v)))
        return child

    @staticmethod
    def merge(*streams: EventStream[T]) -> EventStream[T]:
        """One stream carrying the events of every input, in arrival order.

        Disposing the merged stream detaches it from all inputs. With no
        inputs the merged stream never emits.
        """
        merged: EventStream[T] = EventStream()
        for stream in streams:
            stream._link(merged, merged.emit, owns_child=False)
        return merged

    def dispose(self) -> None:
        """Tear down this stream and all downstream children."""
        if self._disposed:
            return
        self._disposed = True
        self._subscribers.clear()
        for child in list(self._children):
            child.dispose()
        self._children.clear()
        for disposer in self._upstream_disposers:
            disposer()
        self._upstream_disposers.clear()

    def _link(
        self, child: EventStream, handler: Callable[[T], None], *, owns_child: bool = True
    ) -> None:
        """Feed child from this stream until either side is disposed.

        When owns_child is False, disposing this stream only detaches child.
        """
        if owns_child:
            self._children.append(child)
        unsubscribe = self.subscribe(handler)

        def _remove() -> None:
            unsubscribe()
            try:
                self._children.remove(child)
            except ValueError:
                pass

        child._upstream_disposers.append(_remove)

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else f"{len(self._subscribers)} subscribers"
        return f"EventStream({state})"
