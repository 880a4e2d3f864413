"""Refs — single values with equality-gated writes and change notification.

A write is accepted only when the ref's comparer says the new value differs
from the current one. An accepted write notifies, in this fixed order:

    changing          -> "value" (old value still readable)
    subscribe(...)    -> the new value
    changed           -> None (the dependency signal)
    property_changed  -> "value"

A rejected write does nothing at all.

Thread safety: call set_scheduler() once from the main thread. After that,
any Ref.set()/update() from a background thread is auto-marshaled. Writes on
the scheduler thread remain synchronous.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Generic, TypeVar

from composed.stream import Disposer, EventStream, Scheduler

T = TypeVar("T")

EqualityComparer = Callable[[Any, Any], bool]

# ─── Auto-marshal ────────────────────────────────────────────────────────────
_scheduler: Scheduler | None = None
_scheduler_thread: threading.Thread | None = None


def set_scheduler(scheduler: Scheduler | None) -> None:
    """Set the global scheduling context for cross-thread Ref writes.

    Call once from the main/UI thread:
        composed.set_scheduler(app.call_from_thread)

    After this, any Ref.set() from a background thread is automatically
    marshaled. Main-thread writes remain synchronous. Pass None to go back
    to writing on whichever thread calls set().
    """
    global _scheduler, _scheduler_thread
    _scheduler = scheduler
    _scheduler_thread = threading.current_thread() if scheduler is not None else None


def default_equals(old: Any, new: Any) -> bool:
    return old is new or old == new


def _marshaled(fn: Callable[[], object]) -> bool:
    """Hand fn to the scheduler if called off the scheduler thread."""
    if _scheduler is not None and threading.current_thread() != _scheduler_thread:
        _scheduler(fn)
        return True
    return False


class RefBase(Generic[T]):
    """Value slot plus its notification streams. Writes go through _write()."""

    __slots__ = ("_value", "_equals", "_values", "_changing", "_changed", "_property_changed")

    def __init__(self, value: T, equals: EqualityComparer | None = None) -> None:
        self._value = value
        self._equals = equals if equals is not None else default_equals
        self._values: EventStream[T] = EventStream()
        self._changing: EventStream[str] = EventStream()
        self._changed: EventStream[None] = EventStream()
        self._property_changed: EventStream[str] = EventStream()

    @property
    def value(self) -> T:
        return self._value

    def get(self) -> T:
        return self._value

    @property
    def changed(self) -> EventStream[None]:
        """Payload-free signal, one event per accepted write."""
        return self._changed

    @property
    def changing(self) -> EventStream[str]:
        """Fires before an accepted write is stored."""
        return self._changing

    @property
    def property_changed(self) -> EventStream[str]:
        """Fires after an accepted write has been fully published."""
        return self._property_changed

    def subscribe(self, callback: Callable[[T], None]) -> Disposer:
        """Receive every newly accepted value. Returns an unsubscribe function."""
        return self._values.subscribe(callback)

    def _write(self, value: T) -> bool:
        """Equality-gated write. Returns True if the value changed."""
        if self._equals(self._value, value):
            return False
        self._changing.emit("value")
        self._value = value
        self._values.emit(value)
        self._changed.emit(None)
        self._property_changed.emit("value")
        return True

    def _close(self) -> None:
        for stream in (self._values, self._changing, self._changed, self._property_changed):
            stream.dispose()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._value!r})"


class Ref(RefBase[T]):
    """A mutable ref.

    Usage:
        count = Ref(0)
        count.changed.subscribe(lambda _: print("changed"))
        count.value = 1      # prints "changed"
        count.set(1)         # equal, nothing happens
        count.update(lambda n: n + 1)
    """

    __slots__ = ()

    @property
    def value(self) -> T:
        return self._value

    @value.setter
    def value(self, value: T) -> None:
        self.set(value)

    def set(self, value: T) -> None:
        """Write a new value. Auto-marshals from background threads."""
        if not _marshaled(lambda: self._write(value)):
            self._write(value)

    def update(self, fn: Callable[[T], T]) -> None:
        """Write fn(current). fn sees the value at the time the write runs."""
        if not _marshaled(lambda: self._write(fn(self._value))):
            self._write(fn(self._value))


class ReadOnlyRef(RefBase[T]):
    """A ref only its owner writes (computed values, store projections, ...).

    The owner registers the subscriptions that feed it with _own();
    dispose() releases them and closes every notification stream.
    """

    __slots__ = ("_owned", "_disposed")

    def __init__(self, value: T, equals: EqualityComparer | None = None) -> None:
        super().__init__(value, equals)
        self._owned: list[Callable[[], None]] = []
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def _own(self, release: Callable[[], None]) -> None:
        self._owned.append(release)

    def dispose(self) -> None:
        """Stop updating and notifying. Safe to call more than once."""
        if self._disposed:
            return
        self._disposed = True
        for release in self._owned:
            release()
        self._owned.clear()
        self._close()
