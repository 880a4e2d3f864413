"""Store — a state container with selector projections.

A Store owns one state ref. Consumers never write it directly; they call
domain methods on a Store subclass, which call set_state(). Consumers read
through projections: read-only refs holding selector(state) that notify only
when the *selected* value changes, regardless of what else in the state did.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Generic, TypeVar

from composed.computed import computed
from composed.ref import EqualityComparer, ReadOnlyRef, _marshaled
from composed.stream import Scheduler

S = TypeVar("S")
T = TypeVar("T")

logger = logging.getLogger("composed.store")


class Store(Generic[S]):
    """State container with projection lifecycle.

    Usage:
        @dataclass(frozen=True)
        class Counters:
            a: int = 0
            b: int = 0

        class CounterStore(Store[Counters]):
            def bump_a(self):
                self.set_state(lambda s: replace(s, a=s.a + 1))

        store = CounterStore(Counters())
        a = store.select(lambda s: s.a)
        store.set_state(Counters(a=0, b=5))   # a does not notify
        store.bump_a()                        # a.value == 1, notified once
    """

    def __init__(self, initial_state: S, equals: EqualityComparer | None = None) -> None:
        self._state: ReadOnlyRef[S] = ReadOnlyRef(initial_state, equals)
        self._lock = threading.RLock()
        self._projections: list[ReadOnlyRef] = []

    @property
    def state(self) -> ReadOnlyRef[S]:
        return self._state

    def set_state(self, new_state: S | Callable[[S], S]) -> None:
        """Replace the state, or derive it from the old one if given a callable.

        The write is equality-gated with the store's comparer: an equal state
        recomputes no projection and notifies nobody. Auto-marshals from
        background threads like Ref.set().
        """
        if not _marshaled(lambda: self._set_state_direct(new_state)):
            self._set_state_direct(new_state)

    def _set_state_direct(self, new_state: S | Callable[[S], S]) -> None:
        with self._lock:
            value = new_state(self._state.value) if callable(new_state) else new_state
            self._state._write(value)

    def select(
        self,
        selector: Callable[[S], T],
        equals: EqualityComparer | None = None,
        scheduler: Scheduler | None = None,
    ) -> ReadOnlyRef[T]:
        """Project the state through selector. Dispose the result when done."""
        if not callable(selector):
            raise TypeError(f"selector must be callable, got {type(selector).__name__}")
        projection = computed(
            lambda: selector(self._state.value), self._state, equals=equals, scheduler=scheduler
        )
        self._projections.append(projection)
        projection._own(lambda: self._forget(projection))
        return projection

    def _forget(self, projection: ReadOnlyRef) -> None:
        try:
            self._projections.remove(projection)
        except ValueError:
            pass

    def _dispose_projections(self) -> None:
        for projection in list(self._projections):
            projection.dispose()
        self._projections.clear()

    def dispose(self) -> None:
        """Release every projection and close the state's notifications."""
        count = len(self._projections)
        self._dispose_projections()
        self._state.dispose()
        logger.debug("Disposed %s with %d live projections", type(self).__name__, count)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._state.value!r})"


def use_store(
    store: Store[S],
    selector: Callable[[S], T],
    equals: EqualityComparer | None = None,
    scheduler: Scheduler | None = None,
) -> ReadOnlyRef[T]:
    """Functional spelling of store.select()."""
    if store is None:
        raise TypeError("use_store() requires a store, got None")
    return store.select(selector, equals, scheduler)
