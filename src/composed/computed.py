"""Computed values — read-only refs derived from explicit dependencies.

computed() evaluates its function once up front and again every time one of
the listed dependencies changes. The result is written with the usual
equality gate, so observers of the computed ref only hear about changes of
the *result*.

A compute function that raises during a recomputation is logged and the
previous result is kept; the write that triggered the recomputation is not
affected. Errors from the initial evaluation propagate to the caller.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

from composed.dependency import changed_streams
from composed.ref import EqualityComparer, ReadOnlyRef
from composed.stream import Scheduler
from composed.watch import watch

T = TypeVar("T")

logger = logging.getLogger("composed.computed")


def computed(
    compute: Callable[[], T],
    *dependencies: Any,
    equals: EqualityComparer | None = None,
    scheduler: Scheduler | None = None,
) -> ReadOnlyRef[T]:
    """Create a ReadOnlyRef holding compute(), refreshed on dependency changes.

    Usage:
        price = Ref(10)
        quantity = Ref(2)
        total = computed(lambda: price.value * quantity.value, price, quantity)

        total.value       # 20
        quantity.value = 3
        total.value       # 30
        total.dispose()   # stop recomputing
    """
    if not callable(compute):
        raise TypeError(f"compute must be callable, got {type(compute).__name__}")
    changed_streams(dependencies)

    ref: ReadOnlyRef[T] = ReadOnlyRef(compute(), equals)

    def _recompute() -> None:
        try:
            value = compute()
        except Exception:
            logger.exception("Recomputing %r failed, keeping %r", ref, ref.value)
            return
        ref._write(value)

    ref._own(watch(_recompute, *dependencies, scheduler=scheduler).dispose)
    return ref
