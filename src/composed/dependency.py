"""Dependencies — anything exposing a payload-free ``changed`` stream.

Refs are dependencies. Any other value source can be adapted with
as_dependency(), which forwards the timing of its events but drops the
values, so watchers never depend on value types.
"""

from __future__ import annotations

from typing import Any, Iterable, Protocol, runtime_checkable

from composed.stream import EventStream


@runtime_checkable
class Dependency(Protocol):
    @property
    def changed(self) -> EventStream[None]: ...


class StreamDependency:
    """A value source adapted into a dependency."""

    __slots__ = ("_changed",)

    def __init__(self, changed: EventStream[None]) -> None:
        self._changed = changed

    @property
    def changed(self) -> EventStream[None]:
        return self._changed

    def dispose(self) -> None:
        """Detach from the underlying source."""
        self._changed.dispose()

    def __repr__(self) -> str:
        return f"StreamDependency({self._changed!r})"


def as_dependency(source: Any) -> Dependency:
    """Adapt an EventStream or any ``subscribe(callback) -> disposer`` source.

    Usage:
        clicks = EventStream()
        handle = watch(refresh, as_dependency(clicks))
        clicks.emit("ignored payload")   # refresh() runs once
    """
    if source is None:
        raise TypeError("as_dependency() requires a source, got None")
    if isinstance(source, Dependency):
        return source
    if isinstance(source, EventStream):
        return StreamDependency(source.map(lambda _: None))
    subscribe = getattr(source, "subscribe", None)
    if not callable(subscribe):
        raise TypeError(
            f"{type(source).__name__} is not a dependency and has no subscribe() method"
        )
    changed: EventStream[None] = EventStream()
    subscription = subscribe(lambda _: changed.emit(None))
    # Rx-style sources hand back a Disposable rather than a plain function.
    release = subscription if callable(subscription) else subscription.dispose
    changed._upstream_disposers.append(release)
    return StreamDependency(changed)


def changed_streams(dependencies: Iterable[Any]) -> list[EventStream]:
    """Validate a dependency list and return the change stream of each entry.

    Raw EventStreams are taken as change signals as they are. Validation
    happens up front so nothing is subscribed when an entry is invalid.
    """
    streams = []
    for dependency in dependencies:
        if dependency is None:
            raise ValueError(
                "At least one of the specified dependencies is None. "
                "Ensure that explicitly specified dependency lists do not contain None values."
            )
        if isinstance(dependency, EventStream):
            streams.append(dependency)
        elif isinstance(dependency, Dependency):
            streams.append(dependency.changed)
        else:
            raise TypeError(
                f"{type(dependency).__name__} is not a dependency; "
                "wrap value sources with as_dependency()"
            )
    return streams
