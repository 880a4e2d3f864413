"""Textual integration for composed. Opt-in — requires textual.

Guarding, NoMatches handling and thread marshaling are enforced here, not at
callsites. Textual coupling is isolated in this module; the core package
stays framework agnostic.

Pause state is owned by this module: a count of open pause() blocks per
id(app). Blocks nest, so an inner block closing (for example a helper that
swaps one panel inside a larger rebuild) does not unpause the app early.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Any, Callable

from textual.css.query import NoMatches

from composed.command import CommandBase
from composed.watch import WatchHandle, watch as _watch

_pause_depth: dict[int, int] = {}


@contextmanager
def pause(app):
    """Hold off guarded effects and command bindings while widgets are replaced."""
    key = id(app)
    _pause_depth[key] = _pause_depth.get(key, 0) + 1
    try:
        yield
    finally:
        remaining = _pause_depth.pop(key) - 1
        if remaining:
            _pause_depth[key] = remaining


def is_safe(app) -> bool:
    """Running, and outside every pause() block for this app."""
    return app.is_running and id(app) not in _pause_depth


def _guard(app, effect: Callable[[], None]) -> Callable[[], None]:
    _main = threading.get_ident()

    def _guarded() -> None:
        if not is_safe(app):
            return
        if threading.get_ident() != _main:
            app.call_from_thread(_safe)
        else:
            _safe()

    def _safe() -> None:
        try:
            effect()
        except NoMatches:
            pass

    return _guarded


def watch(app, effect: Callable[[], None], *dependencies: Any) -> WatchHandle:
    """watch() that safely bridges to Textual widgets.

    Skips while paused or not running, swallows NoMatches from widget
    queries, and marshals off-thread changes via call_from_thread.
    """
    return _watch(_guard(app, effect), *dependencies)


def bind_command(app, command: CommandBase, selector: str) -> WatchHandle:
    """Keep the widget matching selector disabled while command can't execute.

    Syncs once right away (if the app is safe), then on every eligibility
    change, including the final one at command disposal.

    Usage:
        save = use_command(do_save, lambda: form.valid.value, form.valid)
        stx.bind_command(app, save, "#save")
    """

    def _sync() -> None:
        app.query_one(selector).disabled = not command.can_execute_now()

    guarded = _guard(app, _sync)
    guarded()
    return _watch(guarded, command.can_execute)
