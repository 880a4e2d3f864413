"""composed: refs, stores and commands with explicit change propagation."""

from importlib.metadata import version as _version

__version__ = _version("composed")

from composed.stream import EventStream
from composed.ref import Ref, ReadOnlyRef, default_equals, set_scheduler
from composed.dependency import Dependency, as_dependency
from composed.watch import watch, watch_effect, WatchHandle
from composed.computed import computed
from composed.store import Store, use_store
from composed.command import (
    AsyncCommand,
    Command,
    CommandBase,
    CommandDisposedError,
    CommandState,
    InvalidExecutionError,
    use_command,
)
# textual NOT auto-imported, opt-in only

__all__ = [
    "EventStream",
    "Ref",
    "ReadOnlyRef",
    "default_equals",
    "set_scheduler",
    "Dependency",
    "as_dependency",
    "watch",
    "watch_effect",
    "WatchHandle",
    "computed",
    "Store",
    "use_store",
    "Command",
    "AsyncCommand",
    "CommandBase",
    "CommandState",
    "CommandDisposedError",
    "InvalidExecutionError",
    "use_command",
]
