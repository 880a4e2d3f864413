"""Commands — executable actions gated by reactive state.

A command pairs an action with a can_execute predicate and the dependencies
that predicate reads. Whenever a dependency changes the predicate is
re-evaluated and written into the command's can_execute ref; accepted
transitions are announced on can_execute_changed, which is what UI hosts
bind to (together with can_execute_now() and invoke()).

Two flavors:
- Command: synchronous action; execute() / try_execute().
- AsyncCommand: coroutine action; execute_async() / try_execute_async().

Every execute surface runs the same eligibility gate, synchronously, at call
time: disposed commands raise CommandDisposedError, ineligible ones raise
InvalidExecutionError, and the try_* variants return False instead. An
in-flight async action is never interrupted by later eligibility changes or
by dispose().
"""

from __future__ import annotations

import asyncio
import enum
import inspect
import logging
from typing import Any, Awaitable, Callable, TypeVar

from composed.dependency import changed_streams
from composed.ref import ReadOnlyRef
from composed.stream import EventStream, Scheduler
from composed.watch import watch

R = TypeVar("R")

logger = logging.getLogger("composed.command")


class InvalidExecutionError(RuntimeError):
    """A command was executed while it could not be executed."""


class CommandDisposedError(InvalidExecutionError):
    """A command was executed after it had been disposed."""


class CommandState(enum.Enum):
    ACTIVE = "active"
    DISPOSED = "disposed"


def _always() -> bool:
    return True


class CommandBase:
    """Eligibility tracking and lifecycle shared by both command flavors."""

    def __init__(
        self,
        can_execute: Callable[[], bool],
        dependencies: tuple[Any, ...],
        scheduler: Scheduler | None,
    ) -> None:
        if not callable(can_execute):
            raise TypeError(f"can_execute must be callable, got {type(can_execute).__name__}")
        changed_streams(dependencies)

        self._state = CommandState.ACTIVE
        self._can_execute: ReadOnlyRef[bool] = ReadOnlyRef(bool(can_execute()))
        self._can_execute_changed: EventStream[CommandBase] = EventStream()
        self._can_execute.changed.subscribe(lambda _: self._can_execute_changed.emit(self))
        self._subscription = watch(
            lambda: self._reevaluate(can_execute), *dependencies, scheduler=scheduler
        )

    def _reevaluate(self, predicate: Callable[[], bool]) -> None:
        try:
            value = bool(predicate())
        except Exception:
            logger.exception(
                "can_execute of %r failed, keeping %s", self, self._can_execute.value
            )
            return
        self._can_execute._write(value)

    @property
    def state(self) -> CommandState:
        return self._state

    @property
    def disposed(self) -> bool:
        return self._state is CommandState.DISPOSED

    @property
    def can_execute(self) -> ReadOnlyRef[bool]:
        """Current eligibility. Forced to False once disposed."""
        return self._can_execute

    @property
    def can_execute_changed(self) -> EventStream[CommandBase]:
        """Emits the command once per eligibility transition."""
        return self._can_execute_changed

    def can_execute_now(self, parameter: object = None) -> bool:
        """Cached eligibility. parameter is accepted for hosts and ignored."""
        if self._state is CommandState.DISPOSED:
            return False
        return self._can_execute.value

    def invoke(self, parameter: object = None) -> Any:
        """Host-facing execute. parameter is accepted and ignored."""
        raise NotImplementedError

    def _run_gated(
        self, runner: Callable[[], R], try_method: str, *, strict: bool, cancelled: bool = False
    ) -> tuple[bool, R | None]:
        """Check eligibility, then call runner.

        Returns (False, None) without calling runner when the command cannot
        execute and strict is False; raises when strict is True.
        """
        if self._state is CommandState.DISPOSED:
            if strict:
                raise CommandDisposedError(
                    f"Invalid command execution. {type(self).__name__} was executed even "
                    "though it has been disposed. You can prevent this exception by "
                    "preemptively checking whether the command can be executed or by "
                    f'using the "{try_method}" method instead.'
                )
            return False, None
        if cancelled or not self._can_execute.value:
            if strict:
                raise InvalidExecutionError(
                    "Invalid command execution. The command was executed even though it "
                    "cannot be executed in its current state. You can prevent this "
                    "exception by preemptively checking whether the command can be "
                    f'executed or by using the "{try_method}" method instead.'
                )
            return False, None
        return True, runner()

    def dispose(self) -> None:
        """Stop tracking dependencies and make the command permanently ineligible.

        Fires can_execute_changed one last time if the command was executable.
        Later calls do nothing.
        """
        if self._state is CommandState.DISPOSED:
            return
        self._subscription.dispose()
        self._state = CommandState.DISPOSED
        self._can_execute._write(False)
        self._can_execute_changed.dispose()
        self._can_execute.dispose()
        logger.debug("Disposed %r", self)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.dispose()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._state.value}, can_execute={self._can_execute.value})"


class Command(CommandBase):
    """A synchronous command.

    Usage:
        name = Ref("")
        save = Command(lambda: db.save(name.value), lambda: bool(name.value), name)

        save.try_execute()   # False, nothing saved
        name.value = "Alice" # can_execute_changed fires
        save.execute()       # saves
    """

    def __init__(
        self,
        execute: Callable[[], Any],
        can_execute: Callable[[], bool] = _always,
        *dependencies: Any,
        scheduler: Scheduler | None = None,
    ) -> None:
        if not callable(execute):
            raise TypeError(f"execute must be callable, got {type(execute).__name__}")
        if _is_coroutine_function(execute):
            raise TypeError("execute is a coroutine function; use AsyncCommand")
        self._execute = execute
        super().__init__(can_execute, dependencies, scheduler)

    def execute(self) -> None:
        """Run the action. Raises if disposed or not executable."""
        self._run_gated(self._execute, "try_execute", strict=True)

    def try_execute(self) -> bool:
        """Run the action if possible. Returns whether it ran."""
        executed, _ = self._run_gated(self._execute, "try_execute", strict=False)
        return executed

    def invoke(self, parameter: object = None) -> None:
        self.execute()


class AsyncCommand(CommandBase):
    """A command whose action is a coroutine function.

    The action must be a coroutine function (or an object whose __call__ is
    one) and may take one argument, the cancellation token passed to
    execute_async(). A token is anything with is_set(), e.g. asyncio.Event.
    """

    def __init__(
        self,
        execute: Callable[..., Awaitable[Any]],
        can_execute: Callable[[], bool] = _always,
        *dependencies: Any,
        scheduler: Scheduler | None = None,
    ) -> None:
        if not callable(execute):
            raise TypeError(f"execute must be callable, got {type(execute).__name__}")
        if not _is_coroutine_function(execute):
            raise TypeError("execute is not a coroutine function; use Command")
        self._execute = execute
        self._takes_token = _takes_argument(execute)
        super().__init__(can_execute, dependencies, scheduler)

    def _start(self, token: Any) -> Awaitable[Any]:
        return self._execute(token) if self._takes_token else self._execute()

    def execute_async(self, token: Any = None) -> Awaitable[None]:
        """Check eligibility now, return an awaitable running the action.

        Raises immediately (before anything is awaited) if the command is
        disposed, not executable, or token is already set.
        """
        _, action = self._run_gated(
            lambda: self._start(token),
            "try_execute_async",
            strict=True,
            cancelled=_is_set(token),
        )
        return _discard_result(action)

    def try_execute_async(self, token: Any = None) -> Awaitable[bool]:
        """Like execute_async(), but resolves to False instead of raising."""
        executed, action = self._run_gated(
            lambda: self._start(token),
            "try_execute_async",
            strict=False,
            cancelled=_is_set(token),
        )
        if not executed:
            return _resolved(False)
        return _then_true(action)

    def invoke(self, parameter: object = None) -> asyncio.Task:
        """Check eligibility now and schedule the action on the running loop."""
        loop = asyncio.get_running_loop()
        return loop.create_task(self.execute_async())


def _is_set(token: Any) -> bool:
    return token is not None and token.is_set()


def _is_coroutine_function(fn: Callable[..., Any]) -> bool:
    return inspect.iscoroutinefunction(fn) or inspect.iscoroutinefunction(
        getattr(fn, "__call__", None)
    )


def _takes_argument(fn: Callable[..., Any]) -> bool:
    try:
        parameters = inspect.signature(fn).parameters.values()
    except (TypeError, ValueError):
        return False
    positional = (
        inspect.Parameter.POSITIONAL_ONLY,
        inspect.Parameter.POSITIONAL_OR_KEYWORD,
        inspect.Parameter.VAR_POSITIONAL,
    )
    return any(p.kind in positional for p in parameters)


async def _discard_result(action: Awaitable[Any]) -> None:
    await action


async def _then_true(action: Awaitable[Any]) -> bool:
    await action
    return True


async def _resolved(value: bool) -> bool:
    return value


def use_command(
    execute: Callable[..., Any],
    can_execute: Callable[[], bool] = _always,
    *dependencies: Any,
    scheduler: Scheduler | None = None,
) -> CommandBase:
    """Create a Command, or an AsyncCommand if execute is a coroutine function.

    Omitting can_execute makes the command always executable.

    Usage:
        busy = Ref(False)
        refresh = use_command(fetch_all, lambda: not busy.value, busy)
    """
    if not callable(execute):
        raise TypeError(f"execute must be callable, got {type(execute).__name__}")
    if _is_coroutine_function(execute):
        return AsyncCommand(execute, can_execute, *dependencies, scheduler=scheduler)
    return Command(execute, can_execute, *dependencies, scheduler=scheduler)
