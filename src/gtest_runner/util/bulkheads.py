"""
Bulkheads capture unhandled exceptions (i.e. crashes) raised by code running
on background threads, so that the thread which started the work can find
out about the crash after joining it and decide how to report it.

Shard reader threads crash into a per-shard BulkheadCell.
The aggregator is itself a bulkhead and crashes into itself.
"""

from collections.abc import Callable
from functools import wraps
from gtest_runner.util import cli
import sys
import threading
import traceback
from typing import Concatenate, Protocol, TypeVar
from typing_extensions import ParamSpec

_B = TypeVar('_B', bound='Bulkhead')
_P = ParamSpec('_P')
_R = TypeVar('_R')


# ------------------------------------------------------------------------------
# Bulkheads

CrashReason = BaseException  # with .__traceback__ set to a TracebackType


class Bulkhead(Protocol):  # abstract
    """
    A sink for unhandled exceptions (i.e. crashes).
    """
    crash_reason: CrashReason | None


class BulkheadCell(Bulkhead):
    """
    A concrete Bulkhead which only remembers the first crash that occurs.
    """
    crash_reason: CrashReason | None
    
    def __init__(self, value: CrashReason | None=None) -> None:
        self.crash_reason = value
    
    def __repr__(self) -> str:
        return f'BulkheadCell({self.crash_reason!r})'


# ------------------------------------------------------------------------------
# Decorators

def capture_crashes_to_self(
        bulkhead_method: Callable[Concatenate[_B, _P], _R]
        ) -> Callable[Concatenate[_B, _P], _R | None]:
    """
    Decorates a method of a Bulkhead so that any exception it raises is
    recorded as the "crash reason" of the bulkhead itself.
    
    Once the bulkhead has crashed, further calls return None immediately.
    
    Examples:
        class Aggregator(Bulkhead):
            @capture_crashes_to_self
            def run(self) -> None:
                ...
    """
    @wraps(bulkhead_method)
    def bulkhead_call(self: _B, *args: _P.args, **kwargs: _P.kwargs) -> _R | None:
        if self.crash_reason is not None:
            return None
        try:
            return bulkhead_method(self, *args, **kwargs)
        except BaseException as e:
            _crash(self, e)
            return None
    return _mark_bulkhead_call(bulkhead_call)


def capture_crashes_to(
        bulkhead: Bulkhead
        ) -> Callable[[Callable[_P, _R]], Callable[_P, _R | None]]:
    """
    Decorates a function so that any exception it raises is recorded
    as the "crash reason" of the specified bulkhead.
    
    Once the bulkhead has crashed, further calls return None immediately.
    
    Examples:
        @capture_crashes_to(shard_bulkhead)
        def read_shard_output() -> None:
            ...
    """
    def decorate(func: Callable[_P, _R]) -> Callable[_P, _R | None]:
        @wraps(func)
        def bulkhead_call(*args: _P.args, **kwargs: _P.kwargs) -> _R | None:
            if bulkhead.crash_reason is not None:
                return None
            try:
                return func(*args, **kwargs)
            except BaseException as e:
                _crash(bulkhead, e)
                return None
        return _mark_bulkhead_call(bulkhead_call)
    return decorate


def is_bulkhead_call(callable: Callable) -> bool:
    """
    Returns whether the specified function is marked with @capture_crashes_to*.
    """
    return getattr(callable, '_captures_crashes', False) == True


def ensure_is_bulkhead_call(callable: Callable) -> None:
    """
    Raises:
    * AssertionError -- if the specified function is not marked with @capture_crashes_to*.
    """
    if not is_bulkhead_call(callable):
        raise AssertionError(f'Expected callable {callable!r} to be decorated with @capture_crashes_to*')


def _mark_bulkhead_call(bulkhead_call: Callable[_P, _R]) -> Callable[_P, _R]:
    bulkhead_call._captures_crashes = True  # type: ignore[attr-defined]
    return bulkhead_call


# ------------------------------------------------------------------------------
# Crash Reporting

def reraise_if_crashed(
        bulkhead: Bulkhead,
        error_factory: Callable[[CrashReason], BaseException],
        ) -> None:
    """
    Raises an error created by `error_factory` if the specified bulkhead
    has crashed, chaining the crash reason as the error's __cause__.
    """
    crash_reason = bulkhead.crash_reason
    if crash_reason is None:
        return
    raise error_factory(crash_reason) from crash_reason


def _crash(bulkhead: Bulkhead, e: BaseException) -> None:
    bulkhead.crash_reason = e
    # Report immediately. The crash may not be reraised until much later,
    # after other shards have finished.
    _print_crash(e, threading.current_thread().name)


def _print_crash(e: BaseException, thread_name: str) -> None:
    lines = [f'Crash in thread {thread_name!r}:\n']
    lines.extend(traceback.format_exception(type(e), e, e.__traceback__))
    print(cli.colorize(cli.TERMINAL_FG_RED, ''.join(lines).rstrip('\n')), file=sys.stderr)
    sys.stderr.flush()


# ------------------------------------------------------------------------------
