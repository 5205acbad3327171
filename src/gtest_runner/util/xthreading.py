"""
Threading utilities.

gtest_runner uses plain OS threads: one reader thread per shard,
one aggregator thread, and the calling thread which waits on them.
"""

from collections.abc import Callable
from gtest_runner.util.bulkheads import ensure_is_bulkhead_call
import threading


def bg_call_later(
        callable: Callable[..., None],
        *, args: tuple=(),
        daemon: bool=False,
        name: str | None=None,
        ) -> threading.Thread:
    """
    Starts a new background thread which calls the specified callable.
    
    Arguments:
    * callable -- the callable to run. Must be decorated with @capture_crashes_to*
      so that a crash is observable by whoever joins the returned thread.
    * args -- the arguments to provide to the callable.
    * daemon -- whether the thread may be abandoned at interpreter exit.
    * name -- the name of the thread, shown in crash reports.
    
    Raises:
    * AssertionError -- if the callable does not capture its own crashes.
    """
    ensure_is_bulkhead_call(callable)
    
    thread = threading.Thread(target=callable, args=args, daemon=daemon, name=name)
    thread.start()
    return thread
