"""
Runs one shard of a test executable and streams its parsed results.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from gtest_runner.errors import ShardIOError, SpawnError
from gtest_runner.model import Test
from gtest_runner.parse import Parser
from gtest_runner.util.bulkheads import Bulkhead, capture_crashes_to
from gtest_runner.util.channels import CompletionSender
from gtest_runner.util.cli import print_diagnostic
from gtest_runner.util.xthreading import bg_call_later
import os
import queue
import subprocess
import threading

GTEST_SHARD_INDEX_ENV = 'GTEST_SHARD_INDEX'
GTEST_TOTAL_SHARDS_ENV = 'GTEST_TOTAL_SHARDS'
GTEST_COLOR_ENV = 'GTEST_COLOR'


@dataclass(frozen=True)
class ShardExited:
    """
    Put on the event queue by a shard's reader thread as its very last item,
    whether or not the thread finished cleanly.
    """
    shard: int


# Items put on the event queue shared by all shards
ShardItem = Test | ShardExited


def shard_environment(
        shard_index: int,
        shard_count: int,
        base_env: Mapping[str, str] | None=None,
        ) -> dict[str, str]:
    """
    Returns the environment for a child running the specified shard.
    
    Colored output is forced so that every shard prints markers the same
    way regardless of whether its stdout is a terminal.
    """
    env = dict(os.environ if base_env is None else base_env)
    env[GTEST_SHARD_INDEX_ENV] = str(shard_index)
    env[GTEST_TOTAL_SHARDS_ENV] = str(shard_count)
    env[GTEST_COLOR_ENV] = 'yes'
    return env


def spawn(
        executable: str,
        shard_index: int,
        shard_count: int,
        *, env: Mapping[str, str] | None=None,
        ) -> 'subprocess.Popen[str]':
    """
    Starts a child process running the specified shard of the executable,
    with its stdout piped and its stderr discarded.
    
    Raises:
    * SpawnError
    """
    try:
        return subprocess.Popen(
            [executable],
            env=shard_environment(shard_index, shard_count, env),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            text=True,
            errors='replace',
        )
    except OSError as e:
        raise SpawnError(f'Unable to start shard {shard_index} of {executable}: {e}') from e


def process_shard(
        shard_index: int,
        child: 'subprocess.Popen[str]',
        event_sink: 'queue.Queue[ShardItem]',
        done_sink: CompletionSender,
        *, bulkhead: Bulkhead,
        verbose: bool=False,
        ) -> threading.Thread:
    """
    Starts a background thread which parses the stdout of the specified
    shard's child, tags every resulting Test with the shard index, and
    puts it on `event_sink`.
    
    When stdout reaches EOF the thread finalizes the parser, waits for the
    child to exit, and then sends on `done_sink` the number of records it put
    on `event_sink`. Therefore once a completion is observed, every record of
    the shard is already in `event_sink`. Finally the thread puts a
    ShardExited on `event_sink`, even if it crashed.
    
    A crash of the thread (such as an I/O error reading stdout) is recorded
    in `bulkhead`, and `done_sink` is closed without sending.
    
    Returns the started thread.
    
    Raises:
    * ShardIOError -- if the child's stdout is not piped.
    """
    stdout = child.stdout
    if stdout is None:
        raise ShardIOError(shard_index, 'Child process has no readable stdout')
    
    @capture_crashes_to(bulkhead)
    def read_shard_output() -> None:
        num_events = 0
        try:
            parser = Parser()
            with stdout:
                for line in stdout:
                    for test in parser.feed(line):
                        event_sink.put(test.with_shard(shard_index))
                        num_events += 1
            for test in parser.finish():
                event_sink.put(test.with_shard(shard_index))
                num_events += 1
            
            returncode = child.wait()
            if verbose:
                print_diagnostic(f'Shard {shard_index}', f'Exited with code {returncode}')
            
            done_sink.send(num_events)
        finally:
            if child.poll() is None:
                # Crashed before EOF. The child must not outlive its reader.
                child.kill()
                child.wait()
            done_sink.close()
    
    @capture_crashes_to(bulkhead)
    def read_shard_output_then_exit() -> None:
        try:
            read_shard_output()
        finally:
            # Any crash of read_shard_output is already in the bulkhead,
            # so whoever sees ShardExited also sees the crash
            event_sink.put(ShardExited(shard_index))
    
    return bg_call_later(
        read_shard_output_then_exit,
        daemon=True,
        name=f'gtest_runner.shard.{shard_index}',
    )
