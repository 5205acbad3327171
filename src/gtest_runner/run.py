"""
Runs a GoogleTest executable as several concurrent shards,
collects their results, and retries failed tests.

Threads involved in one attempt:
* the calling thread, which discovers tests, spawns shards,
  waits for the aggregator, and decides whether to retry;
* one reader thread per shard (see gtest_runner.shard);
* one aggregator thread, which owns all results and progress state.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from gtest_runner.discovery import get_tests
from gtest_runner.errors import (
    AggregationError, ExecutableNotFoundError, LostResultsError, ShardIOError,
)
from gtest_runner.model import (
    ShardStats, Starting, Terminal, Test, TestIdentifier,
)
from gtest_runner.progress.bars import listener_for_verbosity
from gtest_runner.progress.interface import (
    GlobalProgress, RunProgressListener, ShardProgress,
)
from gtest_runner.shard import process_shard, ShardExited, ShardItem, spawn
from gtest_runner.util import cli
from gtest_runner.util.bulkheads import (
    BulkheadCell, capture_crashes_to_self, CrashReason, reraise_if_crashed,
)
from gtest_runner.util.channels import (
    Completion, CompletionSelector, CompletionSender,
)
from gtest_runner.util.pipes import create_selectable_pipe
from gtest_runner.util.xos import cpu_count
from gtest_runner.util.xthreading import bg_call_later
import os
import queue
import subprocess
import threading

GTEST_FILTER_ENV = 'GTEST_FILTER'
GTEST_ALSO_RUN_DISABLED_TESTS_ENV = 'GTEST_ALSO_RUN_DISABLED_TESTS'

DEFAULT_VERBOSITY = 2


# ------------------------------------------------------------------------------
# Results

@dataclass(frozen=True)
class AttemptResult:
    # 1 for the first attempt, 2 for the first retry, etc
    attempt: int
    filter: str | None
    num_tests: int
    jobs: int
    stats: ShardStats
    
    @property
    def is_consistent(self) -> bool:
        """Whether a result was collected for every discovered test."""
        return self.stats.num_finished == self.num_tests


@dataclass(frozen=True)
class RunResult:
    executable: str
    attempts: list[AttemptResult] = field(default_factory=list)
    
    @property
    def final(self) -> AttemptResult:
        return self.attempts[-1]
    
    @property
    def num_failed(self) -> int:
        return self.final.stats.num_failed


# ------------------------------------------------------------------------------
# Run

def run(
        executable: str,
        filter: str | None=None,
        jobs: int | None=None,
        verbosity: int=DEFAULT_VERBOSITY,
        repeat: int=0,
        *, include_disabled: bool=False,
        listener: RunProgressListener | None=None,
        ) -> int:
    """
    Runs the tests of a GoogleTest executable, retrying failed tests
    up to `repeat` times.
    
    Returns the number of tests that failed in the final attempt.
    
    Raises:
    * LostResultsError --
        if the final attempt collected fewer or more results
        than the number of tests discovered.
    * GTestRunnerError -- if the tests could not be discovered or run.
    """
    result = run_attempts(
        executable, filter, jobs, verbosity, repeat,
        include_disabled=include_disabled,
        listener=listener,
    )
    return result.num_failed


def run_attempts(
        executable: str,
        filter: str | None=None,
        jobs: int | None=None,
        verbosity: int=DEFAULT_VERBOSITY,
        repeat: int=0,
        *, include_disabled: bool=False,
        listener: RunProgressListener | None=None,
        ) -> RunResult:
    """
    Same as run(), but returns the results of every attempt.
    
    Arguments:
    * executable -- path to a GoogleTest executable.
    * filter -- a GoogleTest filter like "Suite.*:-Suite.Slow", or None to run all tests.
    * jobs -- the maximum number of shards to run concurrently. Defaults to the CPU count.
    * verbosity --
        0 to print only summaries;
        1 to also show overall progress;
        2 to also show the progress of each shard;
        3 or more to print the output of every test as it finishes.
    * repeat -- the maximum number of times to retry failed tests.
    * include_disabled -- whether to also run tests named with DISABLED_.
    * listener -- receives progress. Defaults to a display appropriate for `verbosity`.
    
    Raises:
    * LostResultsError
    * GTestRunnerError
    """
    executable = canonicalize_executable(executable)
    if jobs is None:
        jobs = cpu_count()
    if listener is None:
        listener = listener_for_verbosity(verbosity)
    
    result = RunResult(executable)
    attempt_filter = filter
    repeat_remaining = repeat
    while True:
        attempt = _run_attempt(
            executable,
            attempt_number=len(result.attempts) + 1,
            filter=attempt_filter,
            requested_jobs=jobs,
            verbosity=verbosity,
            include_disabled=include_disabled,
            listener=listener,
        )
        result.attempts.append(attempt)
        _print_attempt_summary(attempt, verbosity)
        
        if repeat_remaining <= 0 or attempt.stats.num_failed == 0:
            break
        attempt_filter = failed_tests_filter(attempt.stats.failed_tests)
        repeat_remaining -= 1
        cli.print_warning(
            f'Retrying {attempt.stats.num_failed} failed tests '
            f'({repeat_remaining} retries remaining after this one)')
    
    final = result.final
    if not final.is_consistent:
        raise LostResultsError(
            final.num_tests, final.stats.num_passed, final.stats.num_failed)
    return result


def canonicalize_executable(executable: str) -> str:
    """
    Returns the absolute path of the specified executable,
    with symlinks resolved.
    
    Raises:
    * ExecutableNotFoundError
    """
    path = os.path.realpath(executable)
    if not os.path.isfile(path):
        raise ExecutableNotFoundError(f'Test executable not found: {executable}')
    return path


def effective_jobs(requested_jobs: int, num_tests: int) -> int:
    """
    Returns the number of shards to run, which never exceeds the number of tests.
    
    Returns 0 only when there are no tests.
    """
    return min(max(requested_jobs, 1), num_tests)


def failed_tests_filter(failed_tests: list[Test]) -> str:
    """
    Returns a GoogleTest filter which selects exactly the specified tests.
    """
    testcases = dict.fromkeys(t.testcase for t in failed_tests)  # ordered set
    return ':'.join(testcases)


def attempt_environment(
        filter: str | None,
        include_disabled: bool,
        base_env: Mapping[str, str] | None=None,
        ) -> dict[str, str]:
    """
    Returns the environment given to an executable both when listing tests
    and when running them, so that both see the same selection of tests.
    """
    env = dict(os.environ if base_env is None else base_env)
    if filter is not None:
        env[GTEST_FILTER_ENV] = filter
    if include_disabled:
        env[GTEST_ALSO_RUN_DISABLED_TESTS_ENV] = '1'
    return env


def _run_attempt(
        executable: str,
        *, attempt_number: int,
        filter: str | None,
        requested_jobs: int,
        verbosity: int,
        include_disabled: bool,
        listener: RunProgressListener,
        ) -> AttemptResult:
    verbose = verbosity > 2
    env = attempt_environment(filter, include_disabled)
    
    # Discover
    listener.discovering_tests(executable)
    num_tests = len(get_tests(executable, include_disabled=include_disabled, env=env))
    listener.did_discover_tests(num_tests)
    
    jobs = effective_jobs(requested_jobs, num_tests)
    if jobs == 0:
        if verbose:
            cli.print_diagnostic('Runner', f'No tests to run in {executable}')
        return AttemptResult(attempt_number, filter, num_tests, jobs, ShardStats())
    
    # Spawn
    if verbose:
        cli.print_diagnostic('Runner',
            f'Running {num_tests} tests of {executable} in {jobs} shards')
    events = queue.Queue()  # type: queue.Queue[ShardItem]
    completions = CompletionSelector()
    shard_bulkheads = []  # type: list[BulkheadCell]
    children = []  # type: list[subprocess.Popen[str]]
    readers = []  # type: list[threading.Thread]
    try:
        for shard in range(jobs):
            child = spawn(executable, shard, jobs, env=env)
            children.append(child)
            
            pipe = create_selectable_pipe()
            completions.register(shard, pipe.readable_end)
            bulkhead = BulkheadCell()
            shard_bulkheads.append(bulkhead)
            readers.append(process_shard(
                shard, child, events, CompletionSender(pipe.writable_end),
                bulkhead=bulkhead,
                verbose=verbose,
            ))
    except BaseException:
        _stop_shards(children, readers)
        completions.close()
        raise
    
    # Aggregate
    listener.will_run_attempt(attempt_number, num_tests, jobs)
    aggregator = _Aggregator(
        num_tests=num_tests,
        jobs=jobs,
        events=events,
        completions=completions,
        listener=listener,
        echo_logs=verbose,
    )
    try:
        bg_call_later(aggregator.run, name='gtest_runner.aggregator').join()
    finally:
        # No-op unless the aggregator stopped before every shard exited
        _stop_shards(children, readers)
        completions.close()
        listener.did_run_attempt()
    
    for (shard, bulkhead) in enumerate(shard_bulkheads):
        reraise_if_crashed(bulkhead, _shard_crash_error_factory(shard))
    reraise_if_crashed(
        aggregator,
        lambda e: AggregationError(f'Collecting test results failed: {e}'))
    
    return AttemptResult(attempt_number, filter, num_tests, jobs, aggregator.stats)


def _stop_shards(
        children: list['subprocess.Popen[str]'],
        readers: list[threading.Thread],
        ) -> None:
    """
    Kills any shard child that is still running, then waits for every reader
    thread to finish, so that no reader is left announcing its completion
    into a selector that is about to be closed.
    """
    for child in children:
        if child.poll() is None:
            child.kill()
    for reader in readers:
        reader.join()
    # Children whose reader never started are reaped here instead
    for child in children[len(readers):]:
        child.wait()


def _shard_crash_error_factory(shard: int):
    def create_error(crash_reason: CrashReason) -> ShardIOError:
        return ShardIOError(shard, f'Reading test output failed: {crash_reason}')
    return create_error


# ------------------------------------------------------------------------------
# Aggregate

class _Aggregator:
    """
    Collects the records of every shard of one attempt.
    
    Owns all result and progress state of the attempt. The progress listener
    only ever receives immutable snapshots of that state.
    """
    crash_reason: CrashReason | None
    
    def __init__(self,
            *, num_tests: int,
            jobs: int,
            events: 'queue.Queue[ShardItem]',
            completions: CompletionSelector,
            listener: RunProgressListener,
            echo_logs: bool,
            ) -> None:
        self.crash_reason = None
        self.stats = ShardStats()
        
        self._num_tests = num_tests
        self._events = events
        self._completions = completions
        self._listener = listener
        self._echo_logs = echo_logs
        
        self._live_shards = set(range(jobs))
        self._num_events = [0] * jobs
        self._current_testcase = [None] * jobs  # type: list[TestIdentifier | None]
        self._failed = [False] * jobs
        # Shards which signaled completion but whose records have not all been received yet,
        # mapped to the number of records they announced
        self._draining = {}  # type: dict[int, int]
        self._retired = set()  # type: set[int]
    
    @capture_crashes_to_self
    def run(self) -> None:
        while len(self._live_shards) > 0:
            item = self._events.get()
            if isinstance(item, ShardExited):
                self._live_shards.discard(item.shard)
            else:
                self._receive(item)
            self._retire_completed_shards()
        
        # Every shard thread has exited, so every completion has either
        # been sent or abandoned
        self._retire_completed_shards()
    
    def _receive(self, test: Test) -> None:
        shard = test.shard
        assert shard is not None
        self._num_events[shard] += 1
        
        event = test.event
        if isinstance(event, Starting):
            self._current_testcase[shard] = test.testcase
        elif isinstance(event, Terminal):
            self._current_testcase[shard] = None
            if event.status.is_failed:
                self._failed[shard] = True
            self.stats.record(test)
            if self._echo_logs:
                for line in event.log:
                    self._listener.write(line)
            self._listener.test_finished(GlobalProgress(
                num_finished=self.stats.num_finished,
                num_failed=self.stats.num_failed,
                num_tests=self._num_tests,
            ))
        self._listener.shard_progressed(self._shard_progress(shard))
    
    def _retire_completed_shards(self) -> None:
        for completion in self._completions.poll(timeout=0):
            self._shard_completed(completion)
        for (shard, num_announced) in list(self._draining.items()):
            if self._num_events[shard] >= num_announced:
                del self._draining[shard]
                self._retire(shard)
    
    def _shard_completed(self, completion: Completion) -> None:
        shard = completion.key
        if completion.num_events is None:
            # Reader thread crashed. Its bulkhead holds the reason.
            self._retire(shard)
        else:
            self._draining[shard] = completion.num_events
    
    def _retire(self, shard: int) -> None:
        self._retired.add(shard)
        self._listener.shard_finished(self._shard_progress(shard))
    
    def _shard_progress(self, shard: int) -> ShardProgress:
        return ShardProgress(
            shard=shard,
            num_events=self._num_events[shard],
            current_testcase=self._current_testcase[shard],
            failed=self._failed[shard],
            done=(shard in self._retired),
        )


# ------------------------------------------------------------------------------
# Report

def _print_attempt_summary(attempt: AttemptResult, verbosity: int) -> None:
    stats = attempt.stats
    if stats.num_failed > 0:
        cli.print_error('Failed tests:')
        for test in stats.failed_tests:
            assert isinstance(test.event, Terminal)
            status = test.event.status.value
            cli.print_error(f'  {test.testcase} ({status})')
            if 0 < verbosity <= 2:
                for line in test.event.log:
                    print(f'    {line}')
        cli.print_error(
            f'{stats.num_failed} out of {attempt.num_tests} tests failed', bold=True)
    else:
        cli.print_success(f'{stats.num_passed} tests passed', bold=True)
    
    if not attempt.is_consistent:
        cli.print_error(
            f'Expected {attempt.num_tests} test results but collected '
            f'{stats.num_finished}. Some results were lost.')


# ------------------------------------------------------------------------------
