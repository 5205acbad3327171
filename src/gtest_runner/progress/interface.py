from dataclasses import dataclass
from gtest_runner.model import TestIdentifier


# ------------------------------------------------------------------------------
# Progress Snapshots

@dataclass(frozen=True)
class ShardProgress:
    """
    A read-only snapshot of one shard's progress,
    taken by the thread which aggregates shard results.
    """
    shard: int
    # Number of records received from the shard so far
    num_events: int
    # The test the shard is currently running, if any
    current_testcase: TestIdentifier | None
    # Whether any test of the shard has failed so far
    failed: bool
    done: bool


@dataclass(frozen=True)
class GlobalProgress:
    num_finished: int
    num_failed: int
    num_tests: int


# ------------------------------------------------------------------------------
# RunProgressListener

# NOTE: See subclass TqdmRunProgressListener for the documentation of
#       the various methods in this interface.
#       
#       All methods other than discovering_tests(), did_discover_tests(),
#       and did_run_attempt() are called on the aggregator thread.
class RunProgressListener:
    def discovering_tests(self, executable: str) -> None:
        pass
    
    def did_discover_tests(self, num_tests: int) -> None:
        pass
    
    def will_run_attempt(self, attempt: int, num_tests: int, jobs: int) -> None:
        pass
    
    def shard_progressed(self, progress: ShardProgress) -> None:
        pass
    
    def test_finished(self, progress: GlobalProgress) -> None:
        pass
    
    def shard_finished(self, progress: ShardProgress) -> None:
        pass
    
    def did_run_attempt(self) -> None:
        pass
    
    def write(self, message: str) -> None:
        """Prints a line of output without disturbing any progress display."""
        print(message)


DummyRunProgressListener = RunProgressListener


# ------------------------------------------------------------------------------
