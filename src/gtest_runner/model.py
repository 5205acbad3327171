from dataclasses import dataclass, field, replace
from enum import Enum


# Qualified test name, like "Suite.Case"
TestIdentifier = str


class Status(Enum):
    OK = 'OK'
    FAILED = 'FAILED'
    # Synthesized when a test's output ended without an OK or FAILED marker
    ABORTED = 'ABORTED'
    
    @property
    def is_failed(self) -> bool:
        return self != Status.OK


# ------------------------------------------------------------------------------
# Events

@dataclass(frozen=True)
class Starting:
    pass


@dataclass(frozen=True)
class Running:
    pass


@dataclass(frozen=True)
class Terminal:
    status: Status
    # Every raw line from the test's start marker through its last line,
    # with ANSI color codes preserved and line terminators removed
    log: tuple[str, ...]


Event = Starting | Running | Terminal


# ------------------------------------------------------------------------------
# Test

@dataclass(frozen=True)
class Test:
    __test__ = False  # tell pytest this is not a test class
    
    testcase: TestIdentifier
    event: Event
    # Index of the shard which produced this record, once tagged
    shard: int | None = None
    
    def with_shard(self, shard: int) -> 'Test':
        return replace(self, shard=shard)
    
    @property
    def is_terminal(self) -> bool:
        return isinstance(self.event, Terminal)
    
    @property
    def is_failed(self) -> bool:
        return isinstance(self.event, Terminal) and self.event.status.is_failed


# ------------------------------------------------------------------------------
# ShardStats

@dataclass
class ShardStats:
    num_passed: int = 0
    failed_tests: list[Test] = field(default_factory=list)
    
    @property
    def num_failed(self) -> int:
        return len(self.failed_tests)
    
    @property
    def num_finished(self) -> int:
        return self.num_passed + self.num_failed
    
    def record(self, test: Test) -> None:
        """
        Classifies a terminal test record as passed or failed.
        
        Raises:
        * ValueError -- if the record is not terminal.
        """
        if not isinstance(test.event, Terminal):
            raise ValueError(f'Expected a terminal record for {test.testcase}, got {test.event!r}')
        if test.event.status.is_failed:
            self.failed_tests.append(test)
        else:
            self.num_passed += 1


# ------------------------------------------------------------------------------
