class GTestRunnerError(Exception):
    """Base class for errors that abort a test run."""


class ExecutableNotFoundError(GTestRunnerError):
    """The test executable path could not be canonicalized."""


class DiscoveryError(GTestRunnerError):
    """Listing the tests of an executable failed or produced unparsable output."""


class SpawnError(GTestRunnerError):
    """A shard's child process could not be started."""


class ShardIOError(GTestRunnerError):
    """Reading or parsing the output of a shard failed."""
    
    def __init__(self, shard: int, message: str) -> None:
        super().__init__(f'Shard {shard}: {message}')
        self.shard = shard


class AggregationError(GTestRunnerError):
    """The thread collecting shard results crashed."""


class ParseError(GTestRunnerError):
    """A marker line in test output was malformed."""
    
    def __init__(self, message: str, line: str) -> None:
        super().__init__(f'{message}: {line!r}')
        self.line = line


class LostResultsError(GTestRunnerError):
    """
    Raised when the number of test results collected does not match
    the number of tests discovered, meaning some results were lost.
    """
    
    def __init__(self, num_tests: int, num_passed: int, num_failed: int) -> None:
        super().__init__(
            f'Expected {num_tests} test results but collected '
            f'{num_passed + num_failed} ({num_passed} passed, {num_failed} failed)')
        self.num_tests = num_tests
        self.num_passed = num_passed
        self.num_failed = num_failed
