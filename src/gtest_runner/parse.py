"""
Parses the console output of a GoogleTest executable into test lifecycle events.

A test's output looks like:
    
    [ RUN      ] Suite.Case
    ...any lines printed by the test body...
    [       OK ] Suite.Case (12 ms)

or ends with a "[  FAILED  ] Suite.Case (12 ms)" line instead. If the output
stops before either terminal marker, the test is reported as ABORTED.
"""

from collections.abc import Iterable, Iterator
from gtest_runner.errors import ParseError
from gtest_runner.model import (
    Running, Starting, Status, Terminal, Test, TestIdentifier,
)
import re

# Matches ANSI escape sequences, such as color codes
_ANSI_ESCAPE_RE = re.compile(r'\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])')

_START_MARKER = '[ RUN      ] '
_OK_MARKER_RE = re.compile(r'^\[       OK \] .* \(\d* [^)]*\)')
_FAILED_MARKER_RE = re.compile(r'^\[  FAILED  \] .* \(\d* [^)]*\)')


def strip_ansi_codes(line: str) -> str:
    return _ANSI_ESCAPE_RE.sub('', line)


class Parser:
    """
    A two-state machine which converts the lines of one process's output
    into Test records, one line at a time.
    
    While Idle no test is active and non-marker lines are ignored.
    While Active the lines of the active test are accumulated into its log,
    which is surfaced in the test's Terminal event.
    
    Example:
        parser = Parser()
        for line in lines:
            for test in parser.feed(line):
                ...
        for test in parser.finish():
            ...
    """
    
    def __init__(self) -> None:
        self._active_testcase = None  # type: TestIdentifier | None
        self._active_log = []  # type: list[str]
    
    @property
    def active_testcase(self) -> TestIdentifier | None:
        """The test that has started but not yet finished, or None if idle."""
        return self._active_testcase
    
    def feed(self, line: str) -> list[Test]:
        """
        Consumes one line of output, returning the records it produces.
        
        Raises:
        * ParseError -- if the line is a start marker with no test name.
        """
        line = line.rstrip('\r\n')
        plain_line = strip_ansi_codes(line)
        
        if _OK_MARKER_RE.match(plain_line):
            return self._terminate(line, Status.OK)
        if _FAILED_MARKER_RE.match(plain_line):
            return self._terminate(line, Status.FAILED)
        if plain_line.startswith(_START_MARKER):
            return self._start(line, plain_line)
        
        if self._active_testcase is None:
            # Banner text, or stray text between tests
            return []
        self._active_log.append(line)
        return [Test(self._active_testcase, Running())]
    
    def finish(self) -> list[Test]:
        """
        Signals the end of output, returning an ABORTED record
        for the active test if there is one.
        """
        if self._active_testcase is None:
            return []
        return [self._finalize(Status.ABORTED)]
    
    # === Transitions ===
    
    def _start(self, line: str, plain_line: str) -> list[Test]:
        rest = plain_line[len(_START_MARKER):].split(maxsplit=1)
        if len(rest) == 0:
            raise ParseError('Start marker does not name a test', line)
        testcase = rest[0]
        
        tests = []
        if self._active_testcase is not None:
            # A test cannot start while another is running in the same
            # process, so the previous test must have died silently
            tests.append(self._finalize(Status.ABORTED))
        self._active_testcase = testcase
        self._active_log = [line]
        tests.append(Test(testcase, Starting()))
        return tests
    
    def _terminate(self, line: str, status: Status) -> list[Test]:
        if self._active_testcase is None:
            # Summary lines such as "[  FAILED  ] Suite.Case (3 ms)"
            # may be repeated after all tests have finished
            return []
        self._active_log.append(line)
        return [self._finalize(status)]
    
    def _finalize(self, status: Status) -> Test:
        assert self._active_testcase is not None
        test = Test(self._active_testcase, Terminal(status, tuple(self._active_log)))
        self._active_testcase = None
        self._active_log = []
        return test


def parse_lines(lines: Iterable[str]) -> Iterator[Test]:
    """
    Parses every line from the specified source, including end-of-output
    finalization. The source may be a file, a pipe, or a list of strings.
    
    Raises:
    * ParseError
    """
    parser = Parser()
    for line in lines:
        yield from parser.feed(line)
    yield from parser.finish()
