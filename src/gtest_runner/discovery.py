from collections.abc import Mapping
from gtest_runner.errors import DiscoveryError
from gtest_runner.model import TestIdentifier
import subprocess

LIST_TESTS_FLAG = '--gtest_list_tests'

_DISABLED_PREFIX = 'DISABLED_'


def get_tests(
        executable: str,
        *, include_disabled: bool=False,
        env: Mapping[str, str] | None=None,
        ) -> set[TestIdentifier]:
    """
    Lists the tests that the specified executable would run.
    
    Arguments:
    * executable -- path to a GoogleTest executable.
    * include_disabled -- whether to include tests named with DISABLED_.
    * env -- environment of the listing process, including any GTEST_FILTER.
    
    Raises:
    * DiscoveryError --
        if the executable could not be started, exited with a non-zero
        status, or printed a listing that could not be parsed.
    """
    try:
        result = subprocess.run(
            [executable, LIST_TESTS_FLAG],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            env=env,
            text=True,
            errors='replace',
        )
    except OSError as e:
        raise DiscoveryError(f'Unable to list tests of {executable}: {e}') from e
    if result.returncode != 0:
        raise DiscoveryError(
            f'Listing tests of {executable} failed with exit code {result.returncode}')
    return parse_test_listing(result.stdout, include_disabled=include_disabled)


def parse_test_listing(output: str, *, include_disabled: bool=False) -> set[TestIdentifier]:
    """
    Parses the output of an executable run with --gtest_list_tests, which
    looks like:
        
        Suite.
          CaseOne
          CaseTwo
        TypedSuite/0.  # TypeParam = int
          Case
    
    Returns identifiers like "Suite.CaseOne".
    
    Raises:
    * DiscoveryError -- if a case is listed before any suite.
    """
    tests = set()
    suite = None  # type: str | None
    for line in output.splitlines():
        tokens = line.split()
        if len(tokens) == 0:
            continue
        if not line[0].isspace():
            suite = tokens[0]
            continue
        if suite is None:
            raise DiscoveryError(f'Test case listed before any test suite: {line!r}')
        case = tokens[0]
        if not include_disabled and _is_disabled(suite, case):
            continue
        tests.add(suite + case)
    return tests


def _is_disabled(suite: str, case: str) -> bool:
    return _DISABLED_PREFIX in case or suite.startswith(_DISABLED_PREFIX)
