"""
A sample test executable which speaks the GoogleTest console protocol,
for trying out gtest-runner without a C++ toolchain.
    
    python -m gtest_runner.sample --gtest_list_tests
    GTEST_RUNNER_SAMPLE_TESTS='Math.Add=ok,Math.Div=crash' gtest-runner-sample

The tests and their outcomes are read from $GTEST_RUNNER_SAMPLE_TESTS,
a comma-separated list of NAME=OUTCOME pairs where OUTCOME is one of:
* ok -- the test passes.
* failed -- the test fails.
* crash -- the process dies in the middle of the test.
* lost -- the test is listed but never runs.

The GTEST_FILTER, GTEST_ALSO_RUN_DISABLED_TESTS, GTEST_SHARD_INDEX,
GTEST_TOTAL_SHARDS, and GTEST_COLOR environment variables are honored
like a real GoogleTest executable would.
"""

import argparse
from collections.abc import Mapping
from dataclasses import dataclass
from fnmatch import fnmatchcase
import os
import sys

SAMPLE_TESTS_ENV = 'GTEST_RUNNER_SAMPLE_TESTS'
DEFAULT_SAMPLE_TESTS = 'NOPE.NOPE0=ok,NOPE.NOPE1=ok'

OUTCOMES = ('ok', 'failed', 'crash', 'lost')

_CRASH_EXIT_CODE = 134  # like SIGABRT

_COLOR_GREEN = '\033[0;32m'
_COLOR_RED = '\033[0;31m'
_COLOR_RESET = '\033[m'


@dataclass(frozen=True)
class SampleTest:
    suite: str  # includes trailing '.'
    case: str
    outcome: str
    
    @property
    def name(self) -> str:
        return self.suite + self.case


def parse_sample_tests(spec: str) -> list[SampleTest]:
    """
    Parses a value like "Suite.A=ok,Suite.B=failed".
    
    Raises:
    * ValueError -- if the value is malformed.
    """
    tests = []
    for item in spec.split(','):
        item = item.strip()
        if item == '':
            continue
        (name, sep, outcome) = item.partition('=')
        if sep == '':
            outcome = 'ok'
        if outcome not in OUTCOMES:
            raise ValueError(f'Unknown outcome {outcome!r} for sample test {name!r}')
        (suite, dot, case) = name.rpartition('.')
        if dot == '' or suite == '' or case == '':
            raise ValueError(f'Sample test name must look like Suite.Case: {name!r}')
        tests.append(SampleTest(suite + '.', case, outcome))
    return tests


def matches_filter(name: str, filter: str) -> bool:
    """
    Returns whether the specified test name is selected by a GoogleTest filter
    like "Suite.*:Other.A-Suite.Slow*".
    """
    (positive, _, negative) = filter.partition('-')
    positive_patterns = [p for p in positive.split(':') if p != ''] or ['*']
    negative_patterns = [p for p in negative.split(':') if p != '']
    return (
        any(fnmatchcase(name, p) for p in positive_patterns) and
        not any(fnmatchcase(name, p) for p in negative_patterns)
    )


def select_tests(tests: list[SampleTest], env: Mapping[str, str]) -> list[SampleTest]:
    """Returns the tests that GoogleTest would run in the specified environment."""
    filter = env.get('GTEST_FILTER', '*')
    also_run_disabled = env.get('GTEST_ALSO_RUN_DISABLED_TESTS', '0') not in ('', '0')
    selected = []
    for test in tests:
        if not matches_filter(test.name, filter):
            continue
        if not also_run_disabled and (
                'DISABLED_' in test.case or test.suite.startswith('DISABLED_')):
            continue
        selected.append(test)
    
    shard_index = int(env.get('GTEST_SHARD_INDEX', '0'))
    total_shards = int(env.get('GTEST_TOTAL_SHARDS', '1'))
    return [t for (i, t) in enumerate(selected) if i % total_shards == shard_index]


def list_tests(tests: list[SampleTest], env: Mapping[str, str]) -> None:
    filter = env.get('GTEST_FILTER', '*')
    current_suite = None
    for test in tests:
        # Like GoogleTest, list disabled tests but honor the filter
        if not matches_filter(test.name, filter):
            continue
        if test.suite != current_suite:
            print(test.suite)
            current_suite = test.suite
        print(f'  {test.case}')


def run_tests(tests: list[SampleTest], env: Mapping[str, str]) -> int:
    color = env.get('GTEST_COLOR', '').lower() in ('yes', 'true', '1')
    def marker(text: str, color_code: str) -> str:
        return f'{color_code}{text}{_COLOR_RESET}' if color else text
    
    selected = select_tests(tests, env)
    print(marker('[==========]', _COLOR_GREEN) + f' Running {len(selected)} tests.')
    failed = []
    for test in selected:
        if test.outcome == 'lost':
            continue
        print(marker('[ RUN      ]', _COLOR_GREEN) + f' {test.name}')
        if test.outcome == 'ok':
            print(marker('[       OK ]', _COLOR_GREEN) + f' {test.name} (0 ms)')
        elif test.outcome == 'failed':
            print('sample_test.cc:42: Failure')
            print('Value of: sample_condition()')
            print('  Actual: false')
            print('Expected: true')
            print(marker('[  FAILED  ]', _COLOR_RED) + f' {test.name} (0 ms)')
            failed.append(test)
        elif test.outcome == 'crash':
            print('*** Aborted at 1 (unix time) try "date -d @1" if you are using GNU date ***')
            print('PC: @     0x7f0000000000 abort')
            print('*** SIGABRT (@0x1) received by PID 1; stack trace: ***')
            sys.stdout.flush()
            os._exit(_CRASH_EXIT_CODE)
        else:
            raise AssertionError(f'Unknown outcome: {test.outcome}')
    print(marker('[==========]', _COLOR_GREEN) + f' {len(selected)} tests ran.')
    if failed:
        print(marker('[  FAILED  ]', _COLOR_RED) + f' {len(failed)} tests, listed below:')
        for test in failed:
            print(marker('[  FAILED  ]', _COLOR_RED) + f' {test.name}')
    sys.stdout.flush()
    return 1 if failed else 0


def main(args: list[str] | None=None, *, environ: Mapping[str, str] | None=None) -> int:
    if environ is None:
        environ = os.environ
    parser = argparse.ArgumentParser(
        prog='gtest-runner-sample',
        description='Sample test executable speaking the GoogleTest console protocol.',
    )
    parser.add_argument('--gtest_list_tests', action='store_true',
        help='List the names of all tests instead of running them.')
    parsed_args = parser.parse_args(args)
    
    try:
        tests = parse_sample_tests(environ.get(SAMPLE_TESTS_ENV, DEFAULT_SAMPLE_TESTS))
    except ValueError as e:
        parser.error(f'${SAMPLE_TESTS_ENV}: {e}')
    
    if parsed_args.gtest_list_tests:
        list_tests(tests, environ)
        return 0
    return run_tests(tests, environ)


def main_entry() -> None:
    """Entry point of the gtest-runner-sample console script."""
    sys.exit(main())


if __name__ == '__main__':
    main_entry()
