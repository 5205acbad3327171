"""
Command line interface of gtest-runner.

Usage:
    gtest-runner [-j JOBS] [-v VERBOSITY] [-r REPEAT] [--filter FILTER]
                 [--also-run-disabled-tests] TEST_EXECUTABLE [TEST_EXECUTABLE ...]

Defaults for -j, -v, and -r may be set with the environment variables
GTEST_RUNNER_JOBS, GTEST_RUNNER_VERBOSITY, and GTEST_RUNNER_REPEAT.
"""

import argparse
from collections.abc import Mapping
from gtest_runner import __version__
from gtest_runner.errors import GTestRunnerError, LostResultsError
from gtest_runner.run import DEFAULT_VERBOSITY, run
from gtest_runner.util import cli
from gtest_runner.util.xos import cpu_count
import os
import sys

JOBS_ENV = 'GTEST_RUNNER_JOBS'
VERBOSITY_ENV = 'GTEST_RUNNER_VERBOSITY'
REPEAT_ENV = 'GTEST_RUNNER_REPEAT'

# Exit codes
EXIT_OK = 0
EXIT_TESTS_FAILED = 1
EXIT_FATAL_ERROR = 2
EXIT_INTERRUPTED = 130


def main(args: list[str] | None=None, *, environ: Mapping[str, str] | None=None) -> int:
    """
    Runs the tests of every executable named on the command line, one after another.
    
    Returns the exit code of the process.
    """
    if environ is None:
        environ = os.environ
    parser = _create_argument_parser(environ)
    parsed_args = parser.parse_args(args)
    
    total_failed = 0
    lost_results = False
    try:
        for executable in parsed_args.test_executables:
            try:
                total_failed += run(
                    executable,
                    filter=parsed_args.filter,
                    jobs=parsed_args.jobs,
                    verbosity=parsed_args.verbosity,
                    repeat=parsed_args.repeat,
                    include_disabled=parsed_args.also_run_disabled_tests,
                )
            except LostResultsError as e:
                cli.print_error(f'Lost results: {e}', bold=True)
                total_failed += e.num_failed
                lost_results = True
    except GTestRunnerError as e:
        cli.print_error(f'error: {e}', file=sys.stderr)
        return EXIT_FATAL_ERROR
    except KeyboardInterrupt:
        cli.print_warning('Interrupted', file=sys.stderr)
        return EXIT_INTERRUPTED
    
    if len(parsed_args.test_executables) > 1:
        if total_failed == 0 and not lost_results:
            cli.print_success('All test executables passed', bold=True)
        else:
            cli.print_error(f'{total_failed} tests failed in total', bold=True)
    
    if total_failed > 0 or lost_results:
        return EXIT_TESTS_FAILED
    return EXIT_OK


def main_entry() -> None:
    """Entry point of the gtest-runner console script."""
    sys.exit(main())


def _create_argument_parser(environ: Mapping[str, str]) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='gtest-runner',
        description='Runs GoogleTest executables as parallel shards.',
    )
    parser.add_argument(
        'test_executables',
        metavar='TEST_EXECUTABLE',
        nargs='+',
        help='GoogleTest executable to run.',
    )
    parser.add_argument(
        '-j', '--jobs',
        type=_positive_int,
        default=_int_from_env(parser, environ, JOBS_ENV, cpu_count()),
        help=f'Number of shards to run in parallel. Default: ${JOBS_ENV} or the number of CPUs.',
    )
    parser.add_argument(
        '-v', '--verbosity',
        type=int,
        default=_int_from_env(parser, environ, VERBOSITY_ENV, DEFAULT_VERBOSITY),
        help=(
            '0 to print only a summary, 1 to show overall progress, '
            '2 to also show progress of each shard, 3+ to print the output of every test. '
            f'Default: ${VERBOSITY_ENV} or {DEFAULT_VERBOSITY}.'
        ),
    )
    parser.add_argument(
        '-r', '--repeat',
        type=_non_negative_int,
        default=_int_from_env(parser, environ, REPEAT_ENV, 0),
        help=f'Maximum number of times to rerun failed tests. Default: ${REPEAT_ENV} or 0.',
    )
    parser.add_argument(
        '--filter',
        default=None,
        help='GoogleTest filter selecting the tests to run, like "Suite.*:-Suite.Slow".',
    )
    parser.add_argument(
        '--also-run-disabled-tests',
        action='store_true',
        help='Also run tests whose names contain DISABLED_.',
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}',
    )
    return parser


def _int_from_env(
        parser: argparse.ArgumentParser,
        environ: Mapping[str, str],
        name: str,
        default: int,
        ) -> int:
    value_str = environ.get(name)
    if value_str is None or value_str == '':
        return default
    try:
        return int(value_str)
    except ValueError:
        parser.error(f'${name} must be an integer but was {value_str!r}')


def _positive_int(value_str: str) -> int:
    value = int(value_str)
    if value < 1:
        raise argparse.ArgumentTypeError(f'must be at least 1 but was {value}')
    return value


def _non_negative_int(value_str: str) -> int:
    value = int(value_str)
    if value < 0:
        raise argparse.ArgumentTypeError(f'must be at least 0 but was {value}')
    return value


if __name__ == '__main__':
    main_entry()
