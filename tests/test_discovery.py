"""
Unit tests for gtest_runner.discovery.
"""

from gtest_runner.discovery import get_tests, parse_test_listing
from gtest_runner.errors import DiscoveryError
import os
import pytest
import subprocess
import sys
from unittest.mock import patch

_LISTING = '''\
Future.
  Ready
  Discarded
  DISABLED_Slow
DISABLED_Flaky.
  Sometimes
Typed/0.  # TypeParam = int
  Works
Param/Suite.
  Case/0  # GetParam() = 1
  Case/1  # GetParam() = 2
'''


# ------------------------------------------------------------------------------
# TestParseTestListing

class TestParseTestListing:
    def test_concatenates_suite_and_case_names(self) -> None:
        tests = parse_test_listing('Suite.\n  A\n  B\nOther.\n  C\n')
        assert {'Suite.A', 'Suite.B', 'Other.C'} == tests
    
    def test_excludes_disabled_tests_by_default(self) -> None:
        tests = parse_test_listing(_LISTING)
        assert {
            'Future.Ready',
            'Future.Discarded',
            'Typed/0.Works',
            'Param/Suite.Case/0',
            'Param/Suite.Case/1',
        } == tests
    
    def test_includes_disabled_tests_when_requested(self) -> None:
        tests = parse_test_listing(_LISTING, include_disabled=True)
        assert 'Future.DISABLED_Slow' in tests
        assert 'DISABLED_Flaky.Sometimes' in tests
        assert 7 == len(tests)
    
    def test_deduplicates_repeated_cases(self) -> None:
        tests = parse_test_listing('Suite.\n  A\n  A\n')
        assert {'Suite.A'} == tests
    
    def test_skips_blank_lines(self) -> None:
        tests = parse_test_listing('\nSuite.\n\n  A\n\n')
        assert {'Suite.A'} == tests
    
    def test_case_before_any_suite_is_error(self) -> None:
        with pytest.raises(DiscoveryError):
            parse_test_listing('  Orphan\nSuite.\n  A\n')
    
    def test_empty_listing_has_no_tests(self) -> None:
        assert set() == parse_test_listing('')


# ------------------------------------------------------------------------------
# TestGetTests

class TestGetTests:
    def test_lists_tests_of_executable_with_environment(self) -> None:
        completed = subprocess.CompletedProcess(
            args=[], returncode=0, stdout='Suite.\n  A\n  DISABLED_B\n')
        with patch('subprocess.run', return_value=completed) as run_mock:
            tests = get_tests('/bin/test_exe', env={'GTEST_FILTER': 'Suite.*'})
        assert {'Suite.A'} == tests
        (args, kwargs) = run_mock.call_args
        assert ['/bin/test_exe', '--gtest_list_tests'] == args[0]
        assert {'GTEST_FILTER': 'Suite.*'} == kwargs['env']
        assert subprocess.DEVNULL == kwargs['stderr']
    
    def test_non_zero_exit_status_is_error(self) -> None:
        completed = subprocess.CompletedProcess(args=[], returncode=3, stdout='Suite.\n  A\n')
        with patch('subprocess.run', return_value=completed):
            with pytest.raises(DiscoveryError) as exc_info:
                get_tests('/bin/test_exe')
        assert 'exit code 3' in str(exc_info.value)
    
    def test_unstartable_executable_is_error(self, tmp_path) -> None:
        with pytest.raises(DiscoveryError):
            get_tests(os.path.join(tmp_path, 'no_such_test_exe'))
    
    @pytest.mark.skipif(sys.platform == 'win32', reason='Sample executables are shell scripts')
    def test_lists_tests_of_sample_executable(self, sample_executable) -> None:
        executable = sample_executable('Math.Add=ok,Math.Div=failed,Math.DISABLED_Mod=ok')
        assert {'Math.Add', 'Math.Div'} == get_tests(executable)
        assert {'Math.Add', 'Math.Div', 'Math.DISABLED_Mod'} == \
            get_tests(executable, include_disabled=True)
    
    @pytest.mark.skipif(sys.platform == 'win32', reason='Sample executables are shell scripts')
    def test_filter_in_environment_narrows_listing(self, sample_executable) -> None:
        executable = sample_executable('Math.Add=ok,Math.Div=failed,Text.Join=ok')
        env = dict(os.environ, GTEST_FILTER='Math.*:-Math.Div')
        assert {'Math.Add'} == get_tests(executable, env=env)


# ------------------------------------------------------------------------------
