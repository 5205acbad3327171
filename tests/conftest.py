"""
Fixtures shared by the gtest_runner tests.
"""

from collections.abc import Callable
import os
import pytest
import sys

SampleExecutableFactory = Callable[[str], str]


@pytest.fixture
def sample_executable(tmp_path, monkeypatch) -> SampleExecutableFactory:
    """
    Returns a function which creates a GoogleTest-compatible executable
    running the specified sample tests, like "Suite.A=ok,Suite.B=failed",
    and returns its path.
    """
    if sys.platform == 'win32':
        pytest.skip('Sample executables are shell scripts')
    
    def create(sample_tests: str='NOPE.NOPE0=ok,NOPE.NOPE1=ok') -> str:
        monkeypatch.setenv('GTEST_RUNNER_SAMPLE_TESTS', sample_tests)
        # Tests must not inherit a selection from the environment running pytest
        for name in ['GTEST_FILTER', 'GTEST_ALSO_RUN_DISABLED_TESTS']:
            monkeypatch.delenv(name, raising=False)
        
        script_filepath = tmp_path / 'sample_test'
        script_filepath.write_text(
            '#!/bin/sh\n'
            f'exec "{sys.executable}" -m gtest_runner.sample "$@"\n',
            encoding='utf-8')
        os.chmod(script_filepath, 0o755)
        return str(script_filepath)
    return create
