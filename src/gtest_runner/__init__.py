"""
gtest-runner runs GoogleTest executables as parallel shards,
collects their results, and retries failed tests.
"""

__version__ = '1.0.0'
