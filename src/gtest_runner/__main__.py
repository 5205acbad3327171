"""
Trampolines to the main module at gtest_runner.main,
so that `python -m gtest_runner` behaves like the gtest-runner command.
"""

from gtest_runner.main import main_entry

if __name__ == '__main__':
    main_entry()
