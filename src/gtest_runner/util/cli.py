from io import TextIOBase
import os
import sys

# ------------------------------------------------------------------------------
# Terminal Colors

# Honors the informal https://no-color.org/ convention
_USE_COLORS = os.environ.get('NO_COLOR', '') == ''

# ANSI color codes
TERMINAL_FG_RED =           '\033[0;31m'
TERMINAL_FG_BOLD_RED =      '\033[1;31m'
TERMINAL_FG_GREEN =         '\033[0;32m'
TERMINAL_FG_BOLD_GREEN =    '\033[1;32m'
TERMINAL_FG_YELLOW =        '\033[0;33m'
TERMINAL_RESET =            '\033[0m'


def use_colors() -> bool:
    return _USE_COLORS


def print_success(message: str, file: TextIOBase | None=None, *, bold: bool=False) -> None:
    print(colorize(TERMINAL_FG_BOLD_GREEN if bold else TERMINAL_FG_GREEN, message), file=file)


def print_error(message: str, file: TextIOBase | None=None, *, bold: bool=False) -> None:
    print(colorize(TERMINAL_FG_BOLD_RED if bold else TERMINAL_FG_RED, message), file=file)


def print_warning(message: str, file: TextIOBase | None=None) -> None:
    print(colorize(TERMINAL_FG_YELLOW, message), file=file)


def print_diagnostic(source: str, message: str) -> None:
    """
    Prints a diagnostic line to stderr, prefixed with the bracketed
    name of the component that produced it. For example:
        
        [Runner] Spawning 4 shards of /path/to/test_exe
    """
    print(f'[{source}] {message}', file=sys.stderr)


def colorize(color_code: str, str_value: str) -> str:
    return (color_code + str_value + TERMINAL_RESET) if _USE_COLORS else str_value


# ------------------------------------------------------------------------------
