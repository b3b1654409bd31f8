from io import TextIOBase
import os
import sys

# ------------------------------------------------------------------------------
# Terminal Colors

_USE_COLORS = True

# ANSI color codes
TERMINAL_FG_RED =           '\033[0;31m'
TERMINAL_FG_GREEN =         '\033[0;32m'
TERMINAL_FG_CYAN =          '\033[0;36m'
TERMINAL_FG_YELLOW =        '\033[0;33m'
TERMINAL_RESET =            '\033[0m'


def print_success(message: str, file: TextIOBase | None=None) -> None:
    print(_colorize(TERMINAL_FG_GREEN, message), file=file)


def print_error(message: str, file: TextIOBase | None=None) -> None:
    print(_colorize(TERMINAL_FG_RED, message), file=file)


def print_warning(message: str, file: TextIOBase | None=None) -> None:
    print(_colorize(TERMINAL_FG_YELLOW, message), file=file)


def print_info(message: str, file: TextIOBase | None=None) -> None:
    print(_colorize(TERMINAL_FG_CYAN, message), file=file)


def _colorize(color_code: str, str_value: str) -> str:
    return (color_code + str_value + TERMINAL_RESET) if _USE_COLORS else str_value


# ------------------------------------------------------------------------------
# Verbose Output

def verbose_enabled() -> bool:
    """
    Returns whether diagnostic output was requested with
    the SAVELINKMENUS_VERBOSE environment variable.
    """
    return os.environ.get('SAVELINKMENUS_VERBOSE', 'False') == 'True'


def print_verbose(prefix: str, message: str) -> None:
    """Prints a diagnostic message to stderr, prefixed with the component name."""
    print(f'{prefix}: {message}', file=sys.stderr)


# ------------------------------------------------------------------------------
