"""
Bulkheads are the boundaries at which unhandled exceptions (i.e. crashes)
stop propagating.

Work scheduled onto another thread (with bg_call_later or fg_call_later)
must be wrapped in a bulkhead so that a crash is reported rather than
silently killing the thread or the main loop.
"""

from collections.abc import Callable
from functools import wraps
import sys
import traceback
from typing import overload, TypeVar
from typing_extensions import ParamSpec

_P = ParamSpec('_P')
_R = TypeVar('_R')
_RT = TypeVar('_RT')
_RF = TypeVar('_RF')


# ------------------------------------------------------------------------------
# Bulkheads

@overload
def capture_crashes_to_stderr(
        func: Callable[_P, _RT]
        ) -> Callable[_P, _RT | None]:
    ...

@overload
def capture_crashes_to_stderr(
        *, return_if_crashed: _RF
        ) -> Callable[[Callable[_P, _RT]], Callable[_P, _RT | _RF]]:
    ...

def capture_crashes_to_stderr(
        func: Callable[_P, _RT] | None=None,
        *, return_if_crashed=None  # _RF
        ):
    """
    A function that captures any raised exceptions, and prints them to stderr.
    
    Examples:
        @capture_crashes_to_stderr
        def on_probe_done(self) -> None:
            ...
        
        @capture_crashes_to_stderr(return_if_crashed=False)
        def try_save(self) -> bool:
            ...
    """
    def decorate(func: Callable[_P, _RT]) -> Callable[_P, _RT | _RF]:
        @wraps(func)
        @_mark_bulkhead_call
        def bulkhead_call(*args: _P.args, **kwargs: _P.kwargs) -> _RT | _RF:
            try:
                return func(*args, **kwargs)
            except BaseException as e:
                _print_bulkhead_exception(e)
                
                # Abort.
                return return_if_crashed
        return bulkhead_call
    if func is None:
        return decorate
    else:
        return decorate(func)


def _mark_bulkhead_call(bulkhead_call: Callable[_P, _R]) -> Callable[_P, _R]:
    bulkhead_call._captures_crashes = True  # type: ignore[attr-defined]
    return bulkhead_call


def run_bulkhead_call(
        bulkhead_call: Callable[_P, _R],
        /, *args: _P.args,
        **kwargs: _P.kwargs
        ) -> '_R':
    """
    Calls a function marked as @capture_crashes_to*,
    which does not reraise exceptions from its interior.
    
    Raises AssertionError if the specified function is not actually
    marked with @capture_crashes_to*.
    """
    ensure_is_bulkhead_call(bulkhead_call)
    return bulkhead_call(*args, **kwargs)


def ensure_is_bulkhead_call(callable: Callable) -> None:
    """
    Raises AssertionError if the specified function is not actually
    marked with @capture_crashes_to*.
    """
    if not is_bulkhead_call(callable):
        raise AssertionError(f'Expected callable {callable!r} to be decorated with @capture_crashes_to*')


def is_bulkhead_call(callable: Callable) -> bool:
    """
    Returns whether the specified function is marked with @capture_crashes_to*.
    """
    return getattr(callable, '_captures_crashes', False) == True


# ------------------------------------------------------------------------------
# Utility

def _print_bulkhead_exception(e: BaseException) -> None:
    from savelinkmenus.util import cli
    
    err_file = sys.stderr
    print(cli.TERMINAL_FG_RED, end='', file=err_file)
    print('Exception in bulkhead:', file=err_file)
    traceback.print_exception(e, file=err_file)
    print(cli.TERMINAL_RESET, end='', file=err_file, flush=True)


# ------------------------------------------------------------------------------
