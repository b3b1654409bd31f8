"""
Threading utilities.

Menus, windows, preferences, and download records are touched only on
a single "foreground thread". Network probes and file transfers run on
background threads and report back to the foreground thread with
fg_call_later().

When a GUI toolkit owns the foreground thread it installs a dispatcher
with set_fg_dispatcher() that schedules queued calls on its event loop.
Without a dispatcher, queued calls run when the foreground thread pumps
them with fg_wait_for().
"""

from collections import deque
from collections.abc import Callable
from functools import partial
from savelinkmenus.util.bulkheads import (
    capture_crashes_to_stderr, ensure_is_bulkhead_call,
)
import threading
import time
import traceback
from typing import Deque, Optional

# Whether to enforce that callables scheduled with fg_call_later()
# be decorated with @capture_crashes_to*.
_DEFERRED_FG_CALLS_MUST_CAPTURE_CRASHES = True
# Whether to enforce that callables scheduled with bg_call_later()
# be decorated with @capture_crashes_to*.
_DEFERRED_BG_CALLS_MUST_CAPTURE_CRASHES = True


# ------------------------------------------------------------------------------
# Access Foreground Thread

_fg_thread = None  # type: Optional[threading.Thread]


def set_foreground_thread(fg_thread: threading.Thread | None) -> None:
    global _fg_thread
    _fg_thread = fg_thread


def is_foreground_thread() -> bool:
    """
    Returns whether the current thread is the foreground thread.
    """
    return threading.current_thread() == _fg_thread


def has_foreground_thread() -> bool:
    """
    Returns whether any foreground thread exists.
    """
    return _fg_thread is not None


# ------------------------------------------------------------------------------
# Call on Foreground Thread

# Queue of deferred foreground callables to run
_deferred_fg_calls = deque()  # type: Deque[Callable[[], None]]

# Notified whenever a callable is added to _deferred_fg_calls
has_deferred_fg_calls_condition = threading.Condition()

# Schedules _run_deferred_fg_calls() on a GUI event loop, if one is running
_fg_dispatcher = None  # type: Optional[Callable[[Callable[[], object]], None]]


def set_fg_dispatcher(dispatcher: Callable[[Callable[[], object]], None] | None) -> None:
    """
    Installs a function (such as wx.CallAfter) that can be called on any
    thread to run a callable later on the foreground thread's event loop.
    """
    global _fg_dispatcher
    _fg_dispatcher = dispatcher


def fg_call_later(
        callable: Callable[..., None],
        *, args=(),
        force_later: bool=False,
        ) -> None:
    """
    Schedules the specified callable to be called on the foreground thread,
    either immediately if the caller is already running on the foreground thread,
    or later if the caller is running on a different thread.
    
    Arguments:
    * callable -- the callable to run.
    * args -- the arguments to provide to the callable.
    * force_later --
        whether to force scheduling the callable later, even if the caller is
        already running on the foreground thread.
    
    Raises:
    * NoForegroundThreadError
    """
    if not has_foreground_thread():
        raise NoForegroundThreadError()
    
    if _DEFERRED_FG_CALLS_MUST_CAPTURE_CRASHES:
        ensure_is_bulkhead_call(callable)
    
    if is_foreground_thread() and not force_later:
        callable(*args)
        return
    
    if len(args) != 0:
        (callable, args) = (partial(callable, *args), ())  # reinterpret
    _deferred_fg_calls.append(callable)
    with has_deferred_fg_calls_condition:
        has_deferred_fg_calls_condition.notify_all()
    
    dispatcher = _fg_dispatcher  # cache
    if dispatcher is not None:
        dispatcher(run_deferred_fg_calls)


@capture_crashes_to_stderr
def run_deferred_fg_calls() -> bool:
    """
    Runs all deferred foreground callables that were scheduled by fg_call_later().
    Returns whether any callables were run.
    """
    # Don't run more than the number of calls that were initially scheduled
    # to avoid an infinite loop in case a type of callable always
    # schedules at least one callable of the same type.
    max_calls_to_run = len(_deferred_fg_calls)  # capture
    for _ in range(max_calls_to_run):
        try:
            cur_fg_call = _deferred_fg_calls.popleft()  # type: Callable[[], None]
        except IndexError:
            break
        else:
            try:
                # NOTE: If _DEFERRED_FG_CALLS_MUST_CAPTURE_CRASHES is True
                #       then it should be impossible for this to raise an exception
                cur_fg_call()
            except Exception:
                traceback.print_exc()
                # (keep running other calls)
    return max_calls_to_run > 0


class NoForegroundThreadError(ValueError):
    pass


# ------------------------------------------------------------------------------
# Call on Background Thread

def bg_call_later(
        callable: Callable[..., None],
        *, args=(),
        name: str | None=None,
        daemon: bool=False,
        ) -> threading.Thread:
    """
    Calls the specified callable on a new background thread.
    
    Arguments:
    * callable -- the callable to run.
    * args -- the arguments to provide to the callable.
    * name -- the name of the thread, for debugging.
    * daemon -- 
        if True, forces the background thread to be a daemon,
        and not prevent program termination while it is running.
    """
    if _DEFERRED_BG_CALLS_MUST_CAPTURE_CRASHES:
        ensure_is_bulkhead_call(callable)
    
    thread = threading.Thread(target=callable, args=args, name=name, daemon=daemon)
    thread.start()
    return thread


# ------------------------------------------------------------------------------
# Wait on Foreground Thread

def fg_wait_for(condition_func: Callable[[], bool], *, timeout: float | None, poll_interval: float=0.01) -> None:
    """
    Waits for the specified condition to become true, in the foreground thread,
    running any deferred foreground calls while waiting.
    
    Raises:
    * TimeoutError -- if the condition does not become true within the specified timeout
    """
    if not is_foreground_thread():
        raise AssertionError('fg_wait_for() must be called on the foreground thread')
    
    start_time = time.monotonic()  # capture
    while True:
        # Process any enqueued foreground callables
        run_deferred_fg_calls()
        if condition_func():
            break
        if timeout is not None and (time.monotonic() - start_time) > timeout:
            raise TimeoutError(
                f'fg_wait_for: Timed out waiting for condition: {condition_func}')
        with has_deferred_fg_calls_condition:
            has_deferred_fg_calls_condition.wait_for(
                lambda: len(_deferred_fg_calls) > 0,
                timeout=poll_interval,
            )
