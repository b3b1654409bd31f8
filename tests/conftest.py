import os
from savelinkmenus.util.test_mode import set_tests_are_running

# NOTE: Must be configured before app_prefs is first used
set_tests_are_running()
os.environ['SAVELINKMENUS_LANG'] = 'en'

from collections.abc import Iterator
import pytest
from savelinkmenus.app_preferences import app_prefs
from savelinkmenus.l10n import reset_string_bundle
from savelinkmenus.util.xthreading import (
    run_deferred_fg_calls, set_foreground_thread,
)
import threading


@pytest.fixture(autouse=True)
def _foreground_thread() -> Iterator[None]:
    # The test thread plays the role of the browser's UI thread
    set_foreground_thread(threading.current_thread())
    try:
        yield
    finally:
        run_deferred_fg_calls()
        set_foreground_thread(None)


@pytest.fixture(autouse=True)
def _isolated_app_prefs(tmp_path) -> Iterator[None]:
    app_prefs.reset(flush=False)
    downloads_dirpath = tmp_path / 'Downloads'
    downloads_dirpath.mkdir()
    app_prefs.downloads_directory = str(downloads_dirpath)
    reset_string_bundle()
    try:
        yield
    finally:
        app_prefs.reset(flush=False)


@pytest.fixture
def downloads_dirpath() -> str:
    return app_prefs.downloads_directory
