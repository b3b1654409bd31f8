"""
Command line interface.

Opens a headless browser window, loads a page into it, and chooses the
"Save Page" or "Save Link" menu item, just as a user of a browser would.
"""

import argparse
import colorama
from collections.abc import Callable
import os
from savelinkmenus import __version__
from savelinkmenus.app_preferences import (
    app_prefs, DOWNLOADS_DIRECTORY, SAVELINK_ENABLED, SAVEPAGE_ENABLED,
)
from savelinkmenus.downloads import Download, DownloadManager, DownloadState
from savelinkmenus.headless import HeadlessWindow
from savelinkmenus.l10n import tr
from savelinkmenus.menus import SaveLinkMenus, WindowRegistry
from savelinkmenus.save import SaveOrchestrator
from savelinkmenus.util import cli
from savelinkmenus.util.bulkheads import capture_crashes_to_stderr
from savelinkmenus.util.cli import print_error, print_info, print_success
from savelinkmenus.util.xthreading import fg_wait_for, set_foreground_thread
import sys
import threading
import traceback
from tqdm import tqdm
from typing_extensions import Never
from urllib.parse import urlsplit


def main() -> Never:
    """
    Main function. Starts the program.
    """
    sys.exit(_main(sys.argv[1:]))


def _main(args: list[str]) -> int:
    # 1. Enable terminal colors on Windows, by wrapping stdout and stderr
    # 2. Strip colorizing ANSI escape sequences when printing to a log file
    colorama.init()

    # Print uncaught exceptions raised by Thread.run()
    def threading_excepthook(args) -> None:
        err_file = sys.stderr
        print(cli.TERMINAL_FG_RED, end='', file=err_file)
        print('Exception in background thread:', file=err_file)
        traceback.print_exception(
            args.exc_type, args.exc_value, args.exc_traceback,
            file=err_file)
        print(cli.TERMINAL_RESET, end='', file=err_file)
        err_file.flush()
    threading.excepthook = threading_excepthook

    parsed_args = _create_parser().parse_args(args)  # may raise SystemExit

    # Designate the current thread as the foreground thread
    set_foreground_thread(threading.current_thread())

    return parsed_args.func(parsed_args)


def _create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='savelinkmenus',
        description='Save Link Menus: Save web pages and linked files to your Downloads directory.',
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}',
    )
    subparsers = parser.add_subparsers(required=True, metavar='COMMAND')

    save_link_parser = subparsers.add_parser(
        'save-link',
        help='Save the resource that a link points to.',
    )
    save_link_parser.add_argument(
        'url',
        help='URL that the link points to.',
    )
    save_link_parser.add_argument(
        '--referrer',
        help='URL of the page containing the link. Loaded before the link is saved.',
        default=None,
    )
    save_link_parser.add_argument(
        '--private',
        help='Save from a private browsing window.',
        action='store_true',
    )
    _add_common_save_arguments(save_link_parser)
    save_link_parser.set_defaults(func=_save_link_command)

    save_page_parser = subparsers.add_parser(
        'save-page',
        help='Load a page and save it.',
    )
    save_page_parser.add_argument(
        'url',
        help='URL of the page to load.',
    )
    save_page_parser.add_argument(
        '--complete',
        help='Also save the images, scripts, and stylesheets that the page displays.',
        action='store_true',
    )
    _add_common_save_arguments(save_page_parser)
    save_page_parser.set_defaults(func=_save_page_command)

    prefs_parser = subparsers.add_parser(
        'prefs',
        help='Show or change preferences.',
    )
    prefs_parser.add_argument(
        '--savepage',
        help='Whether to add "Save Page" to the page menu.',
        choices=['on', 'off'],
        default=None,
    )
    prefs_parser.add_argument(
        '--savelink',
        help='Whether to add "Save Link" to the link context menu.',
        choices=['on', 'off'],
        default=None,
    )
    prefs_parser.add_argument(
        '--directory',
        help='Directory to save downloads to. Must exist.',
        default=None,
    )
    prefs_parser.add_argument(
        '--reset',
        help='Restore every preference to its default value.',
        action='store_true',
    )
    prefs_parser.set_defaults(func=_prefs_command)

    menus_parser = subparsers.add_parser(
        'menus',
        help='Show the menu items that are added to a new browser window.',
    )
    menus_parser.set_defaults(func=_menus_command)

    gui_parser = subparsers.add_parser(
        'gui',
        help='Open a browser window. Requires the "gui" extra.',
    )
    gui_parser.add_argument(
        'url',
        help='Optional. URL of a page to load immediately.',
        nargs='?',
        default=None,
    )
    gui_parser.set_defaults(func=_gui_command)

    return parser


def _add_common_save_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        '--directory',
        help='Directory to save to instead of the preferred downloads directory.',
        default=None,
    )
    parser.add_argument(
        '--timeout',
        help='Seconds to wait for the save to finish (default: wait forever).',
        type=float,
        default=None,
    )
    parser.add_argument(
        '--quiet', '-q',
        help='Do not show progress.',
        action='store_true',
    )


# ------------------------------------------------------------------------------
# Commands: Save

def _save_link_command(parsed_args: argparse.Namespace) -> int:
    session = _SaveSession(parsed_args, is_private=parsed_args.private)
    with session:
        window = session.window
        if parsed_args.referrer is not None:
            if not session.navigate(parsed_args.referrer):
                return 1
        else:
            # Pretend the link is on the home page of its own site
            window.load(_home_page_of(parsed_args.url), b'', 'text/html', cache=False)

        element = window.link_element(parsed_args.url)
        try:
            window.invoke_context_menu(tr('SaveLinkMenu'), element)
        except KeyError:
            print_error(f'error: {tr("SaveLinkMenu")!r} is disabled or does not apply to {parsed_args.url!r}')
            return 1
        return session.wait_for_outcome()


def _save_page_command(parsed_args: argparse.Namespace) -> int:
    session = _SaveSession(parsed_args, complete_page=parsed_args.complete)
    with session:
        if not session.navigate(parsed_args.url):
            return 1
        try:
            session.window.invoke_menu(tr('SavePageMenu'))
        except KeyError:
            print_error(f'error: {tr("SavePageMenu")!r} is disabled')
            return 1
        return session.wait_for_outcome()


def _home_page_of(url: str) -> str:
    try:
        parts = urlsplit(url)
    except ValueError:  # malformed URL
        return 'about:blank'
    if not parts.scheme or not parts.netloc:
        return 'about:blank'
    return f'{parts.scheme}://{parts.netloc}/'


class _SaveSession:
    """
    A headless browser window with Save Link Menus loaded into it,
    which reports the progress of the first download it starts.
    """

    def __init__(self,
            parsed_args: argparse.Namespace,
            *, is_private: bool=False,
            complete_page: bool | None=None,
            ) -> None:
        self._timeout = parsed_args.timeout  # type: float | None
        self._quiet = parsed_args.quiet  # type: bool

        self._registry = WindowRegistry()
        download_manager = DownloadManager(
            app_prefs, downloads_directory=parsed_args.directory)
        download_manager.listeners.append(self)
        self._orchestrator = SaveOrchestrator(app_prefs, download_manager)
        self._menus = SaveLinkMenus(app_prefs, self._registry, self._orchestrator)
        self.window = HeadlessWindow(
            is_private=is_private,
            complete_page=complete_page,
            quiet=True,
            registry=self._registry,
        )

        self._download = None  # type: Download | None
        self._progress_bar = None  # type: tqdm | None

    def __enter__(self) -> '_SaveSession':
        self._menus.startup()
        self._registry.add(self.window)
        return self

    def __exit__(self, *args) -> None:
        if self._progress_bar is not None:
            self._progress_bar.close()
        self._registry.remove(self.window)
        self._menus.shutdown()
        self._orchestrator.close()
        self._orchestrator.download_manager.listeners.remove(self)

    def navigate(self, url: str) -> bool:
        try:
            self.window.navigate(url)
        except (OSError, ValueError) as e:
            print_error(f'error: Unable to load {url!r}: {e}')
            return False
        return True

    def wait_for_outcome(self) -> int:
        """
        Waits until the save finishes or fails, returning the exit code.
        """
        try:
            fg_wait_for(self._has_outcome, timeout=self._timeout)
        except TimeoutError:
            print_error('error: Timed out waiting for the save to finish')
            if self._download is not None:
                self._download.cancel()
            return 1

        toast_messages = self.window.toast.messages
        download = self._download
        if download is None:
            print_error(toast_messages[-1] if toast_messages else tr('FailedMessage'))
            return 1
        if download.state == DownloadState.FINISHED:
            print_success(download.target_path)
            return 0
        if download.error is not None:
            print_error(f'{tr("DownloadFailedMessage")}: {download.error}')
        else:
            print_error(tr('DownloadFailedMessage'))
        return 1

    def _has_outcome(self) -> bool:
        if self._download is not None:
            return self._download.state.is_terminal
        return (
            len(self.window.toast.messages) > 0 and
            len(self._orchestrator.pending_probes_for(self.window)) == 0
        )

    # === Download Manager Events ===

    @capture_crashes_to_stderr
    def download_did_add(self, download: Download) -> None:
        if self._download is not None:
            return
        self._download = download
        if not self._quiet:
            self._progress_bar = tqdm(
                desc=download.display_name,
                total=None,
                unit='B',
                unit_scale=True,
                unit_divisor=1024,
                file=sys.stderr,
            )

    @capture_crashes_to_stderr
    def download_progress_did_change(self, download: Download) -> None:
        if download is not self._download or self._progress_bar is None:
            return
        if download.total_bytes is not None and self._progress_bar.total != download.total_bytes:
            self._progress_bar.total = download.total_bytes
        self._progress_bar.update(download.current_bytes - self._progress_bar.n)

    @capture_crashes_to_stderr
    def download_state_did_change(self, download: Download) -> None:
        if download is not self._download or self._progress_bar is None:
            return
        if download.state.is_terminal:
            self._progress_bar.close()
            self._progress_bar = None


# ------------------------------------------------------------------------------
# Commands: Preferences

def _prefs_command(parsed_args: argparse.Namespace) -> int:
    def print_change(key: str) -> None:
        print_info(f'Changed: {key or "all preferences"}')
    app_prefs.add_observer(print_change)
    try:
        if parsed_args.reset:
            app_prefs.reset()
        setters = [
            (SAVEPAGE_ENABLED, parsed_args.savepage, _on_off_setter('savepage_enabled')),
            (SAVELINK_ENABLED, parsed_args.savelink, _on_off_setter('savelink_enabled')),
            (DOWNLOADS_DIRECTORY, parsed_args.directory, _directory_setter),
        ]  # type: list[tuple[str, str | None, Callable[[str], None]]]
        for (key, value, setter) in setters:
            if value is None:
                continue
            try:
                setter(value)
            except ValueError:
                # NOTE: Error message format and exit code are similar to those used by argparse
                print(f'error: invalid value for {key}: {value!r}', file=sys.stderr)
                return 2
        app_prefs.flush()
    except OSError as e:
        print_error(f'error: Unable to save preferences: {e}')
        return 1
    finally:
        app_prefs.remove_observer(print_change)

    print(f'{SAVEPAGE_ENABLED} = {_on_off(app_prefs.savepage_enabled)}')
    print(f'{SAVELINK_ENABLED} = {_on_off(app_prefs.savelink_enabled)}')
    print(f'{DOWNLOADS_DIRECTORY} = {app_prefs.downloads_directory}')
    return 0


def _on_off_setter(attr_name: str) -> Callable[[str], None]:
    def set_on_off(value: str) -> None:
        setattr(app_prefs, attr_name, value == 'on')
    return set_on_off


def _directory_setter(value: str) -> None:
    app_prefs.downloads_directory = os.path.abspath(os.path.expanduser(value))


def _on_off(value: bool) -> str:
    return 'on' if value else 'off'


# ------------------------------------------------------------------------------
# Commands: Menus

def _menus_command(parsed_args: argparse.Namespace) -> int:
    registry = WindowRegistry()
    orchestrator = SaveOrchestrator(app_prefs)
    menus = SaveLinkMenus(app_prefs, registry, orchestrator)
    window = HeadlessWindow(quiet=True, registry=registry)
    menus.startup()
    registry.add(window)
    try:
        for label in window.menu.labels:
            print(f'Page menu: {label}')
        for label in window.contextmenus.labels:
            print(f'Link context menu: {label}')
        if len(window.menu) == 0 and len(window.contextmenus) == 0:
            print_info('No menu items are enabled.')
    finally:
        registry.remove(window)
        menus.shutdown()
        orchestrator.close()
    return 0


# ------------------------------------------------------------------------------
# Commands: GUI

def _gui_command(parsed_args: argparse.Namespace) -> int:
    try:
        from savelinkmenus.ui.wx_host import BrowserFrame, create_app
    except ImportError:
        print_error('error: The gui command requires wxPython. Install the "gui" extra.')
        return 2

    app = create_app()
    registry = WindowRegistry()
    menus = SaveLinkMenus(app_prefs, registry)
    menus.startup()

    window = BrowserFrame(registry=registry)
    registry.add(window)
    if parsed_args.url is not None:
        try:
            window.navigate(parsed_args.url)
        except (OSError, ValueError) as e:
            print_error(f'error: Unable to load {parsed_args.url!r}: {e}')
    window.frame.Show()
    app.MainLoop()

    # Windows are gone. No need to remove menu items from them.
    menus.shutdown(app_shutdown=True)
    return 0


if __name__ == '__main__':
    main()
