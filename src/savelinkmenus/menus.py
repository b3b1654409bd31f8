"""
Adds the "Save Page" and "Save Link" menu items to every open browser window.

Which items are shown is controlled by the savepage.enabled and
savelink.enabled preferences. When either preference changes, the items
in every open window are rebuilt immediately.
"""

from collections.abc import Iterator
from savelinkmenus.app_preferences import (
    app_prefs, AppPreferences, SAVELINK_ENABLED, SAVEPAGE_ENABLED,
)
from savelinkmenus.host import BrowserWindow, LinkElement
from savelinkmenus.l10n import tr
from savelinkmenus.save import SaveOrchestrator
from savelinkmenus.util.bulkheads import capture_crashes_to_stderr, run_bulkhead_call
from savelinkmenus.util.cli import print_verbose, verbose_enabled
from savelinkmenus.util.listenable import ListenableMixin
from typing import Any


_VERBOSE = verbose_enabled()

# Keys of the per-window menu id tables
_SAVE_PAGE_ITEM = 'SavePage'
_SAVE_LINK_ITEM = 'SaveLink'


# ------------------------------------------------------------------------------
# WindowRegistry

class WindowRegistry(ListenableMixin):
    """
    The browser windows that are currently open, in the order they opened.

    Listeners may define any of:
    * window_did_open(window)
    * window_did_close(window)
    * window_did_navigate(window)
    Listener methods must be decorated with @capture_crashes_to*.
    """

    def __init__(self) -> None:
        super().__init__()
        self._windows = []  # type: list[BrowserWindow]

    def add(self, window: BrowserWindow) -> None:
        """
        Registers a window that has finished opening.
        Adding a window that is already registered has no effect.
        """
        if window in self._windows:
            return
        self._windows.append(window)
        for lis in list(self.listeners):
            if hasattr(lis, 'window_did_open'):
                run_bulkhead_call(lis.window_did_open, window)  # type: ignore[attr-defined]

    def remove(self, window: BrowserWindow) -> None:
        """
        Unregisters a window that is closing.

        Raises:
        * KeyError -- if the window is not registered.
        """
        if window not in self._windows:
            raise KeyError(window)
        self._windows.remove(window)
        for lis in list(self.listeners):
            if hasattr(lis, 'window_did_close'):
                run_bulkhead_call(lis.window_did_close, window)  # type: ignore[attr-defined]

    def navigated(self, window: BrowserWindow) -> None:
        """
        Reports that the selected tab of a registered window started
        loading a different page.
        """
        if window not in self._windows:
            return
        for lis in list(self.listeners):
            if hasattr(lis, 'window_did_navigate'):
                run_bulkhead_call(lis.window_did_navigate, window)  # type: ignore[attr-defined]

    def __iter__(self) -> Iterator[BrowserWindow]:
        # NOTE: Iterate over a copy so that windows may open or close meanwhile
        return iter(list(self._windows))

    def __len__(self) -> int:
        return len(self._windows)

    def __contains__(self, window: object) -> bool:
        return window in self._windows


windows = WindowRegistry()  # singleton


# ------------------------------------------------------------------------------
# SaveLinkMenus

class SaveLinkMenus:
    """
    Registers the "Save Page" and "Save Link" menu items with browser windows.

    Errors raised by a window's menu API are not caught.
    """

    def __init__(self,
            prefs: AppPreferences=app_prefs,
            windows: WindowRegistry=windows,
            orchestrator: SaveOrchestrator | None=None,
            ) -> None:
        self._prefs = prefs
        self._windows = windows
        self._orchestrator = (
            orchestrator if orchestrator is not None
            else SaveOrchestrator(prefs)
        )
        self._started = False

        # Ids of items added to each window's page menu and context menu
        self._menu_ids = {}  # type: dict[Any, dict[str, int]]
        self._context_menu_ids = {}  # type: dict[Any, dict[str, int]]

    # === Properties ===

    @property
    def orchestrator(self) -> SaveOrchestrator:
        return self._orchestrator

    def menu_ids_for(self, window: BrowserWindow) -> dict[str, int]:
        """Returns the ids of the page menu items added to `window`."""
        return dict(self._menu_ids.get(window, {}))

    def context_menu_ids_for(self, window: BrowserWindow) -> dict[str, int]:
        """Returns the ids of the context menu items added to `window`."""
        return dict(self._context_menu_ids.get(window, {}))

    # === Lifecycle ===

    def startup(self) -> None:
        """
        Starts observing preferences and windows, and adds menu items
        to every window that is already open.
        """
        if _VERBOSE:
            print_verbose('SaveLinkMenus', 'startup()')
        if self._started:
            return
        self._started = True

        self._prefs.add_observer(self.observe)
        for window in self._windows:
            self.load(window)
        self._windows.listeners.append(self)

    def shutdown(self, *, app_shutdown: bool=False) -> None:
        """
        Removes menu items from every open window and stops observing.

        When the whole application is shutting down the windows are going
        away anyway, so nothing is done.
        """
        if _VERBOSE:
            print_verbose('SaveLinkMenus', f'shutdown(app_shutdown={app_shutdown})')
        if app_shutdown:
            return
        if not self._started:
            return

        if self in self._windows.listeners:
            self._windows.listeners.remove(self)
        for window in self._windows:
            self.unload(window)
        self._prefs.remove_observer(self.observe)
        self._started = False

    def load(self, window: BrowserWindow | None) -> None:
        if _VERBOSE:
            print_verbose('SaveLinkMenus', f'load({window!r})')
        if window is None:
            return
        self.setup_ui(window)

    def unload(self, window: BrowserWindow | None) -> None:
        if _VERBOSE:
            print_verbose('SaveLinkMenus', f'unload({window!r})')
        if window is None:
            return
        self._orchestrator.cancel_pending(window)
        self.cleanup_ui(window)

    # === Window Registry Events ===

    @capture_crashes_to_stderr
    def window_did_open(self, window: BrowserWindow) -> None:
        self.load(window)

    @capture_crashes_to_stderr
    def window_did_close(self, window: BrowserWindow) -> None:
        self.unload(window)

    @capture_crashes_to_stderr
    def window_did_navigate(self, window: BrowserWindow) -> None:
        # Probes started by the previous page must not save anything
        self._orchestrator.cancel_pending(window)

    # === UI ===

    def setup_ui(self, window: BrowserWindow) -> None:
        """
        Adds the menu items whose preferences are enabled to `window`.

        If items were already added to `window` they are removed first,
        so that a window never has more than one item of each kind.
        """
        if _VERBOSE:
            print_verbose('SaveLinkMenus', f'setup_ui({window!r})')
        if window in self._menu_ids or window in self._context_menu_ids:
            self.cleanup_ui(window)

        menu_ids = self._menu_ids.setdefault(window, {})
        context_menu_ids = self._context_menu_ids.setdefault(window, {})

        if self._prefs.savepage_enabled:
            def save_page_chosen() -> None:
                self._on_save_page(window)
            menu_ids[_SAVE_PAGE_ITEM] = window.menu.add(
                tr('SavePageMenu'),
                save_page_chosen)

        if self._prefs.savelink_enabled:
            contextmenus = window.contextmenus
            def save_link_chosen(element: LinkElement) -> None:
                self._on_save_link(window, element)
            context_menu_ids[_SAVE_LINK_ITEM] = contextmenus.add(
                tr('SaveLinkMenu'),
                contextmenus.link_openable_context,
                save_link_chosen)

    def cleanup_ui(self, window: BrowserWindow) -> None:
        """
        Removes every menu item that setup_ui() added to `window`.
        """
        if _VERBOSE:
            print_verbose('SaveLinkMenus', f'cleanup_ui({window!r})')
        menu_ids = self._menu_ids.pop(window, {})
        context_menu_ids = self._context_menu_ids.pop(window, {})
        for menu_id in menu_ids.values():
            window.menu.remove(menu_id)
        for menu_id in context_menu_ids.values():
            window.contextmenus.remove(menu_id)

    # === Preference Events ===

    def observe(self, pref_name: str) -> None:
        """
        Called when a preference changes.

        If the preference controls which menu items are shown then
        the items of every open window are rebuilt before returning.
        """
        if _VERBOSE:
            print_verbose('SaveLinkMenus', f'observe({pref_name!r})')
        # NOTE: '' means that all preferences were reset
        if pref_name not in (SAVEPAGE_ENABLED, SAVELINK_ENABLED, ''):
            return
        for window in self._windows:
            self.cleanup_ui(window)
            self.setup_ui(window)

    # === Menu Item Actions ===

    def _on_save_page(self, window: BrowserWindow) -> None:
        tab = window.selected_tab
        if not self._orchestrator.check_uri(window, tab.current_url, tab.document.principal):
            window.toast.show(tr('FailedMessage'), 'short')
            return

        (ok, complete) = window.prompt.confirm_check(
            tr('SavePageDialogTitle'),
            None,
            tr('SavePageDialogComplete'),
            True)
        if not ok:
            return
        if complete:
            self._orchestrator.save_document(window)
        else:
            self._orchestrator.save_page(window)

    def _on_save_link(self, window: BrowserWindow, element: LinkElement) -> None:
        url = window.contextmenus.get_link_url(element)
        self._orchestrator.save_link(window, url, element.principal)
