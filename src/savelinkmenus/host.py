"""
Capabilities that a browser host provides to Save Link Menus.

Save Link Menus does not implement menus, windows, tabs, or toasts itself.
A host (such as the headless host in savelinkmenus.headless or the wxPython
host in savelinkmenus.ui.wx_host) passes objects satisfying these protocols.
"""

from collections.abc import Callable, MutableMapping
from typing import Literal, Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from savelinkmenus.downloads import DownloadState
    from savelinkmenus.security import Principal


ToastDuration = Literal['short', 'long']

# A predicate that decides whether a context menu item applies to an element
ContextSelector = Callable[['LinkElement'], bool]


class MenuApi(Protocol):
    """The page-level menu of a browser window."""

    def add(self, label: str, callback: Callable[[], None]) -> int:
        """
        Adds a menu item and returns its id.

        The callback is called with no arguments when the item is chosen.
        """
        ...

    def remove(self, menu_id: int) -> None:
        """
        Removes a menu item previously returned by add().
        """
        ...


class ContextMenuApi(Protocol):
    """The context menu shown when long-pressing or right-clicking content."""

    # Selects elements that are links which can be opened
    link_openable_context: ContextSelector

    def add(self, label: str, selector: ContextSelector, callback: Callable[['LinkElement'], None]) -> int:
        """
        Adds a context menu item, shown for elements matching `selector`,
        and returns its id.

        The callback is called with the element that was targeted.
        """
        ...

    def remove(self, menu_id: int) -> None:
        ...

    def get_link_url(self, element: 'LinkElement') -> str:
        """Returns the absolute URL that a link element points to."""
        ...


class Toast(Protocol):
    def show(self, message: str, duration: ToastDuration='short') -> None:
        """Displays a short transient message to the user."""
        ...


class Prompt(Protocol):
    def confirm_check(self,
            title: str,
            message: str | None,
            check_label: str,
            checked: bool,
            ) -> tuple[bool, bool]:
        """
        Shows a confirmation dialog containing a checkbox.

        Returns an (ok, checked) tuple where `ok` is whether the user
        confirmed and `checked` is the final state of the checkbox.
        """
        ...


class LoadContext(Protocol):
    """Privacy and cache state of the browsing context that loaded a page."""

    is_private: bool

    # Bodies of resources already loaded by the browsing context, by URL
    cache: MutableMapping[str, bytes]


class Document(Protocol):
    url: str
    # As declared by the server. May include parameters such as "; charset=utf-8".
    content_type: str | None
    title: str | None
    principal: 'Principal'


class LinkElement(Protocol):
    href: str
    base_url: str
    # The security principal of the document containing the link
    principal: 'Principal'


class Tab(Protocol):
    document: Document
    current_url: str
    is_private: bool
    load_context: LoadContext


class BrowserWindow(Protocol):
    menu: MenuApi
    contextmenus: ContextMenuApi
    toast: Toast
    prompt: Prompt

    @property
    def selected_tab(self) -> Tab:
        ...


class ProgressListener(Protocol):
    """Receives progress of a file transfer, on the foreground thread."""

    def on_progress(self, current_bytes: int, total_bytes: int | None) -> None:
        ...

    def on_state_change(self, state: 'DownloadState', error: BaseException | None=None) -> None:
        ...


class Cancelable(Protocol):
    def cancel(self, reason: BaseException | None=None) -> None:
        ...
