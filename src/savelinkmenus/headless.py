"""
A browser host that has no user interface.

Used by the command line interface and by automated tests to open "windows",
load pages into them, and choose the menu items that Save Link Menus adds.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
import itertools
from savelinkmenus.download import GetRequest, parse_charset, parse_content_type, ProbeResponse
from savelinkmenus.host import ContextSelector, LinkElement, ToastDuration
from savelinkmenus.html import is_html_content_type, parse_title
from savelinkmenus.persist import HttpStatusError
from savelinkmenus.security import Principal, SAVEABLE_SCHEMES
from savelinkmenus.util.cli import print_info, print_warning
from typing import BinaryIO, TYPE_CHECKING
from urllib.parse import urljoin, urlsplit

if TYPE_CHECKING:
    from savelinkmenus.menus import WindowRegistry


# ------------------------------------------------------------------------------
# Page State

@dataclass
class HeadlessLoadContext:
    is_private: bool = False
    cache: dict[str, bytes] = field(default_factory=dict)


@dataclass
class HeadlessDocument:
    url: str
    content_type: str | None
    title: str | None
    principal: Principal


@dataclass
class HeadlessLinkElement:
    href: str
    base_url: str
    principal: Principal


class HeadlessTab:
    def __init__(self, *, is_private: bool=False) -> None:
        self.is_private = is_private
        self.load_context = HeadlessLoadContext(is_private=is_private)
        self.current_url = 'about:blank'
        self.document = HeadlessDocument(
            url='about:blank',
            content_type='text/html',
            title=None,
            principal=Principal.null(),
        )


# ------------------------------------------------------------------------------
# Menus

class HeadlessMenu:
    """A page menu whose items are kept in memory."""

    def __init__(self) -> None:
        self._next_id = itertools.count(1)
        self._items = {}  # type: dict[int, tuple[str, Callable[[], None]]]

    def add(self, label: str, callback: Callable[[], None]) -> int:
        menu_id = next(self._next_id)
        self._items[menu_id] = (label, callback)
        return menu_id

    def remove(self, menu_id: int) -> None:
        """
        Raises:
        * KeyError -- if no item has the specified id.
        """
        del self._items[menu_id]

    @property
    def labels(self) -> list[str]:
        return [label for (label, _) in self._items.values()]

    def __len__(self) -> int:
        return len(self._items)

    def invoke(self, label: str) -> None:
        """
        Chooses the item with the specified label.

        Raises:
        * KeyError -- if no item has the specified label.
        """
        for (item_label, callback) in list(self._items.values()):
            if item_label == label:
                callback()
                return
        raise KeyError(label)


def resolve_link_url(element: LinkElement) -> str:
    """Returns the absolute URL that a link points to."""
    return urljoin(element.base_url, element.href)


def is_openable_link(element: LinkElement) -> bool:
    """Whether an element is a link to an http or https URL."""
    try:
        url = resolve_link_url(element)
        return urlsplit(url).scheme.lower() in SAVEABLE_SCHEMES
    except ValueError:  # malformed URL
        return False


class HeadlessContextMenus:
    """A context menu whose items are kept in memory."""

    link_openable_context = staticmethod(is_openable_link)  # type: ContextSelector

    def __init__(self) -> None:
        self._next_id = itertools.count(1)
        self._items = {}  # type: dict[int, tuple[str, ContextSelector, Callable[[LinkElement], None]]]

    def add(self,
            label: str,
            selector: ContextSelector,
            callback: Callable[[LinkElement], None],
            ) -> int:
        menu_id = next(self._next_id)
        self._items[menu_id] = (label, selector, callback)
        return menu_id

    def remove(self, menu_id: int) -> None:
        """
        Raises:
        * KeyError -- if no item has the specified id.
        """
        del self._items[menu_id]

    def get_link_url(self, element: LinkElement) -> str:
        return resolve_link_url(element)

    @property
    def labels(self) -> list[str]:
        return [label for (label, _, _) in self._items.values()]

    def __len__(self) -> int:
        return len(self._items)

    def labels_for(self, element: LinkElement) -> list[str]:
        """Returns the labels of the items shown when `element` is long-pressed."""
        return [
            label
            for (label, selector, _) in self._items.values()
            if selector(element)
        ]

    def invoke(self, label: str, element: LinkElement) -> None:
        """
        Chooses the item with the specified label for `element`.

        Raises:
        * KeyError -- if no item with the specified label applies to `element`.
        """
        for (item_label, selector, callback) in list(self._items.values()):
            if item_label == label and selector(element):
                callback(element)
                return
        raise KeyError(label)


# ------------------------------------------------------------------------------
# Notifications

class ConsoleToast:
    """Prints toasts to stdout and remembers them."""

    def __init__(self, *, quiet: bool=False) -> None:
        self._quiet = quiet
        self.messages = []  # type: list[str]

    def show(self, message: str, duration: ToastDuration='short') -> None:
        self.messages.append(message)
        if self._quiet:
            return
        if duration == 'long':
            print_warning(message)
        else:
            print_info(message)


class AutoAcceptPrompt:
    """
    Answers every confirmation dialog with OK, or with Cancel if `accept` is False.

    The dialog's checkbox is set to `checked` if given,
    otherwise left in its initial state.
    """

    def __init__(self, *, checked: bool | None=None, accept: bool=True) -> None:
        self._checked = checked
        self._accept = accept
        self.titles = []  # type: list[str]

    def confirm_check(self,
            title: str,
            message: str | None,
            check_label: str,
            checked: bool,
            ) -> tuple[bool, bool]:
        self.titles.append(title)
        return (self._accept, self._checked if self._checked is not None else checked)


# ------------------------------------------------------------------------------
# HeadlessWindow

class HeadlessWindow:
    """
    A browser window with a single tab and no user interface.
    """

    def __init__(self,
            *, is_private: bool=False,
            complete_page: bool | None=None,
            quiet: bool=False,
            registry: 'WindowRegistry | None'=None,
            request_factory: Callable[[str], Callable[[], tuple[ProbeResponse, BinaryIO]]]=GetRequest,
            ) -> None:
        self.menu = HeadlessMenu()
        self.contextmenus = HeadlessContextMenus()
        self.toast = ConsoleToast(quiet=quiet)
        self.prompt = AutoAcceptPrompt(checked=complete_page)
        self._tab = HeadlessTab(is_private=is_private)
        self._registry = registry
        self._request_factory = request_factory

    @property
    def selected_tab(self) -> HeadlessTab:
        return self._tab

    # === Navigation ===

    def navigate(self, url: str) -> HeadlessDocument:
        """
        Loads the page at `url` into the tab, remembering its body
        in the tab's cache.

        Raises:
        * HttpStatusError -- if the server does not respond with 2xx.
        * OSError
        * ValueError -- if `url` is not an http or https URL.
        """
        (metadata, body_stream) = self._request_factory(url)()
        try:
            if not (200 <= metadata.status_code <= 299):
                raise HttpStatusError(url, metadata.status_code, metadata.reason_phrase)
            body = body_stream.read()
        finally:
            body_stream.close()

        content_type = metadata.get_header('Content-Type')
        return self.load(url, body, content_type)

    def load(self,
            url: str,
            body: bytes,
            content_type: str | None,
            *, title: str | None=None,
            cache: bool=True,
            ) -> HeadlessDocument:
        """
        Shows a page in the tab without accessing the network.

        Arguments:
        * cache -- whether to remember `body` in the tab's cache.
        """
        if self._registry is not None:
            self._registry.navigated(self)
        if title is None and is_html_content_type(parse_content_type(content_type)):
            title = parse_title(body, parse_charset(content_type))
        self._tab.current_url = url
        self._tab.document = HeadlessDocument(
            url=url,
            content_type=content_type,
            title=title,
            principal=Principal.from_url(url),
        )
        if cache:
            self._tab.load_context.cache[url] = body
        return self._tab.document

    def link_element(self, href: str) -> HeadlessLinkElement:
        """Returns a link in the current page that points to `href`."""
        return HeadlessLinkElement(
            href=href,
            base_url=self._tab.current_url,
            principal=self._tab.document.principal,
        )

    # === Menus ===

    def invoke_menu(self, label: str) -> None:
        """
        Raises:
        * KeyError -- if the page menu has no item with the specified label.
        """
        self.menu.invoke(label)

    def invoke_context_menu(self, label: str, element: LinkElement) -> None:
        """
        Raises:
        * KeyError -- if no context menu item with the specified label
          applies to `element`.
        """
        self.contextmenus.invoke(label, element)

    def __repr__(self) -> str:
        return f'HeadlessWindow(url={self._tab.current_url!r})'
