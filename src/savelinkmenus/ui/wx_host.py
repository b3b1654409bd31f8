"""
A browser host with a wxPython user interface.

Each BrowserFrame shows the links of one loaded page. The "Page" menu of its
menu bar holds page menu items and right-clicking a link shows the context
menu items that apply to it.
"""

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from savelinkmenus.download import parse_charset, parse_content_type
from savelinkmenus.headless import (
    HeadlessWindow, is_openable_link, resolve_link_url,
)
from savelinkmenus.host import ContextSelector, LinkElement, ToastDuration
from savelinkmenus.html import is_html_content_type, parse_link_hrefs
from savelinkmenus.util import cli
from savelinkmenus.util.xos import is_wx_gtk
from savelinkmenus.util.xthreading import (
    set_fg_dispatcher, set_foreground_thread,
)
import sys
import threading
import traceback
import wx
import wx.adv

_WINDOW_INNER_PADDING = 10


# ------------------------------------------------------------------------------
# Bind

def bind(
        window: wx.EvtHandler,
        event_type,
        target: Callable[[wx.Event], None],
        *args
        ) -> None:
    """
    Equivalent to wx.EvtHandler.Bind(), but prints any exception raised
    by `target` rather than letting it reach wx.
    """
    window.Bind(event_type, _bind_target()(target), *args)


@contextmanager
def _bind_target() -> Iterator[None]:
    # NOTE: Uncaught exceptions that reach wx can leave it in an invalid state
    #       that causes a crash later, at least on macOS.
    try:
        yield
    except BaseException:
        err_file = sys.stderr
        print(cli.TERMINAL_FG_RED, end='', file=err_file)
        print('Exception in wxPython listener:', file=err_file)
        traceback.print_exc(file=err_file)
        print(cli.TERMINAL_RESET, end='', file=err_file)
        err_file.flush()


# ------------------------------------------------------------------------------
# Menus

class WxMenuApi:
    """
    Page menu items, appended to a wx.Menu.
    """

    def __init__(self, frame: wx.Frame, menu: wx.Menu) -> None:
        self._frame = frame
        self._menu = menu
        self._callbacks = {}  # type: dict[int, Callable[[], None]]
        bind(frame, wx.EVT_MENU, self._on_menuitem_command)

    def add(self, label: str, callback: Callable[[], None]) -> int:
        menuitem = self._menu.Append(wx.ID_ANY, label)
        self._callbacks[menuitem.Id] = callback
        return menuitem.Id

    def remove(self, menu_id: int) -> None:
        """
        Raises:
        * KeyError -- if no item has the specified id.
        """
        del self._callbacks[menu_id]
        self._menu.Delete(menu_id)

    def _on_menuitem_command(self, event: wx.CommandEvent) -> None:
        callback = self._callbacks.get(event.Id)
        if callback is not None:
            callback()
        else:
            event.Skip()


class WxContextMenuApi:
    """
    Context menu items, shown in a popup wx.Menu when a link is right-clicked.
    """

    link_openable_context = staticmethod(is_openable_link)  # type: ContextSelector

    def __init__(self, frame: wx.Frame) -> None:
        self._frame = frame
        # NOTE: Each item holds its wx.WindowIDRef so that wx does not reuse
        #       the id while the item is registered
        self._items = {}  # type: dict[int, tuple[str, ContextSelector, Callable[[LinkElement], None], wx.WindowIDRef]]

    def add(self,
            label: str,
            selector: ContextSelector,
            callback: Callable[[LinkElement], None],
            ) -> int:
        id_ref = wx.NewIdRef()
        menu_id = id_ref.GetId()
        self._items[menu_id] = (label, selector, callback, id_ref)
        return menu_id

    def remove(self, menu_id: int) -> None:
        """
        Raises:
        * KeyError -- if no item has the specified id.
        """
        del self._items[menu_id]

    def get_link_url(self, element: LinkElement) -> str:
        return resolve_link_url(element)

    def popup_for(self, element: LinkElement) -> None:
        """Shows the context menu items that apply to `element`."""
        popup = wx.Menu()
        callback_for_id = {}  # type: dict[int, Callable[[LinkElement], None]]
        for (menu_id, (label, selector, callback, _)) in self._items.items():
            if selector(element):
                popup.Append(menu_id, label)
                callback_for_id[menu_id] = callback
        if popup.GetMenuItemCount() == 0:
            popup.Destroy()
            return

        def on_popup_command(event: wx.CommandEvent) -> None:
            callback = callback_for_id.get(event.Id)
            if callback is not None:
                callback(element)
        bind(popup, wx.EVT_MENU, on_popup_command)
        self._frame.PopupMenu(popup)
        popup.Destroy()


# ------------------------------------------------------------------------------
# Notifications

class WxToast:
    """Shows toasts as desktop notifications."""

    def __init__(self, frame: wx.Frame) -> None:
        self._frame = frame

    def show(self, message: str, duration: ToastDuration='short') -> None:
        notification = wx.adv.NotificationMessage(
            title=self._frame.Title, message=message, parent=self._frame)
        notification.Show(
            timeout=wx.adv.NotificationMessage.Timeout_Auto
                if duration == 'short'
                else wx.adv.NotificationMessage.Timeout_Never)
        status_bar = self._frame.GetStatusBar()
        if status_bar is not None:
            status_bar.SetStatusText(message)


class SaveConfirmDialog(wx.Dialog):
    """
    A confirmation dialog with OK and Cancel buttons and a single checkbox.
    """

    def __init__(self,
            parent: wx.Window,
            title: str,
            message: str | None,
            checkbox_label: str,
            checked: bool,
            ) -> None:
        super().__init__(parent, title=title, name='cr-save-confirm-dialog')

        self_sizer = wx.BoxSizer(wx.VERTICAL); self.SetSizer(self_sizer)

        bind(self, wx.EVT_BUTTON, self._on_button)

        if message:
            message_label = wx.StaticText(self, label=message)
            message_label.Wrap(400)
            self_sizer.Add(
                message_label,
                flag=wx.ALL,
                border=_WINDOW_INNER_PADDING)
        self._checkbox = wx.CheckBox(self, label=checkbox_label)
        self._checkbox.Value = checked
        self_sizer.Add(
            self._checkbox,
            flag=wx.ALL | wx.ALIGN_LEFT,
            border=_WINDOW_INNER_PADDING)
        self_sizer.Add(
            self.CreateButtonSizer(wx.OK | wx.CANCEL),
            flag=wx.BOTTOM | wx.ALIGN_RIGHT,
            border=_WINDOW_INNER_PADDING)
        self.SetEscapeId(wx.ID_CANCEL)

        # HACK: wxGTK won't compute size of first dialog shown correctly
        #       unless it is explicitly shown during a Fit()
        if is_wx_gtk():
            self.Show()
        self.Fit()
        if is_wx_gtk():
            self.Hide()

    def IsCheckBoxChecked(self) -> bool:
        return self._checkbox.Value

    def _on_button(self, event: wx.CommandEvent) -> None:
        self.EndModal(event.GetId())
        self.Hide()


class WxPrompt:
    def __init__(self, frame: wx.Frame) -> None:
        self._frame = frame

    def confirm_check(self,
            title: str,
            message: str | None,
            check_label: str,
            checked: bool,
            ) -> tuple[bool, bool]:
        dialog = SaveConfirmDialog(self._frame, title, message, check_label, checked)
        try:
            ok = dialog.ShowModal() == wx.ID_OK
            return (ok, dialog.IsCheckBoxChecked())
        finally:
            dialog.Destroy()


# ------------------------------------------------------------------------------
# BrowserFrame

class BrowserFrame(HeadlessWindow):
    """
    A browser window backed by a wx.Frame that lists the links of its page.
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)

        frame = wx.Frame(None, title='Save Link Menus', size=(640, 480))
        self._frame = frame
        page_menu = wx.Menu()
        menubar = wx.MenuBar()
        menubar.Append(page_menu, '&Page')
        frame.SetMenuBar(menubar)
        frame.CreateStatusBar()

        self._link_list = wx.ListBox(frame, style=wx.LB_SINGLE)
        self._hrefs = []  # type: list[str]
        bind(self._link_list, wx.EVT_CONTEXT_MENU, self._on_link_context_menu)
        bind(frame, wx.EVT_CLOSE, self._on_close_frame)

        self.menu = WxMenuApi(frame, page_menu)  # type: ignore[assignment]
        self.contextmenus = WxContextMenuApi(frame)  # type: ignore[assignment]
        self.toast = WxToast(frame)  # type: ignore[assignment]
        self.prompt = WxPrompt(frame)  # type: ignore[assignment]

    @property
    def frame(self) -> wx.Frame:
        return self._frame

    def load(self, url, body, content_type, **kwargs):  # type: ignore[override]
        document = super().load(url, body, content_type, **kwargs)
        self._frame.Title = document.title or url
        if is_html_content_type(parse_content_type(content_type)):
            self._hrefs = parse_link_hrefs(body, parse_charset(content_type))
        else:
            self._hrefs = []
        self._link_list.Set(self._hrefs)
        return document

    def _on_close_frame(self, event: wx.CloseEvent) -> None:
        if self._registry is not None and self in self._registry:
            self._registry.remove(self)
        event.Skip()

    def _on_link_context_menu(self, event: wx.ContextMenuEvent) -> None:
        selection = self._link_list.GetSelection()
        if selection == wx.NOT_FOUND:
            return
        self.contextmenus.popup_for(self.link_element(self._hrefs[selection]))  # type: ignore[attr-defined]


# ------------------------------------------------------------------------------
# App

def create_app() -> wx.App:
    """
    Creates the wx.App and makes its main loop run foreground calls.
    Must be called on the thread that will run the main loop.
    """
    app = wx.App(redirect=False)
    set_foreground_thread(threading.current_thread())
    set_fg_dispatcher(wx.CallAfter)
    return app
