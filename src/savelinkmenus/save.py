"""
Saves the current page or a linked resource to the downloads directory.

There are two ways into a save:
* save_page() -- the content type of the loaded document is already known.
* save_link() -- the content type is learned by probing the link with
  an HTTP HEAD request, which completes asynchronously.

Both converge on save_uri_with_content_type(), which picks a file name,
creates a uniquely-named file, registers a download record, and starts
the transfer.

All methods must be called on the foreground thread.
"""

from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass
import os.path
from savelinkmenus.app_preferences import app_prefs, AppPreferences
from savelinkmenus.download import HeadRequest, parse_content_type, ProbeResponse
from savelinkmenus.downloads import (
    Download, DOWNLOAD_TYPE_DOWNLOAD, DownloadManager, DownloadState,
)
from savelinkmenus.filenames import (
    create_unique, get_default_file_name, get_normalized_leaf_name,
)
from savelinkmenus.host import BrowserWindow
from savelinkmenus.l10n import tr
from savelinkmenus.mime import mime_service as default_mime_service, MimeService
from savelinkmenus.persist import (
    PERSIST_FLAGS_FROM_CACHE, PERSIST_FLAGS_REPLACE_EXISTING_FILES,
    WebBrowserPersist,
)
from savelinkmenus.security import (
    check_uri, Principal, SecurityCheck, url_security_check,
)
from savelinkmenus.util.bulkheads import capture_crashes_to_stderr
from savelinkmenus.util.cli import print_verbose, verbose_enabled
from savelinkmenus.util.xthreading import fg_call_later
import time
from typing import Any


_VERBOSE = verbose_enabled()

ProbeFactory = Callable[[str], 'Future[ProbeResponse]']
PersistFactory = Callable[..., WebBrowserPersist]


def _start_head_request(url: str) -> 'Future[ProbeResponse]':
    return HeadRequest(url).start()


@dataclass(frozen=True)
class SaveRequest:
    """A request to save one resource, made by the user of a window."""
    source_url: str
    principal: Principal
    content_type: str | None
    window: BrowserWindow


class SaveOrchestrator:
    """
    Carries out "Save Page" and "Save Link" requests from browser windows.

    Failures that are a matter of policy (a URL that may not be saved, or a
    probe that does not return 200 OK) are reported to the user with a toast
    and otherwise abandon the request. A failed MIME lookup only means the
    saved file gets no extension. Any other error while choosing the target
    file propagates to the caller.

    A transfer that fails after it starts marks its download record as FAILED
    and is reported with a toast in the window that requested it.
    """

    def __init__(self,
            prefs: AppPreferences=app_prefs,
            download_manager: DownloadManager | None=None,
            *, mime_service: MimeService=default_mime_service,
            probe_factory: ProbeFactory=_start_head_request,
            persist_factory: PersistFactory=WebBrowserPersist,
            security_check: SecurityCheck=url_security_check,
            ) -> None:
        self._prefs = prefs
        self._download_manager = (
            download_manager if download_manager is not None
            else DownloadManager(prefs)
        )
        self._mime_service = mime_service
        self._probe_factory = probe_factory
        self._persist_factory = persist_factory
        self._security_check = security_check

        # Probes that have not completed yet, by window that started them
        self._pending_probes = {}  # type: dict[Any, list[Future[ProbeResponse]]]
        # Window that started each download, by download id
        self._window_for_download = {}  # type: dict[int, BrowserWindow]

        self._download_manager.listeners.append(self)

    def close(self) -> None:
        """
        Stops listening to the download manager and abandons any pending probes.
        """
        for window in list(self._pending_probes):
            self.cancel_pending(window)
        if self in self._download_manager.listeners:
            self._download_manager.listeners.remove(self)
        self._window_for_download.clear()

    # === Properties ===

    @property
    def download_manager(self) -> DownloadManager:
        return self._download_manager

    def pending_probes_for(self, window: BrowserWindow) -> list['Future[ProbeResponse]']:
        return list(self._pending_probes.get(window, []))

    # === Security ===

    def check_uri(self, window: BrowserWindow, url: str, principal: Principal) -> bool:
        """
        Returns whether `principal` may save `url`.
        Only http and https URLs may be saved.
        """
        return check_uri(url, principal, security_check=self._security_check)

    # === Entry Points ===

    def save_page(self, window: BrowserWindow) -> Download:
        """
        Saves the document in the selected tab of `window`, using the
        content type it was loaded with. Does not access the network
        to decide on a file name.
        """
        tab = window.selected_tab
        return self.save_uri_with_content_type(
            window,
            tab.current_url,
            parse_content_type(tab.document.content_type),
            title=tab.document.title,
        )

    def save_link(self,
            window: BrowserWindow,
            url: str,
            principal: Principal,
            ) -> 'Future[ProbeResponse] | None':
        """
        Saves the resource that a link in `window` points to.

        If the link may not be saved then a failure toast is shown,
        None is returned, and the network is not accessed.

        Otherwise the link is probed with a HEAD request and the pending
        probe is returned. When the probe completes with 200 OK the resource
        is saved with the content type that the server declared. When it
        completes with any other status or with an error, a failure toast
        is shown. A probe cancelled with cancel_pending() has no effect.
        """
        if not self.check_uri(window, url, principal):
            window.toast.show(tr('FailedMessage'), 'short')
            return None

        request = SaveRequest(url, principal, None, window)
        probe = self._probe_factory(url)
        self._pending_probes.setdefault(window, []).append(probe)
        if _VERBOSE:
            print_verbose('SaveOrchestrator', f'Probing {url!r}')

        @capture_crashes_to_stderr
        def fg_task() -> None:
            self._probe_did_complete(request, probe)

        def probe_did_complete(_: 'Future[ProbeResponse]') -> None:
            fg_call_later(fg_task)
        probe.add_done_callback(probe_did_complete)
        return probe

    def save_document(self, window: BrowserWindow) -> Download:
        """
        Saves the document in the selected tab of `window` as a complete page:
        the document together with the images, scripts, and stylesheets it
        displays.
        """
        tab = window.selected_tab
        document = tab.document
        (download, persist) = self._create_download(
            window,
            tab.current_url,
            parse_content_type(document.content_type),
            title=document.title,
        )
        persist.save_document(document, download.target_path, tab.load_context)
        return download

    def cancel_pending(self, window: BrowserWindow) -> None:
        """
        Abandons every probe that `window` started and that has not completed,
        as when the window navigates elsewhere or closes.
        """
        for probe in self._pending_probes.pop(window, []):
            probe.cancel()

    # === Probe ===

    def _probe_did_complete(self, request: SaveRequest, probe: 'Future[ProbeResponse]') -> None:
        pending = self._pending_probes.get(request.window, [])
        if probe not in pending:
            # Abandoned by cancel_pending()
            return
        pending.remove(probe)
        if len(pending) == 0:
            del self._pending_probes[request.window]

        if probe.cancelled():
            return
        error = probe.exception()
        if error is not None:
            if _VERBOSE:
                print_verbose('SaveOrchestrator', f'Probe of {request.source_url!r} failed: {error!r}')
            request.window.toast.show(tr('FailedMessage'), 'short')
            return
        response = probe.result()
        if not response.is_success:
            if _VERBOSE:
                print_verbose('SaveOrchestrator',
                    f'Probe of {request.source_url!r} returned HTTP {response.status_code}')
            request.window.toast.show(tr('FailedMessage'), 'short')
            return

        self.save_uri_with_content_type(
            request.window,
            request.source_url,
            response.content_type,
            content_disposition=response.get_header('Content-Disposition'),
        )

    # === Save ===

    def save_uri_with_content_type(self,
            window: BrowserWindow,
            url: str,
            content_type: str | None,
            *, title: str | None=None,
            content_disposition: str | None=None,
            ) -> Download:
        """
        Saves the resource at `url`, whose content type is already known,
        to a new file in the downloads directory.

        If `content_type` is None or not a registered MIME type then the
        file name gets no extension added.

        Raises:
        * OSError -- if the target file could not be created.
        """
        (download, persist) = self._create_download(
            window, url, content_type,
            title=title,
            content_disposition=content_disposition,
        )
        persist.save_uri(url, download.target_path, window.selected_tab.load_context)
        return download

    def _create_download(self,
            window: BrowserWindow,
            url: str,
            content_type: str | None,
            *, title: str | None=None,
            content_disposition: str | None=None,
            ) -> tuple[Download, WebBrowserPersist]:
        """
        Creates an empty target file with a unique name and a download record
        for it, whose progress is reported by the returned WebBrowserPersist.
        """
        tab = window.selected_tab

        (extension, mime_info) = self._mime_service.resolve_extension(content_type)
        file_name = get_default_file_name(
            url, title=title, content_disposition=content_disposition)
        file_name = get_normalized_leaf_name(file_name.strip(), extension, mime_info)

        target_path = create_unique(
            self._download_manager.default_downloads_directory, file_name)

        persist = self._persist_factory(
            PERSIST_FLAGS_REPLACE_EXISTING_FILES | PERSIST_FLAGS_FROM_CACHE)
        download = self._download_manager.add_download(
            DOWNLOAD_TYPE_DOWNLOAD,
            url,
            target_path,
            os.path.basename(target_path),
            mime_info,
            int(time.time() * 1_000_000),
            None,
            persist,
            tab.is_private,
        )
        self._window_for_download[download.id] = window
        persist.progress_listener = download

        if _VERBOSE:
            print_verbose('SaveOrchestrator', f'Saving {url!r} to {target_path!r}')
        return (download, persist)

    # === Download Manager Events ===

    @capture_crashes_to_stderr
    def download_state_did_change(self, download: Download) -> None:
        if not download.state.is_terminal:
            return
        window = self._window_for_download.pop(download.id, None)
        if window is None:
            return
        if download.state == DownloadState.FAILED:
            window.toast.show(tr('DownloadFailedMessage'), 'long')
