"""
Writes resources to disk, reporting progress to a download record.

Transfers run on a background thread. Progress and the final state are
delivered to the progress listener on the foreground thread.
"""

from collections.abc import Callable
from http.client import HTTPException
import os
import os.path
import shutil
from savelinkmenus.download import (
    GetRequest, parse_charset, parse_content_type, ProbeResponse,
)
from savelinkmenus.downloads import DownloadState
from savelinkmenus.filenames import (
    create_unique, get_default_file_name, get_normalized_leaf_name,
)
from savelinkmenus.host import Document, LoadContext, ProgressListener
from savelinkmenus.html import (
    is_html_content_type, parse_html_and_embedded_links, serialize_html,
)
from savelinkmenus.mime import mime_service
from savelinkmenus.util.bulkheads import capture_crashes_to_stderr
from savelinkmenus.util.cli import print_verbose, verbose_enabled
from savelinkmenus.util.xfutures import InterruptableFuture
from savelinkmenus.util.xthreading import bg_call_later, fg_call_later
from typing import BinaryIO
from urllib.parse import quote


PERSIST_FLAGS_NONE = 0
# Use a cached copy of the resource if one is available
PERSIST_FLAGS_FROM_CACHE = 1 << 0
# Never use a cached copy of the resource
PERSIST_FLAGS_BYPASS_CACHE = 1 << 1
# Overwrite the target file if it already exists
PERSIST_FLAGS_REPLACE_EXISTING_FILES = 1 << 5

# Number of bytes read from the network per progress report
_CHUNK_SIZE = 64 * 1024

_VERBOSE = verbose_enabled()


class HttpStatusError(OSError):
    """Raised when a server responds to a fetch with a non-success status."""
    def __init__(self, url: str, status_code: int, reason_phrase: str='') -> None:
        status_line = f'{status_code} {reason_phrase}'.strip()
        super().__init__(f'HTTP {status_line} while fetching {url!r}')
        self.url = url
        self.status_code = status_code


class TransferCanceled(Exception):
    """Raised inside a transfer when it has been cancelled."""


class WebBrowserPersist:
    """
    Saves a single resource (or a page and its embedded resources) to disk.

    A WebBrowserPersist is also the Cancelable of the download record
    it reports to: cancel() stops the transfer and removes the partial file.
    """

    def __init__(self,
            persist_flags: int=PERSIST_FLAGS_NONE,
            progress_listener: ProgressListener | None=None,
            *, request_factory: Callable[[str], Callable[[], tuple[ProbeResponse, BinaryIO]]]=GetRequest,
            ) -> None:
        self.persist_flags = persist_flags
        self.progress_listener = progress_listener
        self._request_factory = request_factory
        self._future = None  # type: InterruptableFuture[str] | None
        self._target_opened = False
        # Directory of embedded resources created by save_document(), if any
        self._files_dirpath = None  # type: str | None
        self._current_bytes = 0

    # === Operations ===

    def save_uri(self,
            source_url: str,
            target_path: str,
            load_context: LoadContext | None=None,
            ) -> InterruptableFuture[str]:
        """
        Starts saving the resource at `source_url` to `target_path`.

        Returns a future that resolves with `target_path` when the file
        is completely written.
        """
        def transfer(future: InterruptableFuture[str]) -> None:
            with self._open_target(target_path) as target_file:
                self._copy_resource(future, source_url, load_context, target_file)
        return self._start(target_path, transfer, name=f'save_uri({source_url})')

    def save_document(self,
            document: Document,
            target_path: str,
            load_context: LoadContext | None=None,
            ) -> InterruptableFuture[str]:
        """
        Starts saving a loaded document to `target_path`.

        If the document is HTML then the resources it embeds (images, scripts,
        stylesheets, ...) are saved to a sibling "<name>_files" directory and
        the saved page is rewritten to refer to them. Embedded resources that
        cannot be fetched are skipped and keep their original URLs.
        """
        def transfer(future: InterruptableFuture[str]) -> None:
            with self._open_target(target_path) as target_file:
                if not is_html_content_type(parse_content_type(document.content_type)):
                    self._copy_resource(future, document.url, load_context, target_file)
                    return
                html_bytes = self._read_resource(future, document.url, load_context)
                html_bytes = self._save_embedded_resources(
                    future, document, html_bytes, target_path, load_context)
                target_file.write(html_bytes)
                self._report_progress(self._add_bytes(len(html_bytes)), None)
        return self._start(target_path, transfer, name=f'save_document({document.url})')

    def cancel(self, reason: BaseException | None=None) -> None:
        """
        Stops the transfer, if one is running. The partially written file
        and any embedded resources already saved are removed.
        """
        if self._future is not None:
            self._future.cancel()

    # === Transfer ===

    def _start(self,
            target_path: str,
            transfer: Callable[[InterruptableFuture[str]], None],
            *, name: str,
            ) -> InterruptableFuture[str]:
        if self._future is not None:
            raise ValueError('A WebBrowserPersist can only save one resource')
        future = InterruptableFuture()  # type: InterruptableFuture[str]
        self._future = future

        @capture_crashes_to_stderr
        def bg_task() -> None:
            if not future.set_running_or_notify_cancel():
                self._discard_target(target_path)
                self._report_state(DownloadState.CANCELED, None)
                return
            if _VERBOSE:
                print_verbose('WebBrowserPersist', f'{name} -> {target_path!r}')
            try:
                transfer(future)
                if future.cancelled():
                    raise TransferCanceled()
            except TransferCanceled:
                self._discard_target(target_path)
                self._report_state(DownloadState.CANCELED, None)
            except BaseException as e:
                self._discard_target(target_path)
                self._report_state(DownloadState.FAILED, e)
                future.set_exception(e)
            else:
                self._report_state(DownloadState.FINISHED, None)
                future.set_result(target_path)
        bg_call_later(bg_task, name=name, daemon=True)
        return future

    def _open_target(self, target_path: str) -> BinaryIO:
        """
        Raises:
        * FileExistsError -- if the target is a non-empty file and
          PERSIST_FLAGS_REPLACE_EXISTING_FILES is not set.
        """
        if not (self.persist_flags & PERSIST_FLAGS_REPLACE_EXISTING_FILES):
            # NOTE: An empty file is a placeholder created by create_unique()
            if os.path.exists(target_path) and os.path.getsize(target_path) > 0:
                raise FileExistsError(target_path)
        target_file = open(target_path, 'wb')
        self._target_opened = True
        return target_file

    def _discard_target(self, target_path: str) -> None:
        """
        Removes a target file that was partially written by this object,
        or the empty placeholder if writing never started.
        A pre-existing file that was not opened is left alone.

        Any "<name>_files" directory created for embedded resources is
        removed along with everything saved into it.
        """
        if self._files_dirpath is not None:
            _remove_tree_quietly(self._files_dirpath)
        if not self._target_opened:
            if not (os.path.exists(target_path) and os.path.getsize(target_path) == 0):
                return
        _remove_quietly(target_path)

    def _copy_resource(self,
            future: InterruptableFuture[str],
            url: str,
            load_context: LoadContext | None,
            target_file: BinaryIO,
            ) -> None:
        cached_body = self._cached_body_for(url, load_context)
        if cached_body is not None:
            target_file.write(cached_body)
            self._report_progress(self._add_bytes(len(cached_body)), len(cached_body))
            return

        (metadata, body_stream) = self._fetch(url)
        try:
            total_bytes = metadata.content_length  # cache
            while True:
                if future.cancelled():
                    raise TransferCanceled()
                chunk = body_stream.read(_CHUNK_SIZE)
                if not chunk:
                    break
                target_file.write(chunk)
                self._report_progress(self._add_bytes(len(chunk)), total_bytes)
        finally:
            body_stream.close()

    def _read_resource(self,
            future: InterruptableFuture[str],
            url: str,
            load_context: LoadContext | None,
            ) -> bytes:
        cached_body = self._cached_body_for(url, load_context)
        if cached_body is not None:
            return cached_body
        (_, body_stream) = self._fetch(url)
        try:
            chunks = []
            while True:
                if future.cancelled():
                    raise TransferCanceled()
                chunk = body_stream.read(_CHUNK_SIZE)
                if not chunk:
                    break
                chunks.append(chunk)
            return b''.join(chunks)
        finally:
            body_stream.close()

    def _fetch(self, url: str) -> tuple[ProbeResponse, BinaryIO]:
        """
        Raises:
        * HttpStatusError -- if the response status is not 2xx.
        * OSError
        """
        (metadata, body_stream) = self._request_factory(url)()
        if not (200 <= metadata.status_code <= 299):
            body_stream.close()
            raise HttpStatusError(url, metadata.status_code, metadata.reason_phrase)
        return (metadata, body_stream)

    def _cached_body_for(self, url: str, load_context: LoadContext | None) -> bytes | None:
        if not (self.persist_flags & PERSIST_FLAGS_FROM_CACHE):
            return None
        if self.persist_flags & PERSIST_FLAGS_BYPASS_CACHE:
            return None
        if load_context is None:
            return None
        return load_context.cache.get(url)

    def _save_embedded_resources(self,
            future: InterruptableFuture[str],
            document: Document,
            html_bytes: bytes,
            target_path: str,
            load_context: LoadContext | None,
            ) -> bytes:
        (html, links) = parse_html_and_embedded_links(
            html_bytes, document.url, parse_charset(document.content_type))
        if len(links) == 0:
            return html_bytes

        (target_dirpath, target_name) = os.path.split(target_path)
        files_dirname = _create_unique_dir(
            target_dirpath, os.path.splitext(target_name)[0] + '_files')
        files_dirpath = os.path.join(target_dirpath, files_dirname)
        self._files_dirpath = files_dirpath

        saved_name_for_url = {}  # type: dict[str, str | None]
        for link in links:
            if future.cancelled():
                raise TransferCanceled()
            if link.url not in saved_name_for_url:
                saved_name_for_url[link.url] = self._save_embedded_resource(
                    future, link.url, files_dirpath, load_context)
            saved_name = saved_name_for_url[link.url]
            if saved_name is not None:
                link.rewrite(quote(files_dirname) + '/' + quote(saved_name))
        return serialize_html(html)

    def _save_embedded_resource(self,
            future: InterruptableFuture[str],
            url: str,
            files_dirpath: str,
            load_context: LoadContext | None,
            ) -> str | None:
        """
        Saves one embedded resource, returning the name of the saved file,
        or None if the resource could not be fetched.
        """
        try:
            cached_body = self._cached_body_for(url, load_context)
            if cached_body is not None:
                (content_type, body) = (None, cached_body)
            else:
                (metadata, body_stream) = self._fetch(url)
                try:
                    (content_type, body) = (metadata.content_type, body_stream.read())
                finally:
                    body_stream.close()
        except (OSError, HTTPException, ValueError) as e:
            if _VERBOSE:
                print_verbose('WebBrowserPersist', f'Skipping embedded resource {url!r}: {e!r}')
            return None
        if future.cancelled():
            raise TransferCanceled()

        (extension, mime_info) = mime_service.resolve_extension(content_type)
        file_name = get_normalized_leaf_name(
            get_default_file_name(url), extension, mime_info)
        filepath = create_unique(files_dirpath, file_name)
        with open(filepath, 'wb') as f:
            f.write(body)
        self._report_progress(self._add_bytes(len(body)), None)
        return os.path.basename(filepath)

    # === Progress ===

    def _add_bytes(self, byte_count: int) -> int:
        self._current_bytes += byte_count
        return self._current_bytes

    def _report_progress(self, current_bytes: int, total_bytes: int | None) -> None:
        listener = self.progress_listener  # cache
        if listener is None:
            return

        @capture_crashes_to_stderr
        def fg_task() -> None:
            listener.on_progress(current_bytes, total_bytes)
        fg_call_later(fg_task)

    def _report_state(self, state: DownloadState, error: BaseException | None) -> None:
        listener = self.progress_listener  # cache
        if listener is None:
            return

        @capture_crashes_to_stderr
        def fg_task() -> None:
            listener.on_state_change(state, error)
        fg_call_later(fg_task)


# ------------------------------------------------------------------------------
# Utility

def _create_unique_dir(parent_dirpath: str, dirname: str) -> str:
    """
    Creates a new directory named `dirname` in `parent_dirpath`,
    or "dirname-N" if that name is taken. Returns the name of the created directory.
    """
    for attempt in range(10000):
        candidate = dirname if attempt == 0 else f'{dirname}-{attempt}'
        try:
            os.mkdir(os.path.join(parent_dirpath, candidate))
        except FileExistsError:
            continue
        return candidate
    raise FileExistsError(os.path.join(parent_dirpath, dirname))


def _remove_quietly(filepath: str) -> None:
    try:
        os.remove(filepath)
    except FileNotFoundError:
        pass


def _remove_tree_quietly(dirpath: str) -> None:
    try:
        shutil.rmtree(dirpath)
    except FileNotFoundError:
        pass
