"""
Keeps a record of every file being saved so that its progress can be shown.
"""

from enum import Enum
import itertools
import os
from savelinkmenus.app_preferences import app_prefs, AppPreferences
from savelinkmenus.host import Cancelable
from savelinkmenus.mime import MimeInfo
from savelinkmenus.util.bulkheads import run_bulkhead_call
from savelinkmenus.util.listenable import ListenableMixin
import time
from typing import Literal


DownloadType = Literal['download']
DOWNLOAD_TYPE_DOWNLOAD = 'download'  # type: DownloadType


class DownloadState(Enum):
    QUEUED = 'queued'
    DOWNLOADING = 'downloading'
    FINISHED = 'finished'
    FAILED = 'failed'
    CANCELED = 'canceled'

    @property
    def is_terminal(self) -> bool:
        return self in (DownloadState.FINISHED, DownloadState.FAILED, DownloadState.CANCELED)


class _NotCancelable:
    def cancel(self, reason: BaseException | None=None) -> None:
        pass


class Download:
    """
    A download record: an in-progress or completed save of one resource.

    A Download receives progress from the transfer that fills its target file
    (it is the transfer's progress listener) and forwards changes to the
    listeners of its DownloadManager.
    """

    def __init__(self,
            manager: 'DownloadManager',
            download_id: int,
            download_type: DownloadType,
            source_url: str,
            target_path: str,
            display_name: str,
            mime_info: MimeInfo | None,
            start_time: int,
            temp_file: str | None,
            cancelable: Cancelable,
            is_private: bool,
            ) -> None:
        self._manager = manager
        self.id = download_id
        self.download_type = download_type
        self.source_url = source_url
        self.target_path = target_path
        self.display_name = display_name
        self.mime_info = mime_info
        # Microseconds since the epoch
        self.start_time = start_time
        self.temp_file = temp_file
        self.cancelable = cancelable
        self.is_private = is_private

        self.state = DownloadState.QUEUED
        self.current_bytes = 0
        self.total_bytes = None  # type: int | None
        self.error = None  # type: BaseException | None

    # === Properties ===

    @property
    def percent_complete(self) -> int | None:
        """
        Percentage of the transfer that is complete,
        or None if the total size is unknown.
        """
        if self.state == DownloadState.FINISHED:
            return 100
        if not self.total_bytes:
            return None
        return min(100, (self.current_bytes * 100) // self.total_bytes)

    # === Progress Listener ===

    def on_progress(self, current_bytes: int, total_bytes: int | None) -> None:
        if self.state.is_terminal:
            return
        self.current_bytes = current_bytes
        self.total_bytes = total_bytes
        if self.state == DownloadState.QUEUED:
            self.on_state_change(DownloadState.DOWNLOADING)
        self._manager._download_progress_did_change(self)

    def on_state_change(self, state: DownloadState, error: BaseException | None=None) -> None:
        if self.state.is_terminal or state == self.state:
            return
        self.state = state
        self.error = error
        self._manager._download_state_did_change(self)

    # === Operations ===

    def cancel(self, reason: BaseException | None=None) -> None:
        """
        Requests that the transfer filling this download stop.
        """
        if self.state.is_terminal:
            return
        self.cancelable.cancel(reason)

    def __repr__(self) -> str:
        return (
            f'Download(id={self.id}, source_url={self.source_url!r}, '
            f'target_path={self.target_path!r}, state={self.state.name})'
        )


class DownloadManager(ListenableMixin):
    """
    Tracks Downloads.

    Listeners may define any of:
    * download_did_add(download)
    * download_progress_did_change(download)
    * download_state_did_change(download)
    Listener methods must be decorated with @capture_crashes_to*.
    """

    def __init__(self,
            prefs: AppPreferences=app_prefs,
            *, downloads_directory: str | None=None,
            ) -> None:
        """
        Arguments:
        * downloads_directory --
            directory to save downloads to instead of the one in preferences.
        """
        super().__init__()
        self._prefs = prefs
        self._downloads_directory = downloads_directory
        self._next_id = itertools.count(1)
        self._downloads = []  # type: list[Download]
        self._private_downloads = []  # type: list[Download]

    # === Properties ===

    @property
    def default_downloads_directory(self) -> str:
        """
        The directory that downloads are saved to.
        Created if it does not exist.
        """
        dirpath = (
            self._downloads_directory
            if self._downloads_directory is not None
            else self._prefs.downloads_directory
        )
        os.makedirs(dirpath, exist_ok=True)
        return dirpath

    @property
    def downloads(self) -> list[Download]:
        """All downloads, including private downloads."""
        return self._downloads + self._private_downloads

    @property
    def active_downloads(self) -> list[Download]:
        return [d for d in self.downloads if not d.state.is_terminal]

    def get_download(self, download_id: int) -> Download:
        """
        Raises:
        * KeyError
        """
        for d in self.downloads:
            if d.id == download_id:
                return d
        raise KeyError(download_id)

    # === Operations ===

    def add_download(self,
            download_type: DownloadType,
            source_url: str,
            target_path: str,
            display_name: str,
            mime_info: MimeInfo | None,
            start_time: int | None,
            temp_file: str | None,
            cancelable: Cancelable | None,
            is_private: bool,
            ) -> Download:
        """
        Creates a download record in the QUEUED state.

        Arguments:
        * start_time -- microseconds since the epoch, or None for now.
        """
        download = Download(
            self,
            next(self._next_id),
            download_type,
            source_url,
            target_path,
            display_name,
            mime_info,
            start_time if start_time is not None else int(time.time() * 1_000_000),
            temp_file,
            cancelable if cancelable is not None else _NotCancelable(),
            is_private,
        )
        if is_private:
            self._private_downloads.append(download)
        else:
            self._downloads.append(download)

        for lis in self.listeners:
            if hasattr(lis, 'download_did_add'):
                run_bulkhead_call(lis.download_did_add, download)  # type: ignore[attr-defined]
        return download

    def clear_private(self) -> None:
        """
        Forgets all private downloads, as when the last private window closes.
        Does not delete any saved files.
        """
        self._private_downloads.clear()

    # === Events ===

    def _download_progress_did_change(self, download: Download) -> None:
        for lis in self.listeners:
            if hasattr(lis, 'download_progress_did_change'):
                run_bulkhead_call(lis.download_progress_did_change, download)  # type: ignore[attr-defined]

    def _download_state_did_change(self, download: Download) -> None:
        for lis in self.listeners:
            if hasattr(lis, 'download_state_did_change'):
                run_bulkhead_call(lis.download_state_did_change, download)  # type: ignore[attr-defined]
