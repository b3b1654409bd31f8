"""
Stand-ins for the network-facing parts of a save, for use by tests.
"""

from concurrent.futures import Future
from savelinkmenus.download import ProbeResponse


class FakePersist:
    """Records what it was asked to save instead of transferring anything."""
    def __init__(self, persist_flags: int=0) -> None:
        self.persist_flags = persist_flags
        self.progress_listener = None
        self.saved_uris = []  # type: list[tuple[str, str]]
        self.saved_documents = []  # type: list[tuple[object, str]]
        self.cancel_count = 0

    def save_uri(self, source_url, target_path, load_context=None) -> None:
        self.saved_uris.append((source_url, target_path))

    def save_document(self, document, target_path, load_context=None) -> None:
        self.saved_documents.append((document, target_path))

    def cancel(self, reason=None) -> None:
        self.cancel_count += 1


class FakeProber:
    """
    Returns probes that the test completes explicitly,
    remembering the URL of every probe started.
    """
    def __init__(self) -> None:
        self.probes = []  # type: list[tuple[str, Future[ProbeResponse]]]

    def __call__(self, url: str) -> 'Future[ProbeResponse]':
        probe = Future()  # type: Future[ProbeResponse]
        self.probes.append((url, probe))
        return probe

    @property
    def urls(self) -> list[str]:
        return [url for (url, _) in self.probes]


def response(status_code: int=200, content_type: str | None=None, **headers: str) -> ProbeResponse:
    """
    Creates a ProbeResponse. Underscores in header names become dashes,
    so Content_Disposition=... declares a Content-Disposition header.
    """
    header_list = [(k.replace('_', '-'), v) for (k, v) in headers.items()]
    if content_type is not None:
        header_list.append(('Content-Type', content_type))
    return ProbeResponse(status_code, 'OK' if status_code == 200 else '', header_list)
