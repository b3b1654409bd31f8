from collections.abc import Iterator
import pytest
from savelinkmenus.app_preferences import app_prefs, SAVELINK_ENABLED, SAVEPAGE_ENABLED
from savelinkmenus.downloads import DownloadManager
from savelinkmenus.headless import AutoAcceptPrompt, HeadlessWindow
from savelinkmenus.menus import SaveLinkMenus, WindowRegistry
from savelinkmenus.save import SaveOrchestrator
from savelinkmenus.util.bulkheads import capture_crashes_to_stderr
from tests.util.fakes import FakePersist, FakeProber, response


_PAGE_URL = 'https://example.com/articles/today.html'

# Keys of the menu id tables
_SAVE_PAGE = 'SavePage'
_SAVE_LINK = 'SaveLink'


class _Fixture:
    def __init__(self, downloads_dirpath: str) -> None:
        self.registry = WindowRegistry()
        self.prober = FakeProber()
        self.download_manager = DownloadManager(downloads_directory=downloads_dirpath)
        self.orchestrator = SaveOrchestrator(
            download_manager=self.download_manager,
            probe_factory=self.prober,
            persist_factory=FakePersist,
        )
        self.menus = SaveLinkMenus(windows=self.registry, orchestrator=self.orchestrator)

    def open_window(self, *, complete_page: bool | None=None) -> HeadlessWindow:
        window = HeadlessWindow(
            registry=self.registry, complete_page=complete_page, quiet=True)
        window.load(_PAGE_URL, b'<title>Today</title>', 'text/html')
        self.registry.add(window)
        return window


@pytest.fixture
def fx(downloads_dirpath: str) -> Iterator[_Fixture]:
    fx = _Fixture(downloads_dirpath)
    try:
        yield fx
    finally:
        fx.menus.shutdown()
        fx.orchestrator.close()


def _labels(window: HeadlessWindow) -> tuple[list[str], list[str]]:
    return (window.menu.labels, window.contextmenus.labels)


# === Setup by Preference ===

@pytest.mark.parametrize('savepage_enabled, savelink_enabled, expected_labels', [
    (True, True, (['Save Page'], ['Save Link'])),
    (True, False, (['Save Page'], [])),
    (False, True, ([], ['Save Link'])),
    (False, False, ([], [])),
])
def test_setup_ui_adds_exactly_the_enabled_items(
        fx: _Fixture,
        savepage_enabled: bool,
        savelink_enabled: bool,
        expected_labels: tuple[list[str], list[str]],
        ) -> None:
    app_prefs.savepage_enabled = savepage_enabled
    app_prefs.savelink_enabled = savelink_enabled
    window = fx.open_window()

    fx.menus.setup_ui(window)

    assert _labels(window) == expected_labels
    assert (_SAVE_PAGE in fx.menus.menu_ids_for(window)) == savepage_enabled
    assert (_SAVE_LINK in fx.menus.context_menu_ids_for(window)) == savelink_enabled




def test_setup_ui_twice_does_not_duplicate_items(fx: _Fixture) -> None:
    window = fx.open_window()
    fx.menus.setup_ui(window)
    fx.menus.setup_ui(window)
    assert _labels(window) == (['Save Page'], ['Save Link'])


def test_cleanup_ui_removes_all_items_added_by_setup_ui(fx: _Fixture) -> None:
    window = fx.open_window()
    fx.menus.setup_ui(window)

    fx.menus.cleanup_ui(window)

    assert len(window.menu) == 0
    assert len(window.contextmenus) == 0
    assert fx.menus.menu_ids_for(window) == {}
    assert fx.menus.context_menu_ids_for(window) == {}


def test_cleanup_ui_leaves_items_added_by_others_alone(fx: _Fixture) -> None:
    window = fx.open_window()
    window.menu.add('Print', lambda: None)
    fx.menus.setup_ui(window)

    fx.menus.cleanup_ui(window)

    assert window.menu.labels == ['Print']


def test_cleanup_ui_of_window_without_items_does_nothing(fx: _Fixture) -> None:
    window = fx.open_window()
    fx.menus.cleanup_ui(window)
    assert _labels(window) == ([], [])


# === Lifecycle ===

def test_startup_adds_items_to_already_open_windows(fx: _Fixture) -> None:
    window1 = fx.open_window()
    window2 = fx.open_window()

    fx.menus.startup()

    assert _labels(window1) == (['Save Page'], ['Save Link'])
    assert _labels(window2) == (['Save Page'], ['Save Link'])


def test_startup_twice_does_not_duplicate_items(fx: _Fixture) -> None:
    window = fx.open_window()
    fx.menus.startup()
    fx.menus.startup()
    assert _labels(window) == (['Save Page'], ['Save Link'])


def test_window_opened_after_startup_gets_items(fx: _Fixture) -> None:
    fx.menus.startup()
    window = fx.open_window()
    assert _labels(window) == (['Save Page'], ['Save Link'])


def test_window_closed_after_startup_loses_items(fx: _Fixture) -> None:
    fx.menus.startup()
    window = fx.open_window()

    fx.registry.remove(window)

    assert _labels(window) == ([], [])
    assert fx.menus.menu_ids_for(window) == {}


def test_shutdown_removes_items_from_every_window_and_stops_observing(fx: _Fixture) -> None:
    window = fx.open_window()
    fx.menus.startup()

    fx.menus.shutdown()

    assert _labels(window) == ([], [])
    app_prefs.savepage_enabled = False
    app_prefs.savepage_enabled = True
    assert _labels(window) == ([], [])
    later_window = fx.open_window()
    assert _labels(later_window) == ([], [])


def test_shutdown_for_app_shutdown_leaves_windows_alone(fx: _Fixture) -> None:
    window = fx.open_window()
    fx.menus.startup()

    fx.menus.shutdown(app_shutdown=True)

    assert _labels(window) == (['Save Page'], ['Save Link'])


def test_shutdown_before_startup_does_nothing(fx: _Fixture) -> None:
    window = fx.open_window()
    fx.menus.shutdown()
    assert _labels(window) == ([], [])


def test_load_and_unload_of_none_do_nothing(fx: _Fixture) -> None:
    fx.menus.load(None)
    fx.menus.unload(None)


def test_unload_abandons_pending_probes_of_window(fx: _Fixture) -> None:
    fx.menus.startup()
    window = fx.open_window()
    window.invoke_context_menu('Save Link', window.link_element('report.pdf'))
    [(_, probe)] = fx.prober.probes

    fx.registry.remove(window)

    assert probe.cancelled()
    assert fx.download_manager.downloads == []


# === Preference Changes ===

def test_disabling_preference_removes_item_from_every_window_immediately(fx: _Fixture) -> None:
    fx.menus.startup()
    window1 = fx.open_window()
    window2 = fx.open_window()

    app_prefs.savelink_enabled = False

    assert _labels(window1) == (['Save Page'], [])
    assert _labels(window2) == (['Save Page'], [])

    app_prefs.savepage_enabled = False

    assert _labels(window1) == ([], [])
    assert _labels(window2) == ([], [])


def test_enabling_preference_adds_item_to_every_window_immediately(fx: _Fixture) -> None:
    app_prefs.savepage_enabled = False
    fx.menus.startup()
    window = fx.open_window()
    assert _labels(window) == ([], ['Save Link'])

    app_prefs.savepage_enabled = True

    assert _labels(window) == (['Save Page'], ['Save Link'])


def test_toggling_preference_repeatedly_leaks_no_items(fx: _Fixture) -> None:
    fx.menus.startup()
    window = fx.open_window()

    for _ in range(5):
        app_prefs.savelink_enabled = False
        app_prefs.savelink_enabled = True

    assert _labels(window) == (['Save Page'], ['Save Link'])
    assert len(window.menu) == 1
    assert len(window.contextmenus) == 1


def test_resetting_preferences_rebuilds_items(fx: _Fixture) -> None:
    app_prefs.savepage_enabled = False
    fx.menus.startup()
    window = fx.open_window()

    app_prefs.reset(flush=False)

    assert _labels(window) == (['Save Page'], ['Save Link'])


def test_unrelated_preference_change_does_not_rebuild_items(fx: _Fixture) -> None:
    fx.menus.startup()
    window = fx.open_window()
    ids_before = fx.menus.menu_ids_for(window)

    app_prefs.socks5_proxy_port = 9050

    assert fx.menus.menu_ids_for(window) == ids_before


def test_observe_ignores_unrelated_preference_name(fx: _Fixture) -> None:
    window = fx.open_window()
    fx.menus.setup_ui(window)
    ids_before = fx.menus.menu_ids_for(window)

    fx.menus.observe('downloads.directory')

    assert fx.menus.menu_ids_for(window) == ids_before


def test_observe_of_menu_preference_rebuilds_items(fx: _Fixture) -> None:
    window = fx.open_window()
    fx.menus.setup_ui(window)
    ids_before = fx.menus.menu_ids_for(window)

    fx.menus.observe(SAVEPAGE_ENABLED)

    assert fx.menus.menu_ids_for(window) != ids_before
    assert _labels(window) == (['Save Page'], ['Save Link'])
    fx.menus.observe(SAVELINK_ENABLED)
    assert _labels(window) == (['Save Page'], ['Save Link'])


# === Save Page ===

def test_choosing_save_page_and_accepting_simple_save_saves_page(fx: _Fixture) -> None:
    fx.menus.startup()
    window = fx.open_window(complete_page=False)

    window.invoke_menu('Save Page')

    assert window.prompt.titles == ['Save Page']
    [download] = fx.download_manager.downloads
    assert download.source_url == _PAGE_URL
    assert download.display_name == 'today.html'
    persist = download.cancelable
    assert isinstance(persist, FakePersist)
    assert persist.saved_uris == [(_PAGE_URL, download.target_path)]
    assert persist.saved_documents == []
    assert fx.prober.probes == []


def test_choosing_save_page_and_accepting_complete_save_saves_document(fx: _Fixture) -> None:
    fx.menus.startup()
    window = fx.open_window(complete_page=True)

    window.invoke_menu('Save Page')

    [download] = fx.download_manager.downloads
    persist = download.cancelable
    assert isinstance(persist, FakePersist)
    assert persist.saved_uris == []
    assert len(persist.saved_documents) == 1


def test_choosing_save_page_defaults_to_complete_save(fx: _Fixture) -> None:
    fx.menus.startup()
    window = fx.open_window()

    window.invoke_menu('Save Page')

    [download] = fx.download_manager.downloads
    persist = download.cancelable
    assert isinstance(persist, FakePersist)
    assert len(persist.saved_documents) == 1


def test_choosing_save_page_and_cancelling_dialog_saves_nothing(fx: _Fixture) -> None:
    fx.menus.startup()
    window = fx.open_window()
    window.prompt = AutoAcceptPrompt(accept=False)

    window.invoke_menu('Save Page')

    assert window.prompt.titles == ['Save Page']
    assert fx.download_manager.downloads == []


def test_choosing_save_page_on_unsaveable_page_shows_toast_without_dialog(fx: _Fixture) -> None:
    fx.menus.startup()
    window = fx.open_window()
    window.load('about:blank', b'', 'text/html')

    window.invoke_menu('Save Page')

    assert window.prompt.titles == []
    assert window.toast.messages == ['Failed to save']
    assert fx.download_manager.downloads == []


# === Save Link ===

def test_save_link_is_offered_only_for_http_links(fx: _Fixture) -> None:
    fx.menus.startup()
    window = fx.open_window()

    assert window.contextmenus.labels_for(window.link_element('next.html')) == ['Save Link']
    assert window.contextmenus.labels_for(window.link_element('https://other.example/')) == ['Save Link']
    assert window.contextmenus.labels_for(window.link_element('mailto:a@example.com')) == []
    assert window.contextmenus.labels_for(window.link_element('ftp://example.com/f')) == []


def test_choosing_save_link_probes_resolved_url_and_saves_it(fx: _Fixture) -> None:
    fx.menus.startup()
    window = fx.open_window()

    window.invoke_context_menu('Save Link', window.link_element('../files/report'))

    [(url, probe)] = fx.prober.probes
    assert url == 'https://example.com/files/report'
    probe.set_result(response(200, 'application/pdf'))
    [download] = fx.download_manager.downloads
    assert download.display_name == 'report.pdf'


def test_navigating_away_abandons_pending_save_link(fx: _Fixture) -> None:
    fx.menus.startup()
    window = fx.open_window()
    window.invoke_context_menu('Save Link', window.link_element('report.pdf'))
    [(_, probe)] = fx.prober.probes

    window.load('https://example.com/elsewhere.html', b'', 'text/html')

    assert probe.cancelled()
    assert fx.download_manager.downloads == []
    assert window.toast.messages == []


# === WindowRegistry ===

def test_window_registry_reports_open_navigate_and_close() -> None:
    registry = WindowRegistry()
    events = []  # type: list[tuple[str, object]]

    class Listener:
        @capture_crashes_to_stderr
        def window_did_open(self, window) -> None:
            events.append(('open', window))

        @capture_crashes_to_stderr
        def window_did_navigate(self, window) -> None:
            events.append(('navigate', window))

        @capture_crashes_to_stderr
        def window_did_close(self, window) -> None:
            events.append(('close', window))
    registry.listeners.append(Listener())

    window = HeadlessWindow(registry=registry, quiet=True)
    window.load(_PAGE_URL, b'', 'text/html')  # not yet registered
    registry.add(window)
    registry.add(window)  # duplicate
    window.load(_PAGE_URL, b'', 'text/html')
    registry.remove(window)

    assert events == [('open', window), ('navigate', window), ('close', window)]
    assert len(registry) == 0
    assert window not in registry


def test_window_registry_remove_of_unknown_window_raises() -> None:
    registry = WindowRegistry()
    with pytest.raises(KeyError):
        registry.remove(HeadlessWindow(quiet=True))
