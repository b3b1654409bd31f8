import pytest
from savelinkmenus.headless import (
    AutoAcceptPrompt, ConsoleToast, HeadlessContextMenus, HeadlessMenu,
    HeadlessWindow, is_openable_link,
)
from savelinkmenus.persist import HttpStatusError
from savelinkmenus.security import Principal
from tests.util.server import MockHttpServer, route


# === HeadlessMenu ===

def test_menu_items_can_be_added_invoked_and_removed() -> None:
    menu = HeadlessMenu()
    chosen = []  # type: list[str]
    save_id = menu.add('Save Page', lambda: chosen.append('save'))
    print_id = menu.add('Print', lambda: chosen.append('print'))
    assert save_id != print_id
    assert menu.labels == ['Save Page', 'Print']

    menu.invoke('Save Page')
    assert chosen == ['save']

    menu.remove(save_id)
    assert menu.labels == ['Print']
    with pytest.raises(KeyError):
        menu.invoke('Save Page')
    with pytest.raises(KeyError):
        menu.remove(save_id)


# === HeadlessContextMenus ===

def test_context_menu_items_apply_only_to_matching_elements() -> None:
    contextmenus = HeadlessContextMenus()
    window = HeadlessWindow(quiet=True)
    window.load('https://example.com/index.html', b'', 'text/html')
    chosen = []  # type: list[str]
    contextmenus.add(
        'Save Link',
        contextmenus.link_openable_context,
        lambda element: chosen.append(contextmenus.get_link_url(element)))

    http_link = window.link_element('docs/a.pdf')
    mail_link = window.link_element('mailto:someone@example.com')
    assert contextmenus.labels_for(http_link) == ['Save Link']
    assert contextmenus.labels_for(mail_link) == []

    contextmenus.invoke('Save Link', http_link)
    assert chosen == ['https://example.com/docs/a.pdf']
    with pytest.raises(KeyError):
        contextmenus.invoke('Save Link', mail_link)


def test_link_element_has_principal_of_its_page() -> None:
    window = HeadlessWindow(quiet=True)
    window.load('https://example.com:8443/index.html', b'', 'text/html')
    element = window.link_element('a.png')
    assert element.principal == Principal('https://example.com:8443')


def test_malformed_link_is_not_openable() -> None:
    window = HeadlessWindow(quiet=True)
    window.load('https://example.com/', b'', 'text/html')
    assert not is_openable_link(window.link_element('http://[::1'))


# === Toast and Prompt ===

def test_console_toast_remembers_and_prints_messages(capsys: pytest.CaptureFixture[str]) -> None:
    toast = ConsoleToast()
    toast.show('Failed to save')
    toast.show('Download failed', 'long')
    assert toast.messages == ['Failed to save', 'Download failed']
    out = capsys.readouterr().out
    assert 'Failed to save' in out
    assert 'Download failed' in out


def test_quiet_console_toast_prints_nothing(capsys: pytest.CaptureFixture[str]) -> None:
    toast = ConsoleToast(quiet=True)
    toast.show('Failed to save')
    assert toast.messages == ['Failed to save']
    assert capsys.readouterr().out == ''


def test_auto_accept_prompt_answers_with_configured_values() -> None:
    assert AutoAcceptPrompt().confirm_check('T', None, 'Complete', True) == (True, True)
    assert AutoAcceptPrompt(checked=False).confirm_check('T', None, 'Complete', True) == (True, False)
    assert AutoAcceptPrompt(accept=False).confirm_check('T', None, 'Complete', True) == (False, True)


# === HeadlessWindow ===

def test_new_window_shows_blank_page_with_null_principal() -> None:
    window = HeadlessWindow()
    assert window.selected_tab.current_url == 'about:blank'
    assert window.selected_tab.document.principal.is_null


def test_load_parses_title_and_remembers_body() -> None:
    window = HeadlessWindow(is_private=True)
    document = window.load(
        'https://example.com/post.html',
        b'<title>My Post</title>',
        'text/html; charset=utf-8')

    tab = window.selected_tab
    assert tab.is_private
    assert tab.load_context.is_private
    assert tab.current_url == 'https://example.com/post.html'
    assert document.title == 'My Post'
    assert document.principal == Principal('https://example.com')
    assert tab.load_context.cache['https://example.com/post.html'] == b'<title>My Post</title>'


def test_load_without_caching_leaves_cache_alone() -> None:
    window = HeadlessWindow()
    window.load('https://example.com/', b'<p>hi</p>', 'text/html', cache=False)
    assert window.selected_tab.load_context.cache == {}


def test_navigate_fetches_page() -> None:
    with MockHttpServer({
        '/index.html': route(b'<title>Home</title><a href="a.pdf">A</a>'),
    }) as server:
        window = HeadlessWindow()
        document = window.navigate(server.get_url('/index.html'))

        assert document.title == 'Home'
        assert document.content_type == 'text/html; charset=utf-8'
        assert window.selected_tab.current_url == server.get_url('/index.html')


def test_navigate_to_missing_page_raises() -> None:
    with MockHttpServer({}) as server:
        window = HeadlessWindow()
        with pytest.raises(HttpStatusError):
            window.navigate(server.get_url('/missing.html'))
        assert window.selected_tab.current_url == 'about:blank'
