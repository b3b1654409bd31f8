import os
import os.path
import pytest
from savelinkmenus.app_preferences import app_prefs
from savelinkmenus.main import _main
from savelinkmenus.util.bulkheads import capture_crashes_to_stderr
from savelinkmenus.util.cli import print_error
import sys
from tests.util.server import MockHttpServer, route


# === prefs ===

def test_prefs_shows_current_values(capsys: pytest.CaptureFixture[str], downloads_dirpath: str) -> None:
    assert _main(['prefs']) == 0
    out = capsys.readouterr().out
    assert 'savepage.enabled = on' in out
    assert 'savelink.enabled = on' in out
    assert f'downloads.directory = {downloads_dirpath}' in out


def test_prefs_changes_values_and_reports_changes(capsys: pytest.CaptureFixture[str]) -> None:
    assert _main(['prefs', '--savelink', 'off']) == 0
    out = capsys.readouterr().out
    assert 'Changed: savelink.enabled' in out
    assert 'savelink.enabled = off' in out
    assert app_prefs.savelink_enabled is False


def test_prefs_rejects_missing_directory(capsys: pytest.CaptureFixture[str], tmp_path) -> None:
    assert _main(['prefs', '--directory', str(tmp_path / 'missing')]) == 2
    assert 'invalid value for downloads.directory' in capsys.readouterr().err


def test_prefs_reset_restores_defaults(capsys: pytest.CaptureFixture[str]) -> None:
    app_prefs.savepage_enabled = False
    assert _main(['prefs', '--reset']) == 0
    assert app_prefs.savepage_enabled is True
    assert 'Changed: all preferences' in capsys.readouterr().out


def test_prefs_rejects_invalid_on_off_value() -> None:
    with pytest.raises(SystemExit) as exc_info:
        _main(['prefs', '--savepage', 'maybe'])
    assert exc_info.value.code == 2


# === menus ===

def test_menus_lists_enabled_items(capsys: pytest.CaptureFixture[str]) -> None:
    assert _main(['menus']) == 0
    out = capsys.readouterr().out
    assert 'Page menu: Save Page' in out
    assert 'Link context menu: Save Link' in out


def test_menus_reflects_disabled_items(capsys: pytest.CaptureFixture[str]) -> None:
    app_prefs.savepage_enabled = False
    app_prefs.savelink_enabled = False
    assert _main(['menus']) == 0
    out = capsys.readouterr().out
    assert 'Page menu:' not in out
    assert 'Link context menu:' not in out
    assert 'No menu items are enabled.' in out


# === terminal colors ===

def test_output_redirected_to_file_has_no_color_codes(capsys: pytest.CaptureFixture[str]) -> None:
    assert _main(['menus']) == 0

    @capture_crashes_to_stderr
    def crash() -> None:
        raise ValueError('boom')
    crash()
    print_error('error: something went wrong', file=sys.stderr)

    captured = capsys.readouterr()
    assert 'Page menu: Save Page' in captured.out
    assert 'Exception in bulkhead:' in captured.err
    assert 'error: something went wrong' in captured.err
    assert '\033[' not in captured.out
    assert '\033[' not in captured.err


# === save-link ===

def test_save_link_saves_resource_with_extension_of_declared_type(capsys: pytest.CaptureFixture[str], tmp_path) -> None:
    target_dirpath = str(tmp_path / 'Saved')
    with MockHttpServer({
        '/files/chart': route(b'\x89PNG-chart', 'image/png; charset=binary'),
    }) as server:
        exit_code = _main([
            'save-link', server.get_url('/files/chart'),
            '--directory', target_dirpath, '--quiet', '--timeout', '10',
        ])

        assert exit_code == 0
        target_path = os.path.join(target_dirpath, 'chart.png')
        with open(target_path, 'rb') as f:
            assert f.read() == b'\x89PNG-chart'
        assert target_path in capsys.readouterr().out
        assert server.methods_requested('/files/chart') == ['HEAD', 'GET']


def test_save_link_from_referrer_page_resolves_link(tmp_path) -> None:
    target_dirpath = str(tmp_path / 'Saved')
    with MockHttpServer({
        '/articles/index.html': route(b'<a href="report">Report</a>'),
        '/articles/report': route(b'%PDF-1.7', 'application/pdf'),
    }) as server:
        exit_code = _main([
            'save-link', 'report',
            '--referrer', server.get_url('/articles/index.html'),
            '--directory', target_dirpath, '--quiet', '--timeout', '10',
        ])

        assert exit_code == 0
        assert os.listdir(target_dirpath) == ['report.pdf']


def test_save_link_to_missing_resource_fails_without_saving(capsys: pytest.CaptureFixture[str], tmp_path) -> None:
    target_dirpath = str(tmp_path / 'Saved')
    with MockHttpServer({}) as server:
        exit_code = _main([
            'save-link', server.get_url('/missing.png'),
            '--directory', target_dirpath, '--quiet', '--timeout', '10',
        ])

        assert exit_code == 1
        assert 'Failed to save' in capsys.readouterr().out
        assert server.methods_requested('/missing.png') == ['HEAD']
        assert not os.path.exists(target_dirpath) or os.listdir(target_dirpath) == []


def test_save_link_to_non_http_url_fails_without_network_access(capsys: pytest.CaptureFixture[str], tmp_path) -> None:
    exit_code = _main([
        'save-link', 'ftp://example.com/file.zip',
        '--directory', str(tmp_path), '--quiet',
    ])
    assert exit_code == 1
    assert 'Save Link' in capsys.readouterr().out


def test_save_link_when_disabled_fails(capsys: pytest.CaptureFixture[str], tmp_path) -> None:
    app_prefs.savelink_enabled = False
    target_dirpath = str(tmp_path / 'Saved')
    exit_code = _main([
        'save-link', 'https://example.com/a.png',
        '--directory', target_dirpath, '--quiet',
    ])
    assert exit_code == 1
    assert not os.path.exists(target_dirpath)


# === save-page ===

def test_save_page_saves_loaded_page_without_probing(tmp_path) -> None:
    target_dirpath = str(tmp_path / 'Saved')
    with MockHttpServer({
        '/post.html': route(b'<title>Post</title><p>Body</p>'),
    }) as server:
        exit_code = _main([
            'save-page', server.get_url('/post.html'),
            '--directory', target_dirpath, '--quiet', '--timeout', '10',
        ])

        assert exit_code == 0
        with open(os.path.join(target_dirpath, 'post.html'), 'rb') as f:
            assert f.read() == b'<title>Post</title><p>Body</p>'
        # Page body came from the window's cache
        assert server.methods_requested('/post.html') == ['GET']


def test_save_page_complete_saves_embedded_resources(tmp_path) -> None:
    target_dirpath = str(tmp_path / 'Saved')
    with MockHttpServer({
        '/post.html': route(b'<title>Post</title><img src="/logo.png">'),
        '/logo.png': route(b'\x89PNG-logo', 'image/png'),
    }) as server:
        exit_code = _main([
            'save-page', server.get_url('/post.html'), '--complete',
            '--directory', target_dirpath, '--quiet', '--timeout', '10',
        ])

        assert exit_code == 0
        assert sorted(os.listdir(target_dirpath)) == ['post.html', 'post_files']
        assert os.listdir(os.path.join(target_dirpath, 'post_files')) == ['logo.png']


def test_save_page_of_missing_page_fails(capsys: pytest.CaptureFixture[str], tmp_path) -> None:
    with MockHttpServer({}) as server:
        exit_code = _main([
            'save-page', server.get_url('/missing.html'),
            '--directory', str(tmp_path), '--quiet',
        ])
    assert exit_code == 1
    assert 'Unable to load' in capsys.readouterr().out
