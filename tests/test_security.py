import pytest
from savelinkmenus.security import (
    check_uri, Principal, SecurityError, url_security_check,
)
from unittest.mock import Mock


_SITE = Principal.from_url('https://example.com/page.html')


# === Principal ===

def test_principal_of_url_is_its_origin() -> None:
    assert Principal.from_url('https://Example.com/a/b?c').origin == 'https://example.com'
    assert Principal.from_url('http://example.com:80/').origin == 'http://example.com'
    assert Principal.from_url('http://example.com:8080/').origin == 'http://example.com:8080'


def test_principal_of_url_without_host_is_null() -> None:
    assert Principal.from_url('data:text/plain,hello').is_null
    assert Principal.from_url('not a url').is_null
    assert Principal.from_url('http://example.com:99999/').is_null


def test_system_principal_is_not_null() -> None:
    assert not Principal.system().is_null


# === url_security_check ===

def test_web_principal_may_load_other_web_urls() -> None:
    url_security_check('https://example.com/file.zip', _SITE)
    url_security_check('http://other.example.org/file.zip', _SITE)


@pytest.mark.parametrize('url', [
    'file:///etc/passwd',
    'chrome://browser/content/browser.xul',
    'resource://gre/modules/Services.jsm',
    'about:config',
])
def test_web_principal_may_not_load_privileged_urls(url: str) -> None:
    with pytest.raises(SecurityError):
        url_security_check(url, _SITE)


def test_null_principal_may_not_load_anything() -> None:
    with pytest.raises(SecurityError):
        url_security_check('https://example.com/', Principal.null())


def test_system_principal_may_load_anything() -> None:
    url_security_check('file:///etc/hosts', Principal.system())


def test_url_without_host_is_rejected() -> None:
    with pytest.raises(SecurityError):
        url_security_check('http:///path', _SITE)


# === check_uri ===

def test_check_uri_allows_http_and_https_urls() -> None:
    assert check_uri('http://example.com/a.png', _SITE)
    assert check_uri('https://example.com/a.png', _SITE)
    assert check_uri('HTTPS://example.com/a.png', _SITE)


@pytest.mark.parametrize('url', [
    'ftp://example.com/file.zip',
    'javascript:alert(1)',
    'mailto:someone@example.com',
    'data:text/plain,hello',
    'httpx://example.com/',
])
def test_check_uri_denies_other_schemes_without_running_security_check(url: str) -> None:
    security_check = Mock()
    assert not check_uri(url, _SITE, security_check=security_check)
    security_check.assert_not_called()


def test_check_uri_treats_security_check_exception_as_denial() -> None:
    security_check = Mock(side_effect=SecurityError('denied'))
    assert not check_uri('https://example.com/', _SITE, security_check=security_check)
    security_check.assert_called_once_with('https://example.com/', _SITE)


def test_check_uri_treats_unexpected_security_check_exception_as_denial() -> None:
    security_check = Mock(side_effect=RuntimeError('broken policy'))
    assert not check_uri('https://example.com/', _SITE, security_check=security_check)


def test_check_uri_denies_null_principal() -> None:
    assert not check_uri('https://example.com/', Principal.null())
