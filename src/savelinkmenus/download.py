"""
Provides HTTP requests used to probe and fetch resources being saved.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from http.client import HTTPConnection, HTTPResponse, HTTPSConnection
from savelinkmenus import __version__
from savelinkmenus.app_preferences import app_prefs
from savelinkmenus.util.bulkheads import capture_crashes_to_stderr
from savelinkmenus.util.xfutures import InterruptableFuture
from savelinkmenus.util.xthreading import bg_call_later
import socks
import ssl
import truststore
from typing import assert_never, BinaryIO, cast
from urllib.parse import urlsplit


HTTP_REQUEST_TIMEOUT = 10  # seconds

# The User-Agent string to use for requests, or None to omit.
_USER_AGENT_STRING = 'SaveLinkMenus/%s' % __version__

# Whether to log verbose output related to HTTP requests and responses.
# Can be used to inspect the exact request & response lines and headers exchanged.
_VERBOSE_HTTP_REQUESTS_AND_RESPONSES = False


# ------------------------------------------------------------------------------
# ProbeResponse

@dataclass(frozen=True)
class ProbeResponse:
    """
    The status line and headers of an HTTP response.
    """
    status_code: int
    reason_phrase: str = ''
    headers: list[tuple[str, str]] = field(default_factory=list)

    def get_header(self, name: str) -> str | None:
        """
        Returns the value of the first header with the specified name,
        compared case-insensitively, or None if there is no such header.
        """
        name_lower = name.lower()  # cache
        for (cur_name, cur_value) in self.headers:
            if cur_name.lower() == name_lower:
                return cur_value
        return None

    @property
    def is_success(self) -> bool:
        return self.status_code == 200

    @property
    def content_type(self) -> str | None:
        """
        The MIME type declared by the Content-Type header, without parameters,
        or None if the header is absent.
        """
        return parse_content_type(self.get_header('Content-Type'))

    @property
    def content_length(self) -> int | None:
        value = self.get_header('Content-Length')
        if value is None:
            return None
        try:
            length = int(value.strip())
        except ValueError:
            return None
        return length if length >= 0 else None


def parse_content_type(value: str | None) -> str | None:
    """
    Returns the part of a Content-Type header value before the first ';',
    stripped of whitespace, or None if there is no such part.

    Examples:
    * 'image/png; charset=binary' -> 'image/png'
    * 'text/html' -> 'text/html'
    * '' -> None
    """
    if value is None:
        return None
    mime_type = value.split(';', 1)[0].strip()
    return mime_type or None


def parse_charset(value: str | None) -> str | None:
    """
    Returns the charset parameter of a Content-Type header value, if any.

    Examples:
    * 'text/html; charset="utf-8"' -> 'utf-8'
    * 'text/html' -> None
    """
    if value is None:
        return None
    for param in value.split(';')[1:]:
        (name, _, param_value) = param.partition('=')
        if name.strip().lower() == 'charset':
            return param_value.strip().strip('"\'') or None
    return None


# ------------------------------------------------------------------------------
# HttpRequest

class HttpRequest:
    """
    Encapsulates a request to an http or https URL.
    """
    method = 'GET'

    def __init__(self, url: str) -> None:
        """
        Raises:
        * ValueError -- if the URL does not have an http or https scheme.
        """
        if urlsplit(url).scheme.lower() not in ('http', 'https'):
            raise ValueError('Expected URL with http or https scheme')
        self.url = url

    def _open(self) -> tuple[HTTPConnection, HTTPResponse]:
        url_parts = urlsplit(self.url)
        scheme = url_parts.scheme.lower()
        host_and_port = url_parts.netloc.rpartition('@')[2]  # strip credentials
        path_and_query = (
            (url_parts.path or '/') +
            ('' if url_parts.query == '' else f'?{url_parts.query}')
        )

        conn = _create_connection(scheme, host_and_port)
        if _VERBOSE_HTTP_REQUESTS_AND_RESPONSES:
            conn.set_debuglevel(1)

        headers = {}
        if _USER_AGENT_STRING is not None:
            headers['User-Agent'] = _USER_AGENT_STRING

        try:
            conn.request(self.method, path_and_query, headers=headers)
            response = conn.getresponse()
        except BaseException:
            conn.close()
            raise
        return (conn, response)

    @staticmethod
    def _metadata_of(response: HTTPResponse) -> ProbeResponse:
        return ProbeResponse(
            status_code=response.status,
            reason_phrase=response.reason,
            headers=[(k, v) for (k, v) in response.getheaders()],
        )

    def __repr__(self) -> str:
        return f'{type(self).__name__}({self.url!r})'


class HeadRequest(HttpRequest):
    """
    Probes a URL with an HTTP HEAD request to learn its content type
    without downloading its body.
    """
    method = 'HEAD'

    def __call__(self) -> ProbeResponse:
        """
        Synchronously performs the request.

        Raises:
        * OSError -- if a transport error occurs.
        * http.client.HTTPException -- if the response is malformed.
        """
        (conn, response) = self._open()
        try:
            return self._metadata_of(response)
        finally:
            conn.close()

    def start(self) -> InterruptableFuture[ProbeResponse]:
        """
        Performs the request on a background thread.

        Returns a future which resolves exactly once, either with the
        ProbeResponse or with the transport error. If the future is cancelled
        before the request completes, the eventual outcome is discarded.
        """
        future = InterruptableFuture()  # type: InterruptableFuture[ProbeResponse]

        @capture_crashes_to_stderr
        def bg_task() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                response = self()
            except BaseException as e:
                future.set_exception(e)
            else:
                future.set_result(response)
        bg_call_later(bg_task, name=f'HeadRequest({self.url})', daemon=True)
        return future


class GetRequest(HttpRequest):
    """
    Fetches the body of a URL with an HTTP GET request.
    """
    method = 'GET'

    def __call__(self) -> tuple[ProbeResponse, BinaryIO]:
        """
        Synchronously sends the request and receives the response headers.

        Returns a (metadata, body_stream) tuple, where `body_stream`
        supports `read` and `close`. The caller must close `body_stream`.

        Raises:
        * OSError -- if a transport error occurs.
        * http.client.HTTPException -- if the response is malformed.
        """
        (conn, response) = self._open()
        body_stream = _HttpResourceBodyStream(
            close=_closer(response, conn),
            read=response.read,
            readinto=response.readinto,
            mode='rb')
        return (self._metadata_of(response), cast(BinaryIO, body_stream))


def _closer(response: HTTPResponse, conn: HTTPConnection) -> Callable[[], None]:
    def close() -> None:
        try:
            response.close()
        finally:
            conn.close()
    return close


class _HttpResourceBodyStream:
    """
    File-like object for reading from an HTTP resource.
    """
    def __init__(self, close, read, readinto, mode) -> None:
        self.close = close
        self.read = read
        self.readinto = readinto
        self.mode = mode


# ------------------------------------------------------------------------------
# Connections

def _create_connection(scheme: str, host_and_port: str) -> HTTPConnection:
    conn: HTTPConnection
    proxy_type = app_prefs.proxy_type  # cache
    if scheme == 'http':
        if proxy_type == 'none':
            conn = HTTPConnection(
                host_and_port,
                timeout=HTTP_REQUEST_TIMEOUT,
            )
        elif proxy_type == 'socks5':
            conn = _SocksHTTPConnection(
                host_and_port,
                timeout=HTTP_REQUEST_TIMEOUT,
                proxy_host=app_prefs.socks5_proxy_host,
                proxy_port=app_prefs.socks5_proxy_port,
            )
        else:
            assert_never(proxy_type)
    elif scheme == 'https':
        if proxy_type == 'none':
            conn = HTTPSConnection(
                host_and_port,
                timeout=HTTP_REQUEST_TIMEOUT,
                context=get_ssl_context(),
            )
        elif proxy_type == 'socks5':
            conn = _SocksHTTPSConnection(
                host_and_port,
                timeout=HTTP_REQUEST_TIMEOUT,
                context=get_ssl_context(),
                proxy_host=app_prefs.socks5_proxy_host,
                proxy_port=app_prefs.socks5_proxy_port,
            )
        else:
            assert_never(proxy_type)
    else:
        raise ValueError('Not an HTTP(S) URL.')
    return conn


class _SocksHTTPConnection(HTTPConnection):
    """
    HTTPConnection that connects through a SOCKS proxy.
    """
    def __init__(self, *args, proxy_host: str, proxy_port: int, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._proxy_host = proxy_host
        self._proxy_port = proxy_port

    def connect(self) -> None:
        self.sock = _create_socks5_socket(
            self._proxy_host,
            self._proxy_port,
            self.timeout,
            self.host,
            self.port,
            context=None,
        )


class _SocksHTTPSConnection(HTTPSConnection):
    """
    HTTPSConnection that connects through a SOCKS proxy.
    """
    def __init__(self, *args, proxy_host: str, proxy_port: int, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._proxy_host = proxy_host
        self._proxy_port = proxy_port

    def connect(self) -> None:
        self.sock = _create_socks5_socket(
            self._proxy_host,
            self._proxy_port,
            self.timeout,
            self.host,
            self.port,
            self._context,  # type: ignore[attr-defined]
        )


def _create_socks5_socket(
        proxy_host: str,
        proxy_port: int,
        timeout: float | None,
        host: str,
        port: int,
        context: ssl.SSLContext | None,
        ) -> socks.socksocket:
    sock = socks.socksocket()
    # rdns=True: Perform DNS resolving remotely through the proxy
    sock.set_proxy(socks.SOCKS5, proxy_host, proxy_port, rdns=True)

    if timeout is not None:
        sock.settimeout(timeout)

    # Connect to the destination server through the proxy
    sock.connect((host, port))

    # Wrap the socket with SSL, if context provided
    if context is not None:
        sock = context.wrap_socket(sock, server_hostname=host)  # type: ignore[assignment]

    return sock


# ------------------------------------------------------------------------------
# Utility: SSL

_SSL_CONTEXT = None

def get_ssl_context() -> ssl.SSLContext:
    """
    Creates the SSLContext used to make HTTPS connections,
    trusting the CA certificates in the OS certificate store.
    """
    global _SSL_CONTEXT
    if _SSL_CONTEXT is None:
        ctx = truststore.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        ctx.verify_mode = ssl.CERT_REQUIRED
        ctx.check_hostname = True

        _SSL_CONTEXT = ctx  # export
    return _SSL_CONTEXT


# ------------------------------------------------------------------------------
