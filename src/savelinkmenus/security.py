"""
Decides whether a document may cause a URL to be fetched and saved.
"""

from collections.abc import Callable
from dataclasses import dataclass
from savelinkmenus.util.cli import print_verbose, verbose_enabled
from urllib.parse import urlsplit


# Schemes that a Save action is permitted to fetch
SAVEABLE_SCHEMES = ('http', 'https')

# Schemes that only the system principal may load
_PRIVILEGED_SCHEMES = ('file', 'chrome', 'resource', 'about', 'jar')

_VERBOSE = verbose_enabled()


class SecurityError(Exception):
    """Raised when a principal is not permitted to load a URL."""


@dataclass(frozen=True)
class Principal:
    """
    The security identity of the document that initiated an action.

    `origin` is "scheme://host[:port]", or None for a null (opaque) principal
    such as the one given to sandboxed documents.
    """
    origin: str | None
    is_system: bool = False

    @staticmethod
    def from_url(url: str) -> 'Principal':
        """
        Returns the principal of a document loaded from the specified URL.
        URLs without a host (such as data: URLs) yield the null principal.
        """
        try:
            parts = urlsplit(url)
            port = parts.port
        except ValueError:  # malformed URL
            return Principal.null()
        if parts.scheme == '' or parts.hostname is None:
            return Principal.null()
        default_port = {'http': 80, 'https': 443}.get(parts.scheme.lower())
        origin = f'{parts.scheme.lower()}://{parts.hostname}'
        if port is not None and port != default_port:
            origin += f':{port}'
        return Principal(origin)

    @staticmethod
    def null() -> 'Principal':
        return Principal(None)

    @staticmethod
    def system() -> 'Principal':
        return Principal(None, is_system=True)

    @property
    def is_null(self) -> bool:
        return self.origin is None and not self.is_system


SecurityCheck = Callable[[str, Principal], None]


def url_security_check(url: str, principal: Principal) -> None:
    """
    Checks whether `principal` is permitted to load `url`.

    Raises:
    * SecurityError -- if the load is not permitted.
    """
    if principal.is_system:
        return
    if principal.is_null:
        raise SecurityError(f'A null principal may not load {url!r}')

    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    if scheme in _PRIVILEGED_SCHEMES:
        raise SecurityError(f'{principal.origin} may not load {scheme}: URL {url!r}')
    if scheme in SAVEABLE_SCHEMES and not parts.hostname:
        raise SecurityError(f'URL has no host: {url!r}')


def check_uri(
        url: str,
        principal: Principal,
        *, security_check: SecurityCheck=url_security_check,
        ) -> bool:
    """
    Returns whether a document with `principal` may save `url`.

    Only http and https URLs may be saved. Any exception raised by
    `security_check` is treated as a denial rather than propagated.
    """
    if _VERBOSE:
        print_verbose('SaveLinkMenus', f'check_uri({url!r}, {principal!r})')

    try:
        scheme = urlsplit(url).scheme.lower()
    except ValueError:  # malformed URL
        return False
    if scheme not in SAVEABLE_SCHEMES:
        return False

    try:
        security_check(url, principal)
    except Exception as e:
        if _VERBOSE:
            print_verbose('SaveLinkMenus', f'url_security_check() raised: {e!r}')
        return False
    else:
        return True
