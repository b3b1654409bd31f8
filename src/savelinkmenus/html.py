"""
Finds and rewrites the resources embedded in an HTML page,
so that a page can be saved together with the files it displays.
"""

from bs4 import BeautifulSoup, Tag
from dataclasses import dataclass
import re
from urllib.parse import urljoin, urlsplit

_ANY_RE = re.compile(r'.*')

# Tags whose src attribute refers to an embedded resource
_SRC_TAG_NAMES = ['img', 'script', 'embed', 'source', 'audio', 'video', 'track']

# Values of <link rel=...> that refer to an embedded resource
_EMBEDDED_LINK_RELS = ('stylesheet', 'icon', 'shortcut icon', 'apple-touch-icon')

HTML_CONTENT_TYPES = ('text/html', 'application/xhtml+xml')


@dataclass
class EmbeddedLink:
    """
    An attribute of a tag that refers to a resource displayed by the page.
    """
    tag: Tag
    attr: str
    # The absolute URL of the resource
    url: str
    type_title: str

    def rewrite(self, relative_url: str) -> None:
        """Points the tag's attribute at a different (usually relative) URL."""
        self.tag[self.attr] = relative_url


def parse_html_and_embedded_links(
        html_bytes: bytes,
        base_url: str,
        declared_encoding: str | None=None,
        ) -> tuple[BeautifulSoup, list[EmbeddedLink]]:
    """
    Parses an HTML document and locates the http(s) resources it embeds,
    such as images, scripts, and stylesheets.

    Relative URLs are resolved against the document's <base href>,
    if present, otherwise against `base_url`.
    """
    html = BeautifulSoup(html_bytes, 'html.parser', from_encoding=declared_encoding)

    base_tag = html.find('base', href=_ANY_RE)
    if isinstance(base_tag, Tag):
        base_url = urljoin(base_url, str(base_tag['href']))

    links = []  # type: list[EmbeddedLink]

    # <body background=*>
    for tag in html.find_all('body', background=_ANY_RE):
        _append_link(links, tag, 'background', base_url, 'Background Image')

    # <* src=*>
    for tag in html.find_all(_SRC_TAG_NAMES, src=_ANY_RE):
        type_title = {
            'img': 'Image',
            'script': 'Script',
        }.get(tag.name, f'Embedded ({tag.name})')
        _append_link(links, tag, 'src', base_url, type_title)

    # <input type=image src=*>
    for tag in html.find_all('input', src=_ANY_RE):
        if str(tag.get('type', '')).lower() == 'image':
            _append_link(links, tag, 'src', base_url, 'Form Image')

    # <video poster=*>
    for tag in html.find_all('video', poster=_ANY_RE):
        _append_link(links, tag, 'poster', base_url, 'Video Poster')

    # <link rel=stylesheet href=*>
    for tag in html.find_all('link', href=_ANY_RE):
        # NOTE: BeautifulSoup parses rel as a multi-valued attribute
        rel = tag.get('rel') or []
        rel_str = ' '.join(rel).lower() if isinstance(rel, list) else str(rel).lower()
        if rel_str in _EMBEDDED_LINK_RELS:
            type_title = 'Stylesheet' if rel_str == 'stylesheet' else 'Icon'
            _append_link(links, tag, 'href', base_url, type_title)

    return (html, links)


def _append_link(
        links: list[EmbeddedLink],
        tag: Tag,
        attr: str,
        base_url: str,
        type_title: str,
        ) -> None:
    relative_url = str(tag[attr]).strip()
    if relative_url == '' or relative_url.startswith(('data:', 'javascript:', 'mailto:')):
        return
    try:
        url = urljoin(base_url, relative_url)
        scheme = urlsplit(url).scheme.lower()
    except ValueError:  # malformed URL
        return
    if scheme not in ('http', 'https'):
        return
    links.append(EmbeddedLink(tag, attr, url, type_title))


def is_html_content_type(content_type: str | None) -> bool:
    return content_type is not None and content_type.lower() in HTML_CONTENT_TYPES


def serialize_html(html: BeautifulSoup) -> bytes:
    """
    Serializes a parsed document, in the encoding it was originally in
    when known, otherwise in UTF-8.
    """
    encoding = html.original_encoding or 'utf-8'
    return html.encode(encoding)


def parse_title(html_bytes: bytes, declared_encoding: str | None=None) -> str | None:
    """Returns the text of an HTML document's <title>, or None if it has none."""
    html = BeautifulSoup(html_bytes, 'html.parser', from_encoding=declared_encoding)
    title_tag = html.find('title')
    if not isinstance(title_tag, Tag):
        return None
    title = title_tag.get_text().strip()
    return title or None


def parse_link_hrefs(html_bytes: bytes, declared_encoding: str | None=None) -> list[str]:
    """Returns the href of every <a href=...> in an HTML document, in document order."""
    html = BeautifulSoup(html_bytes, 'html.parser', from_encoding=declared_encoding)
    return [str(tag['href']) for tag in html.find_all('a', href=_ANY_RE)]
