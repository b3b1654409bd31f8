"""
Resolves message keys to user-facing strings.

Strings are stored in Java-style .properties bundles in
savelinkmenus.resources: main.properties holds the default strings and
main_<lang>.properties (such as main_ja.properties) holds a translation.
"""

import locale
import os
from savelinkmenus import resources


_BUNDLE_NAME = 'main'

# Cached string bundle, loaded on first call to tr()
_string_bundle = None  # type: dict[str, str] | None


def tr(key: str) -> str:
    """
    Returns the localized string for the specified message key,
    or the key itself if no string is available.
    """
    global _string_bundle
    if _string_bundle is None:
        _string_bundle = load_string_bundle(_BUNDLE_NAME, preferred_language())
    return _string_bundle.get(key, key)


def reset_string_bundle() -> None:
    """Forgets the cached string bundle, so that it is reloaded by the next tr()."""
    global _string_bundle
    _string_bundle = None


def preferred_language() -> str | None:
    """
    Returns the user's preferred language code (such as 'ja'),
    or None if it cannot be determined.
    """
    for env_var in ('SAVELINKMENUS_LANG', 'LC_ALL', 'LC_MESSAGES', 'LANG'):
        value = os.environ.get(env_var)
        if value:
            return _language_of(value)
    (locale_name, _) = locale.getlocale()
    return _language_of(locale_name) if locale_name else None


def _language_of(locale_name: str) -> str | None:
    # ex: 'ja_JP.UTF-8' -> 'ja'
    language = locale_name.split('.', 1)[0].split('_', 1)[0].split('-', 1)[0].lower()
    return language if language not in ('', 'c', 'posix') else None


def load_string_bundle(bundle_name: str, language: str | None) -> dict[str, str]:
    """
    Loads the strings of a bundle, with strings from the language-specific
    bundle (if any) taking precedence over the default bundle.

    A missing or unreadable bundle contributes no strings.
    """
    bundle = {}  # type: dict[str, str]
    filenames = [f'{bundle_name}.properties']
    if language is not None:
        filenames.append(f'{bundle_name}_{language}.properties')
    for filename in filenames:
        try:
            if not resources.exists(filename):
                continue
            with resources.open_text(filename) as f:
                bundle.update(parse_properties(f.read()))
        except (OSError, UnicodeDecodeError):
            continue
    return bundle


def parse_properties(text: str) -> dict[str, str]:
    """
    Parses the contents of a .properties file.

    Supports '#' and '!' comments, 'key=value' and 'key: value' entries,
    backslash line continuations, and \\uXXXX escapes.
    """
    strings = {}  # type: dict[str, str]
    logical_line = ''
    for raw_line in text.splitlines():
        line = raw_line.lstrip()
        if logical_line == '' and (line == '' or line[0] in '#!'):
            continue
        trailing_backslashes = len(line) - len(line.rstrip('\\'))
        if trailing_backslashes % 2 == 1:
            logical_line += line[:-1]
            continue
        logical_line += line

        separator_index = _find_separator(logical_line)
        if separator_index is None:
            (key, value) = (logical_line, '')
        else:
            key = logical_line[:separator_index].rstrip()
            value = logical_line[separator_index + 1:].lstrip()
        strings[_unescape(key)] = _unescape(value)
        logical_line = ''
    return strings


def _find_separator(line: str) -> int | None:
    escaped = False
    for (i, c) in enumerate(line):
        if escaped:
            escaped = False
        elif c == '\\':
            escaped = True
        elif c in '=:':
            return i
    return None


def _unescape(value: str) -> str:
    result = []
    i = 0
    while i < len(value):
        c = value[i]
        if c == '\\' and i + 1 < len(value):
            n = value[i + 1]
            if n == 'u' and i + 6 <= len(value):
                try:
                    result.append(chr(int(value[i + 2:i + 6], 16)))
                except ValueError:
                    result.append(value[i:i + 6])
                i += 6
                continue
            result.append({'n': '\n', 't': '\t', 'r': '\r'}.get(n, n))
            i += 2
            continue
        result.append(c)
        i += 1
    return ''.join(result)
