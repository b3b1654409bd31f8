"""
Derives the names of files that saved resources are written to.
"""

from email.message import Message
import os
import os.path
import re
from savelinkmenus.mime import MimeInfo
from savelinkmenus.util.xos import is_windows
from urllib.parse import unquote, urlsplit


# Maximum number of "name-N.ext" alternatives tried by create_unique()
MAX_UNIQUE_ATTEMPTS = 10000

# Maximum length of a file name produced by validate_file_name(), in characters
_MAX_FILE_NAME_LENGTH = 240

_ILLEGAL_CHARS_RE = re.compile(r'[\x00-\x1f\x7f/\\:*?"<>|]')
_WHITESPACE_RE = re.compile(r'\s+')


def validate_file_name(file_name: str) -> str:
    """
    Returns a version of `file_name` that is safe to create on any platform.

    Runs of whitespace are collapsed to a single space,
    leading/trailing whitespace is removed,
    and characters that are illegal in file names are replaced with '_'.
    """
    file_name = _WHITESPACE_RE.sub(' ', file_name).strip()
    file_name = _ILLEGAL_CHARS_RE.sub('_', file_name)
    if len(file_name) > _MAX_FILE_NAME_LENGTH:
        (stem, ext) = os.path.splitext(file_name)
        file_name = stem[:_MAX_FILE_NAME_LENGTH - len(ext)] + ext
    return file_name


def get_default_file_name(
        url: str,
        *, title: str | None=None,
        content_disposition: str | None=None,
        ) -> str:
    """
    Returns the name a resource would be saved as by default.

    Candidates are tried in order:
    1. the filename parameter of a Content-Disposition header,
    2. the last non-empty path segment of the URL,
    3. the document title,
    4. the URL's host,
    5. "index".
    """
    candidates = [
        _file_name_from_content_disposition(content_disposition),
        _file_name_from_url_path(url),
        title,
        _host_of(url),
    ]
    for candidate in candidates:
        if candidate is None:
            continue
        file_name = validate_file_name(candidate)
        if file_name not in ('', '.', '..'):
            return file_name
    return 'index'


def _file_name_from_content_disposition(content_disposition: str | None) -> str | None:
    if not content_disposition:
        return None
    message = Message()
    message['Content-Disposition'] = content_disposition
    file_name = message.get_filename()
    if file_name is None:
        return None
    # Never honor a directory component suggested by a server
    return os.path.basename(file_name.replace('\\', '/'))


def _file_name_from_url_path(url: str) -> str | None:
    try:
        path = urlsplit(url).path
    except ValueError:  # malformed URL
        return None
    segments = [s for s in path.split('/') if s != '']
    if len(segments) == 0:
        return None
    return unquote(segments[-1])


def _host_of(url: str) -> str | None:
    try:
        return urlsplit(url).hostname
    except ValueError:  # malformed URL
        return None


def get_normalized_leaf_name(
        file_name: str,
        extension: str,
        mime_info: MimeInfo | None=None,
        ) -> str:
    """
    Returns `file_name` adjusted so that it ends with `extension`.

    If `extension` is empty then `file_name` is returned unchanged.
    Otherwise leading dots are removed and `extension` is appended unless
    the name already ends with it, or with another extension registered
    for the same MIME type (such as "jpeg" for image/jpeg).
    """
    if not extension:
        return file_name

    if is_windows():
        # Windows silently drops trailing dots and spaces
        file_name = file_name.rstrip('. \t')
    file_name = file_name.lstrip('.')

    (_, dot, current_extension) = file_name.rpartition('.')
    if dot:
        current_extension = current_extension.lower()
        if current_extension == extension.lower():
            return file_name
        if mime_info is not None and mime_info.has_extension(current_extension):
            return file_name
    return f'{file_name}.{extension}'


def create_unique(dirpath: str, file_name: str, mode: int=0o666) -> str:
    """
    Creates a new empty file named `file_name` in `dirpath`, or if that name
    is taken, the first available name of the form "name-N.ext".
    An existing file is never overwritten.

    Returns the path of the created file.

    Raises:
    * FileExistsError -- if no unique name could be found.
    * OSError -- if the file could not be created.
    """
    (stem, ext) = _split_extension(file_name)
    for attempt in range(MAX_UNIQUE_ATTEMPTS):
        candidate_name = file_name if attempt == 0 else f'{stem}-{attempt}{ext}'
        candidate_path = os.path.join(dirpath, candidate_name)
        try:
            fd = os.open(candidate_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, mode)
        except FileExistsError:
            continue
        os.close(fd)
        return candidate_path
    raise FileExistsError(
        f'Could not find a unique name for {file_name!r} in {dirpath!r}')


def _split_extension(file_name: str) -> tuple[str, str]:
    """
    Splits "name.ext" into ("name", ".ext"), keeping compound extensions
    such as ".tar.gz" together.
    """
    for compound in ('.tar.gz', '.tar.bz2', '.tar.xz'):
        if file_name.lower().endswith(compound) and len(file_name) > len(compound):
            return (file_name[:-len(compound)], file_name[-len(compound):])
    return os.path.splitext(file_name)
