"""
Maps declared content types to file extensions.
"""

from dataclasses import dataclass
import mimetypes


# Extensions preferred over whatever mimetypes.guess_extension() happens to
# return first, which varies by platform and Python version.
_PREFERRED_EXTENSIONS = {
    'text/html': 'html',
    'text/plain': 'txt',
    'text/css': 'css',
    'text/javascript': 'js',
    'application/javascript': 'js',
    'application/json': 'json',
    'application/xml': 'xml',
    'text/xml': 'xml',
    'application/xhtml+xml': 'xhtml',
    'application/pdf': 'pdf',
    'application/zip': 'zip',
    # Generic binary data. Names of such files are left unchanged.
    'application/octet-stream': '',
    'image/jpeg': 'jpg',
    'image/png': 'png',
    'image/gif': 'gif',
    'image/webp': 'webp',
    'image/svg+xml': 'svg',
    'audio/mpeg': 'mp3',
    'video/mp4': 'mp4',
}


class UnknownMimeTypeError(ValueError):
    """Raised when a content type has no entry in the MIME registry."""


@dataclass(frozen=True)
class MimeInfo:
    mime_type: str
    primary_extension: str
    # All extensions registered for the type, including primary_extension
    extensions: tuple[str, ...]
    description: str = ''

    def has_extension(self, extension: str) -> bool:
        return extension.lower() in self.extensions


class MimeService:
    """
    A MIME registry backed by the `mimetypes` module.
    """
    def __init__(self, *, strict: bool=False) -> None:
        self._strict = strict

    def get_from_type_and_extension(self, content_type: str | None, extension: str='') -> MimeInfo:
        """
        Returns information about the specified content type, or about the
        type implied by `extension` if no content type is given.

        Raises:
        * UnknownMimeTypeError -- if neither the content type nor the extension
          is known to the registry.
        """
        if not content_type:
            if not extension:
                raise UnknownMimeTypeError('Neither a content type nor an extension was given')
            (content_type, _) = mimetypes.guess_type(f'file.{extension}', strict=self._strict)
            if content_type is None:
                raise UnknownMimeTypeError(f'Unknown extension: {extension!r}')

        mime_type = content_type.strip().lower()
        extensions = [
            ext.lstrip('.').lower()
            for ext in mimetypes.guess_all_extensions(mime_type, strict=self._strict)
        ]
        primary_extension = _PREFERRED_EXTENSIONS.get(mime_type)
        if primary_extension is None:
            if len(extensions) == 0:
                raise UnknownMimeTypeError(f'Unknown content type: {content_type!r}')
            guessed = mimetypes.guess_extension(mime_type, strict=self._strict)
            primary_extension = guessed.lstrip('.').lower() if guessed else extensions[0]
        if primary_extension and primary_extension not in extensions:
            extensions.insert(0, primary_extension)

        return MimeInfo(
            mime_type=mime_type,
            primary_extension=primary_extension,
            extensions=tuple(dict.fromkeys(extensions)),
            description=_describe(mime_type),
        )

    def resolve_extension(self, content_type: str | None) -> tuple[str, MimeInfo | None]:
        """
        Returns (primary extension, MimeInfo) for the specified content type.

        If the content type is missing or unknown, returns ('', None)
        rather than raising.
        """
        try:
            mime_info = self.get_from_type_and_extension(content_type, '')
        except Exception:
            return ('', None)
        else:
            return (mime_info.primary_extension, mime_info)


def _describe(mime_type: str) -> str:
    (major, _, minor) = mime_type.partition('/')
    minor = minor.split('+', 1)[0]
    if minor.startswith('x-'):
        minor = minor[len('x-'):]
    return f'{minor.upper()} {major}' if minor else major


mime_service = MimeService()  # singleton
