import importlib.resources
import savelinkmenus.resources as resources
from typing import BinaryIO, TextIO


def open_binary(filename: str) -> BinaryIO:
    """
    Opens a binary data file from this directory for reading.
    
    Raises:
    * FileNotFoundError
    """
    return importlib.resources.files(resources).joinpath(filename).open('rb')


def open_text(filename: str, *, encoding: str='utf-8', errors: str='strict') -> TextIO:
    """
    Opens a text data file from this directory for reading.
    
    Raises:
    * FileNotFoundError
    """
    return importlib.resources.files(resources).joinpath(filename).open(
        'r', encoding=encoding, errors=errors)


def exists(filename: str) -> bool:
    """Returns whether a data file with the specified name exists in this directory."""
    return importlib.resources.files(resources).joinpath(filename).is_file()
