"""
Locates user-specific directories used by Save Link Menus,
building on the `appdirs` library.
"""

import appdirs
import os
import os.path
from savelinkmenus import APP_AUTHOR, APP_NAME


def user_state_dir() -> str:
    """
    Get the directory where application state should be stored,
    such as the preferences file.
    
    Returns the absolute path to the directory, creating it if necessary.
    """
    state_dir = appdirs.user_state_dir(APP_NAME, APP_AUTHOR)
    os.makedirs(state_dir, exist_ok=True)
    return state_dir


def user_downloads_dir() -> str:
    """
    Get the directory where downloaded files are saved by default.
    
    Uses $XDG_DOWNLOAD_DIR if set, otherwise ~/Downloads.
    Does NOT create the directory.
    """
    xdg_download_dir = os.environ.get('XDG_DOWNLOAD_DIR')
    if xdg_download_dir:
        return os.path.expanduser(xdg_download_dir)
    return os.path.join(os.path.expanduser('~'), 'Downloads')
