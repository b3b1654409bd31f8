"""
Save Link Menus adds "Save Page" and "Save Link" actions to a browser's
menus and saves the targeted resource into the downloads directory.
"""

APP_NAME = 'SaveLinkMenus'
APP_AUTHOR = 'SaveLinkMenus'
__version__ = '1.3.0'
