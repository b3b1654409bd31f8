"""
Persists preferences that control which save actions are offered
and where saved files are placed.

Observers are told which preference changed by its key,
such as 'savepage.enabled' for savepage_enabled.
"""

from collections.abc import Callable
from functools import cache
import json
import os
import os.path
from savelinkmenus.util.test_mode import tests_are_running
from savelinkmenus.util.xappdirs import user_downloads_dir, user_state_dir
from tempfile import mkstemp
from typing import Any, Literal, cast


SAVEPAGE_ENABLED = 'savepage.enabled'
SAVELINK_ENABLED = 'savelink.enabled'
DOWNLOADS_DIRECTORY = 'downloads.directory'

# Called with the key of the preference that changed,
# or '' when all preferences were reset.
PreferenceObserver = Callable[[str], None]


# NOTE: Use the `app_prefs` singleton instance rather than attempting
#       to instantiate this class directly.
class AppPreferences:
    """
    A persistent key-value store that contains app preferences.

    Every individual app preference value can be read/written using a property
    defined on this class.

    Any change to app preferences is immediately written to disk.
    Pass flush=False to reset() to discard preferences in memory only.

    Observers registered with add_observer() are notified synchronously,
    on the caller's thread, after every change to a preference value.

    All properties of this class do NOT report I/O
    errors to the caller by default, to make them easy to use in code that
    has no reasonable way of handling such errors.

    Methods that explicitly write preferences (notably flush) DO report I/O
    errors to the caller by default, since those callers are likely to want
    to know if writes fail.
    """

    # Whether to log all side effects that occur during API calls
    _VERBOSE_EFFECTS = False

    def __init__(self, _ready: bool = False) -> None:
        if not _ready:
            raise ValueError(
                'Use the app_prefs singleton instance '
                'instead of creating a new AppPreferences() object')
        self._in_memory_state: dict[str, Any] | None = None
        self._is_dirty = False
        self._observers: list[PreferenceObserver] = []

    # === State Management ===

    # NOTE: The correctness of internal usage of mkstemp() relies on this caching
    #       so that a consistent/non-changing filepath is reported to callers.
    @cache
    def _get_state_filepath(self) -> str:
        # Allow overriding the preferences file. Useful during automated tests.
        maybe_filepath = os.environ.get('SAVELINKMENUS_PREFS_FILEPATH')
        if maybe_filepath is not None:
            return maybe_filepath

        # During tests, use isolated preferences to avoid interfering with real app preferences
        if tests_are_running():
            (fd, filepath) = mkstemp(prefix=f'savelinkmenus_{os.getpid()}_prefs', suffix='.json')
            os.close(fd)
            os.remove(filepath)
            return filepath

        # Otherwise use the usual location
        return os.path.join(user_state_dir(), 'app_preferences.json')

    def _load_state(self) -> dict[str, Any]:
        """
        Loads on-disk preferences to in-memory, if not already done.

        If an I/O error occurs a fresh set of preferences will be loaded
        and the I/O error will not be reported to the caller.
        """
        # If we have an in-memory cache, use it
        if self._in_memory_state is not None:
            return self._in_memory_state

        # Otherwise load from disk
        if self._VERBOSE_EFFECTS:
            print('AppPreferences: I/O: Load from disk')
        state_filepath = self._get_state_filepath()
        if not os.path.exists(state_filepath):
            state = {}
        else:
            try:
                with open(state_filepath, 'r', encoding='utf-8') as f:
                    state = json.load(f)
            except (json.JSONDecodeError, OSError):
                # If state file is corrupted or unreadable, start fresh
                state = {}
            if not isinstance(state, dict):
                state = {}

        # Cache in memory
        self._in_memory_state = state
        self._is_dirty = False
        return state

    def _save_state(self, state: dict[str, Any], *, raise_on_error: bool=True) -> None:
        """
        Saves in-memory preferences to on-disk.

        By default if an I/O error occurs then that error will be raised to the caller.

        If the save is successful, the preferences will be marked non-dirty.
        """
        if self._VERBOSE_EFFECTS:
            print('AppPreferences: I/O: Save to disk')
        state_filepath = self._get_state_filepath()
        try:
            with open(state_filepath, 'w', encoding='utf-8') as f:
                json.dump(state, f, indent=2)
        except OSError:
            if raise_on_error:
                raise
        else:
            # Clear dirty flag after successful save
            self._is_dirty = False

    def _mark_dirty_and_maybe_flush(self, *, flush: bool=True, raise_on_error: bool) -> None:
        """
        Marks the preferences as dirty (modified in memory but not yet saved to disk),
        then flushes them to disk unless `flush` is False.
        """
        self._is_dirty = True
        if flush:
            self.flush(raise_on_error=raise_on_error)

    def flush(self, *, raise_on_error: bool=True) -> None:
        """
        Flush any in-memory changes to disk if the preferences are dirty.

        Raises:
        * OSError -- if an I/O error occurs and raise_on_error=True
        """
        if self._is_dirty and self._in_memory_state is not None:
            self._save_state(self._in_memory_state, raise_on_error=raise_on_error)

    def reset(self, *, flush: bool=True) -> None:
        """
        Resets preferences to their default state. Useful during automated tests.

        Observers are notified with the key ''.
        """
        self._in_memory_state = {}
        self._mark_dirty_and_maybe_flush(flush=flush, raise_on_error=False)
        self._notify_observers('')

    # === Observers ===

    def add_observer(self, observer: PreferenceObserver) -> None:
        """
        Registers an observer which is called with the key of each
        preference that changes. Adding the same observer twice has no effect.
        """
        if observer not in self._observers:
            self._observers.append(observer)

    def remove_observer(self, observer: PreferenceObserver) -> None:
        """
        Unregisters an observer. Removing an unregistered observer has no effect.
        """
        if observer in self._observers:
            self._observers.remove(observer)

    def _notify_observers(self, key: str) -> None:
        # NOTE: Iterate over a copy so that observers may unregister themselves
        for observer in list(self._observers):
            observer(key)

    # === Property Definitions ===

    @staticmethod
    def _define_property(
            key: str,
            *, default: Any=None,
            doc: str,
            validator: Callable[[Any], bool] | None = None,
            ) -> property:
        '''
        Defines a persistent app preferences property stored under `key`.

        `default` may be a callable, which is called to compute the default
        each time the property is read while unset.

        Example:
            my_prop = cast(MyPropType, _define_property(
                'my.prop',
                default=...,
                validator=lambda value: ...,
                doc=(
                    """
                    Documentation for my_prop.
                    """
                )
            ))
        '''
        def _get_default() -> Any:
            return default() if callable(default) else default
        def _get_property_value(self: 'AppPreferences') -> Any:
            state = self._load_state()
            if key not in state:
                return _get_default()
            prop_value = state[key]
            return (
                prop_value
                if validator is None or validator(prop_value)
                else _get_default()
            )
        def _set_property_value(self: 'AppPreferences', prop_value: Any) -> None:
            """
            Raises:
            * ValueError -- if the value is not valid for the property
            """
            state = self._load_state()
            if key not in state or state[key] != prop_value:
                prop_value_is_valid = validator is None or validator(prop_value)
                if not prop_value_is_valid:
                    raise ValueError(
                        f'Value {prop_value!r} for preference {key!r} '
                        f'is not valid')
                if self._VERBOSE_EFFECTS:
                    print(
                        f'AppPreferences: Property change: '
                        f'{key}: '
                        f'{repr(state[key]) if key in state else "unset"} -> '
                        f'{repr(prop_value)}')
                state[key] = prop_value
                # NOTE: If we can't save state, continue silently.
                #       The worst case is we lose some preferences.
                self._mark_dirty_and_maybe_flush(raise_on_error=False)
                self._notify_observers(key)
        def _clear_property_value(self: 'AppPreferences') -> None:
            state = self._load_state()
            if key in state:
                if self._VERBOSE_EFFECTS:
                    print(f'AppPreferences: Property change: {key}: {state.get(key)!r} -> unset')
                state.pop(key, None)
                self._mark_dirty_and_maybe_flush(raise_on_error=False)
                self._notify_observers(key)
        prop = property(
            fget=_get_property_value,
            fset=_set_property_value,
            fdel=_clear_property_value,
            doc=doc
        )
        return prop

    def get_bool(self, key: str) -> bool:
        """
        Returns the value of a boolean preference by its key.

        Raises:
        * KeyError -- if there is no boolean preference with the specified key
        """
        if key not in _BOOL_PREFERENCE_PROPERTIES:
            raise KeyError(key)
        return cast(bool, getattr(self, _BOOL_PREFERENCE_PROPERTIES[key]))

    def set_bool(self, key: str, value: bool) -> None:
        """
        Sets the value of a boolean preference by its key.

        Raises:
        * KeyError -- if there is no boolean preference with the specified key
        * ValueError -- if the value is not a bool
        """
        if key not in _BOOL_PREFERENCE_PROPERTIES:
            raise KeyError(key)
        setattr(self, _BOOL_PREFERENCE_PROPERTIES[key], value)

    # === Properties ===

    savepage_enabled = cast(bool, _define_property(
        SAVEPAGE_ENABLED,
        default=True,
        validator=lambda value: isinstance(value, bool),
        doc=(
            """
            Whether the "Save Page" action is added to the page menu
            of every browser window.
            """
        )
    ))

    savelink_enabled = cast(bool, _define_property(
        SAVELINK_ENABLED,
        default=True,
        validator=lambda value: isinstance(value, bool),
        doc=(
            """
            Whether the "Save Link" action is added to the context menu
            shown for links in every browser window.
            """
        )
    ))

    downloads_directory = cast(str, _define_property(
        DOWNLOADS_DIRECTORY,
        default=user_downloads_dir,
        validator=lambda dirpath: (
            isinstance(dirpath, str) and
            dirpath.strip() != '' and
            os.path.isdir(dirpath)
        ),
        doc=(
            """
            The directory that saved pages and links are written to.

            Defaults to the user's Downloads directory.
            Must be an existing directory.
            """
        )
    ))

    proxy_type = cast(Literal['none', 'socks5'], _define_property(
        'proxy.type',
        default='none',
        validator=lambda pt: pt in ['none', 'socks5'],
        doc=(
            """
            The type of proxy to use for network connections.

            Valid values:
            - 'none': No proxy
            - 'socks5': SOCKS5 proxy

            Returns 'none' if not set or invalid.
            """
        )
    ))

    socks5_proxy_host = cast(str, _define_property(
        'proxy.socks5.host',
        default='localhost',
        validator=lambda host: isinstance(host, str) and host.strip() != '',
        doc=(
            """
            The hostname or IP address of the SOCKS5 proxy server.

            Only used when proxy_type is 'socks5'.
            """
        )
    ))

    socks5_proxy_port = cast(int, _define_property(
        'proxy.socks5.port',
        default=1080,
        validator=lambda port: (
            isinstance(port, int) and not isinstance(port, bool) and 1 <= port <= 65535
        ),
        doc=(
            """
            The port number of the SOCKS5 proxy server.

            Only used when proxy_type is 'socks5'.
            Must be between 1 and 65535.
            """
        )
    ))


_BOOL_PREFERENCE_PROPERTIES = {
    SAVEPAGE_ENABLED: 'savepage_enabled',
    SAVELINK_ENABLED: 'savelink_enabled',
}


app_prefs = AppPreferences(_ready=True)  # singleton
