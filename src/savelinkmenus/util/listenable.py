import os
import sys
from typing import List


class ListenableMixin:
    """
    Mixin for objects that have a listener list.
    
    Listeners are plain objects. A listener is notified of an event only
    if it defines a method named after that event.
    """
    _WARN_IF_LEAKING_LISTENERS = \
        os.environ.get('SAVELINKMENUS_LEAKING_LISTENER_WARNINGS', 'False') == 'True'
    
    def __init__(self, *args, **kwargs) -> None:
        self.listeners = []  # type: List[object]
        super().__init__(*args, **kwargs)
    
    def __del__(self) -> None:
        if self._WARN_IF_LEAKING_LISTENERS:
            if getattr(self, 'listeners', None):
                print(
                    f'*** Listenable object {self!r} still had listeners '
                        f'when it was finalized: {self.listeners!r}',
                    file=sys.stderr)
