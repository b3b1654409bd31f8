import gc
import pytest
from unittest.mock import Mock
import weakref

wx = pytest.importorskip('wx')

from savelinkmenus.ui.wx_host import WxContextMenuApi


class _IdRef:
    _next_id = 5000

    def __init__(self) -> None:
        _IdRef._next_id += 1
        self._id = _IdRef._next_id

    def GetId(self) -> int:
        return self._id


def test_context_menu_item_keeps_its_id_reserved_until_removed(monkeypatch: pytest.MonkeyPatch) -> None:
    id_refs = []  # type: list[weakref.ref[_IdRef]]
    def new_id_ref() -> _IdRef:
        id_ref = _IdRef()
        id_refs.append(weakref.ref(id_ref))
        return id_ref
    monkeypatch.setattr(wx, 'NewIdRef', new_id_ref)

    contextmenus = WxContextMenuApi(Mock())
    menu_id = contextmenus.add('Save Link', lambda element: True, lambda element: None)
    gc.collect()
    [id_ref] = id_refs
    assert id_ref() is not None
    assert id_ref().GetId() == menu_id

    contextmenus.remove(menu_id)
    gc.collect()
    assert id_ref() is None
