"""Multi-select over the currently loaded page. Drives bulk transitions."""

from __future__ import annotations

from typing import Iterable


class SelectionModel:
    """
    A set of selected entity ids, bounded by the current page.

    Select-all toggles between empty and every id on the page; ids outside
    the loaded page are never selected.
    """

    def __init__(self, page_ids: Iterable[str] = ()) -> None:
        self._page_ids: list[str] = list(dict.fromkeys(page_ids))
        self._selected: set[str] = set()

    @property
    def page_ids(self) -> list[str]:
        return list(self._page_ids)

    @property
    def selected(self) -> list[str]:
        """Selected ids in page order."""
        return [i for i in self._page_ids if i in self._selected]

    def __len__(self) -> int:
        return len(self._selected)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._selected

    def __bool__(self) -> bool:
        return bool(self._selected)

    def set_page(self, page_ids: Iterable[str]) -> None:
        """Replace the page and prune selections that fell off it."""
        self._page_ids = list(dict.fromkeys(page_ids))
        self.prune()

    def prune(self) -> None:
        self._selected &= set(self._page_ids)

    def toggle(self, entity_id: str) -> bool:
        """Flip one id. Returns whether it is now selected."""
        if entity_id in self._selected:
            self._selected.discard(entity_id)
            return False
        if entity_id not in self._page_ids:
            return False
        self._selected.add(entity_id)
        return True

    @property
    def is_all_selected(self) -> bool:
        return bool(self._page_ids) and len(self._selected) == len(self._page_ids)

    def toggle_all(self) -> None:
        if self.is_all_selected:
            self._selected.clear()
        else:
            self._selected = set(self._page_ids)

    def clear(self) -> None:
        self._selected.clear()
