"""
Domain service: land-cover filter selection.
"""
import logging
from typing import FrozenSet, Iterable, List


logger = logging.getLogger(__name__)


class FilterState:
    """
    The set of land-cover labels currently selected.

    Starts with the whole universe selected. An empty selection is valid and
    means every area has no data.
    """

    def __init__(self, universe: Iterable[str]):
        self.universe: List[str] = list(dict.fromkeys(universe))
        self._selected: FrozenSet[str] = frozenset(self.universe)
        self.version = 0

    @property
    def selected(self) -> FrozenSet[str]:
        return self._selected

    def set_selected(self, labels: Iterable[str]) -> FrozenSet[str]:
        """
        Replace the selection.

        Args:
            labels: Labels to select; labels outside the universe are ignored

        Returns:
            The new selection
        """
        requested = set(labels)
        unknown = requested.difference(self.universe)
        if unknown:
            logger.warning(f"Ignoring unknown land-cover labels: {sorted(unknown)}")
        self._selected = frozenset(requested.intersection(self.universe))
        self.version += 1
        return self._selected

    def toggle(self, label: str) -> FrozenSet[str]:
        """Select a label if unselected, unselect it otherwise."""
        if label in self._selected:
            return self.set_selected(self._selected - {label})
        return self.set_selected(self._selected | {label})

    def is_all_selected(self) -> bool:
        return len(self._selected) == len(self.universe)

    def is_none_selected(self) -> bool:
        return not self._selected

    def summary_label(self) -> str:
        """Text of the filter button."""
        if self.is_all_selected():
            return "All types"
        if self.is_none_selected():
            return "None"
        return f"{len(self._selected)} types"
