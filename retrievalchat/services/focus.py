"""Which turn is selected and which inspection panel is open."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum


class AnalysisPanelTab(Enum):
    """Inspection panels that can be opened for an answered turn."""

    NONE = "none"
    CITATION = "citation"
    THOUGHT_PROCESS = "thought_process"
    SUPPORTING_CONTENT = "supporting_content"


_TOGGLE_TABS = frozenset({AnalysisPanelTab.THOUGHT_PROCESS, AnalysisPanelTab.SUPPORTING_CONTENT})


@dataclass(frozen=True)
class FocusState:
    """Immutable focus value; the toggles return a new instance.

    Repeating the same toggle closes the panel. ``selected_turn_index``
    always follows the turn the user last interacted with, even when the
    toggle closes the panel.
    """

    selected_turn_index: int = 0
    active_panel: AnalysisPanelTab = AnalysisPanelTab.NONE
    active_citation: str | None = None

    def __post_init__(self) -> None:
        if self.selected_turn_index < 0:
            raise ValueError("selected_turn_index must not be negative")
        if self.active_citation is not None and self.active_panel is not AnalysisPanelTab.CITATION:
            raise ValueError("active_citation requires the citation panel")

    @property
    def is_open(self) -> bool:
        return self.active_panel is not AnalysisPanelTab.NONE

    def is_selected(self, turn_index: int) -> bool:
        """Whether ``turn_index`` should be highlighted (selected with a panel open)."""
        return self.is_open and self.selected_turn_index == turn_index

    def show_citation(self, citation: str, turn_index: int) -> "FocusState":
        if (
            self.active_panel is AnalysisPanelTab.CITATION
            and self.active_citation == citation
            and self.selected_turn_index == turn_index
        ):
            return FocusState(selected_turn_index=turn_index)
        return FocusState(
            selected_turn_index=turn_index,
            active_panel=AnalysisPanelTab.CITATION,
            active_citation=citation,
        )

    def toggle_tab(self, panel: AnalysisPanelTab, turn_index: int) -> "FocusState":
        if panel not in _TOGGLE_TABS:
            raise ValueError(f"{panel!r} cannot be toggled; use show_citation for citations")
        if self.active_panel is panel and self.selected_turn_index == turn_index:
            return FocusState(selected_turn_index=turn_index)
        return FocusState(selected_turn_index=turn_index, active_panel=panel)

    def closed(self) -> "FocusState":
        if not self.is_open:
            return self
        return dataclasses.replace(self, active_panel=AnalysisPanelTab.NONE, active_citation=None)


__all__ = ["AnalysisPanelTab", "FocusState"]
