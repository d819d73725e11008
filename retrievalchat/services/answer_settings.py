"""Reactive answer-generation settings shared between the UI and requests."""

from __future__ import annotations

import dataclasses
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from PyQt6.QtCore import QObject, pyqtSignal


logger = logging.getLogger(__name__)


MIN_RETRIEVAL_COUNT = 1
MAX_RETRIEVAL_COUNT = 50
DEFAULT_RETRIEVAL_COUNT = 3

_TRUE_STRINGS = {"true", "yes", "on", "1"}
_FALSE_STRINGS = {"false", "no", "off", "0"}
_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


class ConversationStyle(Enum):
    CREATIVE = "Creative"
    BALANCE = "Balance"
    PRECISE = "Precise"


class SearchIndex(Enum):
    GROUP_1 = "Group 1"
    GROUP_2 = "Group 2"
    GROUP_3 = "Group 3"
    GROUP_4 = "Group 4"
    GROUP_5 = "Group 5"
    DEFAULT = "Default"


@dataclass(frozen=True)
class GenerationOptions:
    """Snapshot of the settings sent along with every question."""

    prompt_template: str = ""
    retrieval_count: int = DEFAULT_RETRIEVAL_COUNT
    use_semantic_ranker: bool = True
    use_semantic_captions: bool = False
    exclude_category: str = ""
    stock_filter: str = ""
    suggest_followups: bool = False
    conversation_style: ConversationStyle = ConversationStyle.BALANCE
    index: SearchIndex = SearchIndex.DEFAULT

    def to_overrides(self) -> dict[str, Any]:
        """Return request overrides with empty strings mapped to ``None``."""

        return {
            "prompt_template": self.prompt_template or None,
            "exclude_category": self.exclude_category or None,
            "stock_filter": self.stock_filter or None,
            "top": self.retrieval_count,
            "semantic_ranker": self.use_semantic_ranker,
            "semantic_captions": self.use_semantic_captions,
            "suggest_followup_questions": self.suggest_followups,
            "conversation_style": self.conversation_style.value,
            "index": self.index.value,
        }

    def as_dict(self) -> dict[str, Any]:
        data = dataclasses.asdict(self)
        data["conversation_style"] = self.conversation_style.value
        data["index"] = self.index.value
        return data


_STRING_FIELDS = frozenset({"prompt_template", "exclude_category", "stock_filter"})
_BOOL_FIELDS = frozenset({"use_semantic_ranker", "use_semantic_captions", "suggest_followups"})
_ENUM_FIELDS: dict[str, type[Enum]] = {
    "conversation_style": ConversationStyle,
    "index": SearchIndex,
}
_ALIASES = {
    "retrieve_count": "retrieval_count",
    "top": "retrieval_count",
    "use_suggest_followup_questions": "suggest_followups",
    "suggest_followup_questions": "suggest_followups",
    "selected_conversation_style": "conversation_style",
    "selected_index": "index",
}
FIELD_NAMES = tuple(field.name for field in dataclasses.fields(GenerationOptions))


def _canonical_field(name: str) -> str:
    snake = _CAMEL_BOUNDARY.sub("_", str(name).strip()).lower()
    return _ALIASES.get(snake, snake)


def _parse_count(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, str):
        try:
            value = int(raw.strip())
        except ValueError:
            return None
    else:
        return None
    return max(MIN_RETRIEVAL_COUNT, min(MAX_RETRIEVAL_COUNT, value))


def _parse_bool(raw: Any) -> bool | None:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        lowered = raw.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    return None


def _parse_text(raw: Any) -> str | None:
    if raw is None:
        return ""
    if not isinstance(raw, str):
        return None
    return raw if raw.strip() else ""


def _parse_enum(enum_type: type[Enum], raw: Any) -> Enum | None:
    if isinstance(raw, enum_type):
        return raw
    if not isinstance(raw, str):
        return None
    wanted = raw.replace(" ", "").replace("_", "").lower()
    for member in enum_type:
        for candidate in (member.value, member.name):
            if candidate.replace(" ", "").replace("_", "").lower() == wanted:
                return member
    return None


class AnswerSettings(QObject):
    """Hold the current :class:`GenerationOptions` and validate every change.

    Invalid input never raises: it is dropped and the previous value kept.
    """

    option_changed = pyqtSignal(str, object)
    options_changed = pyqtSignal(object)

    def __init__(self, options: GenerationOptions | None = None) -> None:
        super().__init__()
        self._options = options or GenerationOptions()

    # ------------------------------------------------------------------
    @property
    def options(self) -> GenerationOptions:
        return self._options

    @property
    def semantic_captions_enabled(self) -> bool:
        """Captions only take effect when the semantic ranker is on."""
        return self._options.use_semantic_ranker

    # ------------------------------------------------------------------
    def set_field(self, name: str, raw_value: Any) -> None:
        field_name = _canonical_field(name)
        if field_name not in FIELD_NAMES:
            logger.warning("Ignoring unknown answer setting", extra={"field": name})
            return

        value = self._normalize(field_name, raw_value)
        if value is None:
            logger.debug(
                "Rejected answer setting value",
                extra={"field": field_name, "value": repr(raw_value)[:80]},
            )
            return
        if getattr(self._options, field_name) == value:
            return

        self._options = dataclasses.replace(self._options, **{field_name: value})
        logger.info(
            "Answer setting changed",
            extra={"field": field_name, "value": getattr(value, "value", value)},
        )
        self.option_changed.emit(field_name, value)
        self.options_changed.emit(self._options)

    def update(self, values: Mapping[str, Any]) -> None:
        """Apply several fields through :meth:`set_field`."""

        for name, raw_value in values.items():
            self.set_field(name, raw_value)

    def reset(self) -> None:
        defaults = GenerationOptions()
        if defaults == self._options:
            return
        self._options = defaults
        logger.info("Answer settings reset to defaults")
        self.options_changed.emit(self._options)

    def as_dict(self) -> dict[str, Any]:
        return self._options.as_dict()

    # ------------------------------------------------------------------
    @staticmethod
    def _normalize(field_name: str, raw_value: Any) -> Any:
        if field_name == "retrieval_count":
            return _parse_count(raw_value)
        if field_name in _BOOL_FIELDS:
            return _parse_bool(raw_value)
        if field_name in _STRING_FIELDS:
            return _parse_text(raw_value)
        return _parse_enum(_ENUM_FIELDS[field_name], raw_value)


__all__ = [
    "AnswerSettings",
    "ConversationStyle",
    "FIELD_NAMES",
    "GenerationOptions",
    "MAX_RETRIEVAL_COUNT",
    "MIN_RETRIEVAL_COUNT",
    "SearchIndex",
]
