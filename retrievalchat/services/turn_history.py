"""Ordered record of completed question/answer turns."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import overload

from .chat_client import AskResponse, ChatTurnPayload


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Turn:
    """A question and its answer; ``response`` is ``None`` while pending."""

    question: str
    response: AskResponse | None = None

    @property
    def is_pending(self) -> bool:
        return self.response is None

    def to_payload(self) -> ChatTurnPayload:
        return ChatTurnPayload(
            user=self.question,
            bot=self.response.answer if self.response is not None else None,
        )


class TurnHistory(Sequence[Turn]):
    """Append-only list of completed turns.

    Indices never change once assigned; the only removal is :meth:`clear`.
    """

    def __init__(self) -> None:
        self._turns: list[Turn] = []

    def append(self, question: str, response: AskResponse) -> int:
        if response is None:
            raise ValueError("Only completed turns can be added to the history")
        self._turns.append(Turn(question=question, response=response))
        index = len(self._turns) - 1
        logger.debug("Turn appended", extra={"turn_index": index})
        return index

    def clear(self) -> None:
        if self._turns:
            logger.debug("Turn history cleared", extra={"turn_count": len(self._turns)})
        self._turns.clear()

    def last_question(self) -> str:
        return self._turns[-1].question if self._turns else ""

    def as_payload(self) -> list[ChatTurnPayload]:
        return [turn.to_payload() for turn in self._turns]

    def snapshot(self) -> tuple[Turn, ...]:
        return tuple(self._turns)

    # Sequence protocol -------------------------------------------------
    @overload
    def __getitem__(self, index: int) -> Turn: ...

    @overload
    def __getitem__(self, index: slice) -> Sequence[Turn]: ...

    def __getitem__(self, index):
        return self._turns[index]

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(self._turns)

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"TurnHistory(turns={len(self._turns)})"


__all__ = ["Turn", "TurnHistory"]
