"""Qt adapter exposing a :class:`SessionController` through signals and slots."""

from __future__ import annotations

import logging
from concurrent.futures import Executor
from typing import Any, Callable

from PyQt6.QtCore import QObject, pyqtSignal, pyqtSlot

from ..services.answer_settings import AnswerSettings
from ..services.focus import AnalysisPanelTab
from ..services.session_controller import (
    EmptyQuestionError,
    SessionController,
    SessionSnapshot,
    Transport,
)


logger = logging.getLogger(__name__)


class SessionBridge(QObject):
    """Run request completions on the thread that owns the bridge.

    Widgets connect to ``session_changed`` and call the slots below in
    response to user gestures; they keep no session state of their own.
    """

    session_changed = pyqtSignal(object)
    _completion_posted = pyqtSignal(object)

    def __init__(
        self,
        transport: Transport,
        *,
        settings: AnswerSettings | None = None,
        executor: Executor | None = None,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        # Emitted from worker threads; the default connection queues the
        # callback onto this object's thread.
        self._completion_posted.connect(self._run_completion)
        self.controller = SessionController(
            transport,
            settings=settings,
            executor=executor,
            dispatch=self._completion_posted.emit,
        )
        self._unsubscribe = self.controller.add_listener(self._forward_snapshot)

    @property
    def snapshot(self) -> SessionSnapshot:
        return self.controller.snapshot()

    # ------------------------------------------------------------------
    @pyqtSlot(str, result=bool)
    def submit(self, question: str) -> bool:
        """Submit ``question``; returns ``False`` when it was blank."""

        try:
            self.controller.submit(question)
        except EmptyQuestionError:
            logger.debug("Ignored blank question from UI")
            return False
        return True

    @pyqtSlot(result=bool)
    def retry(self) -> bool:
        try:
            self.controller.retry()
        except EmptyQuestionError:
            return False
        return True

    @pyqtSlot()
    def clear(self) -> None:
        self.controller.clear()

    @pyqtSlot(str, int)
    def show_citation(self, citation: str, turn_index: int) -> None:
        self.controller.show_citation(citation, turn_index)

    def toggle_tab(self, panel: AnalysisPanelTab, turn_index: int) -> None:
        self.controller.toggle_tab(panel, turn_index)

    def set_field(self, name: str, value: Any) -> None:
        self.controller.settings.set_field(name, value)

    def close(self) -> None:
        self._unsubscribe()
        self.controller.shutdown()

    # ------------------------------------------------------------------
    def _forward_snapshot(self, snapshot: SessionSnapshot) -> None:
        self.session_changed.emit(snapshot)

    @pyqtSlot(object)
    def _run_completion(self, callback: Callable[[], None]) -> None:
        callback()


__all__ = ["SessionBridge"]
