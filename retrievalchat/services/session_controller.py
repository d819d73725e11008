"""Conversation session state: request lifecycle, history and focus."""

from __future__ import annotations

import dataclasses
import logging
import threading
from collections.abc import Callable
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from functools import partial

from ..logging import log_call
from .answer_settings import AnswerSettings, GenerationOptions
from .chat_client import AskResponse, ChatError, ChatRequest, ChatTurnPayload
from .examples import ExamplePrompt
from .focus import AnalysisPanelTab, FocusState
from .turn_history import Turn, TurnHistory


logger = logging.getLogger(__name__)


Transport = Callable[[ChatRequest], AskResponse]
Dispatcher = Callable[[Callable[[], None]], None]
SessionListener = Callable[["SessionSnapshot"], None]


class RequestState(Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    FAILED = "failed"


class EmptyQuestionError(ValueError):
    """Raised when a blank question is submitted; no state is changed."""


@dataclass(frozen=True)
class SessionError:
    """The last failed submission, kept for display and retry."""

    question: str
    message: str
    cause: BaseException = field(compare=False, repr=False)

    @classmethod
    def from_exception(cls, question: str, exc: BaseException) -> "SessionError":
        return cls(question=question, message=str(exc) or exc.__class__.__name__, cause=exc)


@dataclass(frozen=True)
class SubmissionOutcome:
    """Result of one submission: either ``response`` or ``error`` is set.

    ``superseded`` is true when a newer submission (or a clear) made this
    result stale, in which case it was not applied to the session.
    """

    token: int
    question: str
    response: AskResponse | None = None
    error: SessionError | None = None
    superseded: bool = False

    @property
    def succeeded(self) -> bool:
        return self.response is not None and self.error is None


@dataclass(frozen=True)
class SessionSnapshot:
    """Everything the presentation layer needs for one render pass."""

    history: tuple[Turn, ...]
    focus: FocusState
    error: SessionError | None
    options: GenerationOptions
    state: RequestState
    last_question: str

    @property
    def is_busy(self) -> bool:
        return self.state is RequestState.SUBMITTING

    @property
    def show_empty_state(self) -> bool:
        return not self.last_question

    @property
    def can_clear(self) -> bool:
        return bool(self.last_question) and not self.is_busy

    @property
    def analysis_turn(self) -> Turn | None:
        """The turn whose inspection panel is open, if any."""
        if not self.focus.is_open or not self.history:
            return None
        return self.history[self.focus.selected_turn_index]

    def followups_for(self, turn_index: int) -> tuple[str, ...]:
        # Follow-ups are only offered on the latest answer.
        if not self.options.suggest_followups or turn_index != len(self.history) - 1:
            return ()
        response = self.history[turn_index].response
        return response.followup_questions if response is not None else ()


def _call_inline(callback: Callable[[], None]) -> None:
    callback()


class SessionController:
    """Drive one conversation session.

    ``submit`` hands the transport call to ``executor`` and returns a future
    that resolves to a :class:`SubmissionOutcome` once the result has been
    applied (or discarded as stale). Every submission carries a monotonic
    token; only the outcome whose token is still current changes the session.
    Completions are routed through ``dispatch`` so a UI can run them on its
    own thread; the default runs them on the worker thread.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        settings: AnswerSettings | None = None,
        executor: Executor | None = None,
        dispatch: Dispatcher | None = None,
    ) -> None:
        self._transport = transport
        self._settings = settings or AnswerSettings()
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="ChatRequest"
        )
        self._dispatch = dispatch or _call_inline
        self._lock = threading.RLock()
        self._history = TurnHistory()
        self._focus = FocusState()
        self._error: SessionError | None = None
        self._state = RequestState.IDLE
        self._last_question = ""
        self._token = 0
        self._pending: Future | None = None
        self._listeners: list[SessionListener] = []
        self._settings.options_changed.connect(self._on_options_changed)

    # ------------------------------------------------------------------
    # Read-only state
    @property
    def settings(self) -> AnswerSettings:
        return self._settings

    @property
    def history(self) -> TurnHistory:
        return self._history

    @property
    def focus(self) -> FocusState:
        return self._focus

    @property
    def error(self) -> SessionError | None:
        return self._error

    @property
    def state(self) -> RequestState:
        return self._state

    @property
    def is_busy(self) -> bool:
        return self._state is RequestState.SUBMITTING

    @property
    def last_question(self) -> str:
        return self._last_question

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            return SessionSnapshot(
                history=self._history.snapshot(),
                focus=self._focus,
                error=self._error,
                options=self._settings.options,
                state=self._state,
                last_question=self._last_question,
            )

    # ------------------------------------------------------------------
    # Listeners
    def add_listener(self, listener: SessionListener) -> Callable[[], None]:
        """Subscribe to session changes and return an unsubscribe callable."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Session listener failed", extra={"state": snapshot.state.value})

    def _on_options_changed(self, _options: GenerationOptions) -> None:
        self._notify()

    # ------------------------------------------------------------------
    # Request lifecycle
    @log_call(logger=logger, include_args=False)
    def submit(self, question: str) -> Future:
        if not isinstance(question, str) or not question.strip():
            raise EmptyQuestionError("Question must not be empty")

        with self._lock:
            self._token += 1
            token = self._token
            superseded = self._pending
            self._pending = None
            self._error = None
            self._focus = self._focus.closed()
            self._last_question = question
            self._state = RequestState.SUBMITTING
            chat_request = self._build_request(question)
        logger.info(
            "Submitting question",
            extra={
                "token": token,
                "question_preview": question.strip()[:120],
                "history_length": len(chat_request.history) - 1,
            },
        )
        if superseded is not None and superseded.cancel():
            logger.debug("Cancelled queued submission", extra={"token": token - 1})
        self._notify()

        outcome_future: Future = Future()
        outcome_future.set_running_or_notify_cancel()
        worker = self._executor.submit(self._run_transport, token, question, chat_request)
        with self._lock:
            if token == self._token and not worker.done():
                self._pending = worker
        worker.add_done_callback(partial(self._on_worker_done, token, question, outcome_future))
        return outcome_future

    def submit_example(self, example: ExamplePrompt) -> Future:
        return self.submit(example.value)

    @log_call(logger=logger, include_args=False)
    def retry(self) -> Future:
        """Resubmit the last question unchanged."""

        if not self._last_question:
            raise EmptyQuestionError("There is no question to retry")
        logger.info("Retrying last question", extra={"previous_state": self._state.value})
        return self.submit(self._last_question)

    @log_call(logger=logger)
    def clear(self) -> None:
        """Reset the conversation; any pending submission becomes stale."""

        with self._lock:
            self._token += 1
            pending = self._pending
            self._pending = None
            self._history.clear()
            self._error = None
            self._focus = FocusState()
            self._last_question = ""
            self._state = RequestState.IDLE
        if pending is not None:
            pending.cancel()
        logger.info("Conversation cleared")
        self._notify()

    def shutdown(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)

    def _build_request(self, question: str) -> ChatRequest:
        history = self._history.as_payload()
        history.append(ChatTurnPayload(user=question, bot=None))
        return ChatRequest(
            history=tuple(history),
            overrides=self._settings.options.to_overrides(),
        )

    def _run_transport(
        self, token: int, question: str, chat_request: ChatRequest
    ) -> SubmissionOutcome:
        try:
            response = self._transport(chat_request)
        except ChatError as exc:
            logger.warning(
                "Chat request failed",
                extra={"token": token, "error_type": type(exc).__name__, "error": str(exc)},
            )
            return SubmissionOutcome(
                token, question, error=SessionError.from_exception(question, exc)
            )
        except Exception as exc:
            logger.exception("Unexpected transport failure", extra={"token": token})
            return SubmissionOutcome(
                token, question, error=SessionError.from_exception(question, exc)
            )
        if not isinstance(response, AskResponse):
            exc = ChatError(f"Transport returned {type(response).__name__}, expected AskResponse")
            logger.error("Invalid transport response", extra={"token": token})
            return SubmissionOutcome(
                token, question, error=SessionError.from_exception(question, exc)
            )
        return SubmissionOutcome(token, question, response=response)

    def _on_worker_done(
        self, token: int, question: str, outcome_future: Future, worker: Future
    ) -> None:
        self._dispatch(partial(self._complete, token, question, outcome_future, worker))

    def _complete(
        self, token: int, question: str, outcome_future: Future, worker: Future
    ) -> None:
        if worker.cancelled():
            outcome = SubmissionOutcome(token, question)
        else:
            outcome = worker.result()

        applied = False
        try:
            with self._lock:
                if (
                    not worker.cancelled()
                    and token == self._token
                    and self._state is RequestState.SUBMITTING
                ):
                    if self._pending is worker:
                        self._pending = None
                    if outcome.error is None:
                        index = self._history.append(question, outcome.response)
                        self._state = RequestState.IDLE
                        logger.info("Answer applied", extra={"token": token, "turn_index": index})
                    else:
                        self._error = outcome.error
                        self._state = RequestState.FAILED
                        logger.info("Submission failed", extra={"token": token})
                    applied = True
            if applied:
                self._notify()
        finally:
            # The caller's future always resolves, even if applying failed.
            if not applied:
                logger.debug("Discarding superseded submission", extra={"token": token})
                outcome = dataclasses.replace(outcome, superseded=True)
            outcome_future.set_result(outcome)

    # ------------------------------------------------------------------
    # Focus
    def show_citation(self, citation: str, turn_index: int) -> None:
        with self._lock:
            self._check_turn_index(turn_index)
            self._focus = self._focus.show_citation(citation, turn_index)
        logger.debug(
            "Citation toggled",
            extra={"citation": citation, "turn_index": turn_index, "panel": self._focus.active_panel.value},
        )
        self._notify()

    def toggle_tab(self, panel: AnalysisPanelTab, turn_index: int) -> None:
        with self._lock:
            self._check_turn_index(turn_index)
            self._focus = self._focus.toggle_tab(panel, turn_index)
        logger.debug(
            "Analysis tab toggled",
            extra={"turn_index": turn_index, "panel": self._focus.active_panel.value},
        )
        self._notify()

    def toggle_selected_tab(self, panel: AnalysisPanelTab) -> None:
        """Switch the open panel's tab for the currently selected turn."""
        self.toggle_tab(panel, self._focus.selected_turn_index)

    def _check_turn_index(self, turn_index: int) -> None:
        if not 0 <= turn_index < len(self._history):
            raise IndexError(f"No completed turn at index {turn_index}")


__all__ = [
    "EmptyQuestionError",
    "RequestState",
    "SessionController",
    "SessionError",
    "SessionSnapshot",
    "SubmissionOutcome",
]
