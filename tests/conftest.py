from __future__ import annotations

import sys
from concurrent.futures import Executor, Future
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from retrievalchat.services.answer_settings import AnswerSettings
from retrievalchat.services.chat_client import AskResponse, ChatRequest
from retrievalchat.services.session_controller import SessionController


@dataclass
class Job:
    """A unit of work held by :class:`ManualExecutor` until a test runs it."""

    fn: Callable[..., Any]
    args: tuple[Any, ...]
    future: Future = field(default_factory=Future)

    def start(self) -> bool:
        return self.future.set_running_or_notify_cancel()

    def finish(self) -> None:
        try:
            result = self.fn(*self.args)
        except BaseException as exc:  # pragma: no cover - surfaced through the future
            self.future.set_exception(exc)
        else:
            self.future.set_result(result)

    def run(self) -> None:
        if self.start():
            self.finish()


class ManualExecutor(Executor):
    """Executor whose jobs only run when the test says so."""

    def __init__(self) -> None:
        self.jobs: list[Job] = []

    def submit(self, fn, /, *args, **kwargs):  # type: ignore[override]
        job = Job(fn=lambda *a: fn(*a, **kwargs), args=args)
        self.jobs.append(job)
        return job.future

    def run_all(self) -> None:
        for job in list(self.jobs):
            if not job.future.done() and not job.future.running():
                job.run()


class InlineExecutor(Executor):
    """Executor that runs work immediately on the calling thread."""

    def submit(self, fn, /, *args, **kwargs):  # type: ignore[override]
        future: Future = Future()
        future.set_running_or_notify_cancel()
        try:
            future.set_result(fn(*args, **kwargs))
        except BaseException as exc:  # pragma: no cover - surfaced through the future
            future.set_exception(exc)
        return future


class ScriptedTransport:
    """Transport stub that replays scripted answers or errors in order."""

    def __init__(self, *results: AskResponse | BaseException) -> None:
        self.results = list(results)
        self.requests: list[ChatRequest] = []

    def __call__(self, chat_request: ChatRequest) -> AskResponse:
        self.requests.append(chat_request)
        if self.results:
            result = self.results.pop(0)
        else:
            result = AskResponse(answer=f"Echo: {chat_request.question}")
        if isinstance(result, BaseException):
            raise result
        return result

    @property
    def questions(self) -> list[str]:
        return [chat_request.question for chat_request in self.requests]


@pytest.fixture()
def manual_executor() -> ManualExecutor:
    return ManualExecutor()


@pytest.fixture()
def transport() -> ScriptedTransport:
    return ScriptedTransport()


@pytest.fixture()
def settings() -> AnswerSettings:
    return AnswerSettings()


@pytest.fixture()
def controller(transport: ScriptedTransport, settings: AnswerSettings) -> SessionController:
    return SessionController(transport, settings=settings, executor=InlineExecutor())


@pytest.fixture()
def answered_controller(controller: SessionController) -> SessionController:
    """Controller holding two completed turns."""

    controller.submit("First question").result()
    controller.submit("Second question").result()
    return controller
