"""Line-oriented front end for a chat session."""

from __future__ import annotations

import logging
import shlex
import sys
from pathlib import Path
from typing import Callable, TextIO

from ..services.chat_client import ChatClient, parse_answer
from ..services.examples import EXAMPLE_PROMPTS
from ..services.focus import AnalysisPanelTab
from ..services.session_controller import (
    EmptyQuestionError,
    SessionController,
    SessionSnapshot,
)


logger = logging.getLogger(__name__)


HELP_TEXT = """Commands:
  /retry                 resend the last question
  /clear                 start a new conversation
  /set <field> <value>   change an answer setting
  /settings              show the answer settings
  /cite <n> [turn]       toggle citation n of a turn
  /thoughts [turn]       toggle the thought process of a turn
  /support [turn]        toggle the supporting content of a turn
  /example <n>           ask example question n
  /followup <n>          ask follow-up question n of the latest answer
  /quit                  exit"""


class ConsoleSession:
    """Read questions and commands, print answers and inspection panels."""

    def __init__(
        self,
        controller: SessionController,
        client: ChatClient,
        *,
        input_func: Callable[[str], str] = input,
        output: TextIO | None = None,
        log_path: Path | None = None,
    ) -> None:
        self.controller = controller
        self.client = client
        self._input = input_func
        self._out = output or sys.stdout
        self._log_path = log_path

    def run(self) -> None:
        self._print_empty_state()
        while True:
            try:
                line = self._input("> ")
            except (EOFError, KeyboardInterrupt):
                self._write("")
                return
            if not self.handle_line(line):
                return

    def handle_line(self, line: str) -> bool:
        """Process one line of input; returns ``False`` when the user quits."""

        text = line.strip()
        if not text:
            return True
        if not text.startswith("/"):
            self._ask(lambda: self.controller.submit(text))
            return True

        try:
            command, *args = shlex.split(text)
        except ValueError:
            command, args = text.split()[0], text.split()[1:]
        try:
            return self._dispatch(command.lower(), args)
        except (IndexError, ValueError) as exc:
            self._write(f"! {exc}")
            return True

    # ------------------------------------------------------------------
    def _dispatch(self, command: str, args: list[str]) -> bool:
        if command in {"/quit", "/exit"}:
            return False
        if command == "/help":
            self._write(HELP_TEXT)
            if self._log_path is not None:
                self._write(f"Log file: {self._log_path}")
        elif command == "/retry":
            self._ask(self.controller.retry)
        elif command == "/clear":
            self.controller.clear()
            self._print_empty_state()
        elif command == "/set":
            if len(args) < 2:
                raise ValueError("usage: /set <field> <value>")
            self.controller.settings.set_field(args[0], " ".join(args[1:]))
            self._print_settings()
        elif command == "/settings":
            self._print_settings()
        elif command == "/example":
            example = EXAMPLE_PROMPTS[_position(args, "example")]
            self._ask(lambda: self.controller.submit_example(example))
        elif command == "/followup":
            snapshot = self.controller.snapshot()
            if not snapshot.history:
                raise ValueError("There is no answer to follow up on")
            followups = snapshot.followups_for(len(snapshot.history) - 1)
            question = followups[_position(args, "follow-up")]
            self._ask(lambda: self.controller.submit(question))
        elif command == "/cite":
            turn_index = self._turn_index(args[1:])
            response = self.controller.history[turn_index].response
            citation = response.citations[_position(args, "citation")]
            self.controller.show_citation(citation, turn_index)
            self._print_panel()
        elif command == "/thoughts":
            self.controller.toggle_tab(AnalysisPanelTab.THOUGHT_PROCESS, self._turn_index(args))
            self._print_panel()
        elif command == "/support":
            self.controller.toggle_tab(
                AnalysisPanelTab.SUPPORTING_CONTENT, self._turn_index(args)
            )
            self._print_panel()
        else:
            self._write(f"Unknown command {command}. Type /help for a list.")
        return True

    def _turn_index(self, args: list[str]) -> int:
        if args:
            return _position(args, "turn")
        return len(self.controller.history) - 1

    def _ask(self, submit: Callable[[], object]) -> None:
        try:
            future = submit()
        except EmptyQuestionError as exc:
            self._write(f"! {exc}")
            return
        self._write("...")
        outcome = future.result()
        if not outcome.superseded:
            self._print_latest(self.controller.snapshot())

    # ------------------------------------------------------------------
    def _print_empty_state(self) -> None:
        self._write("Ask anything or try an example:")
        for number, example in enumerate(EXAMPLE_PROMPTS, start=1):
            self._write(f"  {number}. {example.text}")
        self._write("Type /help for commands.")

    def _print_latest(self, snapshot: SessionSnapshot) -> None:
        if snapshot.error is not None:
            self._write(f"Error: {snapshot.error.message}")
            self._write("Type /retry to try again.")
            return
        index = len(snapshot.history) - 1
        response = snapshot.history[index].response
        parsed = parse_answer(response.answer)
        self._write(parsed.text)
        for number, citation in enumerate(response.citations, start=1):
            self._write(f"  [{number}] {citation}")
        for number, question in enumerate(snapshot.followups_for(index), start=1):
            self._write(f"  Follow-up {number}: {question}")

    def _print_panel(self) -> None:
        snapshot = self.controller.snapshot()
        turn = snapshot.analysis_turn
        if turn is None:
            self._write("(panel closed)")
            return
        panel = snapshot.focus.active_panel
        response = turn.response
        if panel is AnalysisPanelTab.CITATION:
            self._write(self.client.citation_url(snapshot.focus.active_citation))
        elif panel is AnalysisPanelTab.THOUGHT_PROCESS:
            self._write(response.thoughts or "(no thought process)")
        else:
            for point in response.data_points or ("(no supporting content)",):
                self._write(point)

    def _print_settings(self) -> None:
        for name, value in self.controller.settings.as_dict().items():
            self._write(f"  {name} = {value}")
        if not self.controller.settings.semantic_captions_enabled:
            self._write("  (semantic captions need the semantic ranker)")

    def _write(self, text: str) -> None:
        print(text, file=self._out)


def _position(args: list[str], what: str) -> int:
    """Convert the 1-based number in ``args[0]`` to a list index."""

    if not args:
        raise ValueError(f"Missing {what} number")
    number = int(args[0])
    if number < 1:
        raise ValueError(f"{what.capitalize()} numbers start at 1")
    return number - 1


__all__ = ["ConsoleSession", "HELP_TEXT"]
