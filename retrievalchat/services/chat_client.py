"""HTTP client for the retrieval-augmented chat backend."""

from __future__ import annotations

import http.client
import json
import logging
import re
import socket
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from urllib import error, parse, request

from ..logging import log_call


logger = logging.getLogger(__name__)


DEFAULT_BASE_URL = "http://127.0.0.1:5000"
CHAT_PATH = "/chat"
CONTENT_PATH = "/content/"
RETRYABLE_STATUSES = frozenset({408, 429, 500, 502, 503, 504})

_FOLLOWUP_PATTERN = re.compile(r"<<([^>]+)>>")
_CITATION_PATTERN = re.compile(r"\[([^\]]+)\]")


class ChatError(RuntimeError):
    """Base exception for chat backend failures."""


class ChatTransportError(ChatError):
    """Raised when the chat backend cannot be reached."""


class ChatServiceError(ChatError):
    """Raised when the backend answers with an error or an unusable body."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class Approach(Enum):
    """Answering strategies understood by the backend."""

    RETRIEVE_THEN_READ = "rtr"
    READ_RETRIEVE_READ = "rrr"
    READ_DECOMPOSE_ASK = "rda"


@dataclass(frozen=True)
class ChatTurnPayload:
    """One ``user``/``bot`` pair of the request history."""

    user: str
    bot: str | None = None

    def to_dict(self) -> dict[str, str]:
        data = {"user": self.user}
        if self.bot is not None:
            data["bot"] = self.bot
        return data


@dataclass(frozen=True)
class ChatRequest:
    """Request body for the ``/chat`` endpoint."""

    history: tuple[ChatTurnPayload, ...]
    overrides: Mapping[str, Any] = field(default_factory=dict)
    approach: Approach = Approach.READ_RETRIEVE_READ

    @property
    def question(self) -> str:
        """The pending question, i.e. the last history entry."""
        return self.history[-1].user if self.history else ""

    def to_dict(self) -> dict[str, Any]:
        # Unset overrides are dropped rather than sent as null or "".
        return {
            "history": [turn.to_dict() for turn in self.history],
            "approach": self.approach.value,
            "overrides": {
                key: value for key, value in self.overrides.items() if value is not None
            },
        }


@dataclass(frozen=True)
class ParsedAnswer:
    text: str
    citations: tuple[str, ...]
    followup_questions: tuple[str, ...]


def parse_answer(answer: str) -> ParsedAnswer:
    """Split follow-up questions and citation markers out of ``answer``.

    Follow-ups are written as ``<<question>>`` and removed from the text.
    Citations are written as ``[source]``; they stay in the text and are
    returned once each, in order of first appearance.
    """

    followups = tuple(
        match.strip() for match in _FOLLOWUP_PATTERN.findall(answer) if match.strip()
    )
    text = _FOLLOWUP_PATTERN.sub("", answer).strip()
    citations: list[str] = []
    for match in _CITATION_PATTERN.findall(text):
        citation = match.strip()
        if citation and citation not in citations:
            citations.append(citation)
    return ParsedAnswer(text=text, citations=tuple(citations), followup_questions=followups)


@dataclass(frozen=True)
class AskResponse:
    """Answer returned by the backend for one question."""

    answer: str
    citations: tuple[str, ...] = ()
    followup_questions: tuple[str, ...] = ()
    thoughts: str | None = None
    data_points: tuple[str, ...] = ()
    raw: Mapping[str, Any] | None = field(default=None, compare=False, repr=False)

    @classmethod
    def from_payload(cls, data: Any) -> "AskResponse":
        if not isinstance(data, dict):
            raise ChatServiceError("Chat response is not a JSON object")
        answer = data.get("answer")
        if not isinstance(answer, str):
            raise ChatServiceError("Chat response missing answer")
        thoughts = data.get("thoughts")
        raw_points = data.get("data_points")
        if isinstance(raw_points, Sequence) and not isinstance(raw_points, str):
            data_points = tuple(str(point) for point in raw_points)
        else:
            data_points = ()
        parsed = parse_answer(answer)
        return cls(
            answer=answer,
            citations=parsed.citations,
            followup_questions=parsed.followup_questions,
            thoughts=thoughts if isinstance(thoughts, str) and thoughts else None,
            data_points=data_points,
            raw=data,
        )


class ChatClient:
    """Post chat requests to the backend and decode its answers.

    Instances are callable, so a client can be handed to
    :class:`~retrievalchat.services.session_controller.SessionController`
    as its transport.
    """

    @log_call(logger=logger)
    def __init__(
        self,
        *,
        base_url: str = DEFAULT_BASE_URL,
        max_retries: int = 1,
        retry_backoff: float = 0.5,
        timeout: float | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/") or DEFAULT_BASE_URL
        self.max_retries = max(max_retries, 0)
        self.retry_backoff = retry_backoff
        self.timeout = timeout

    @property
    def base_url(self) -> str:
        return self._base_url

    @log_call(logger=logger)
    def configure(
        self,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
    ) -> None:
        """Update connection settings without recreating the client."""

        if base_url is not None:
            self._base_url = base_url.rstrip("/") or DEFAULT_BASE_URL
        if timeout is not None:
            self.timeout = timeout if timeout > 0 else None

    def citation_url(self, citation: str) -> str:
        return f"{self._base_url}{CONTENT_PATH}{parse.quote(citation)}"

    def __call__(self, chat_request: ChatRequest) -> AskResponse:
        return self.chat(chat_request)

    @log_call(logger=logger, include_args=False)
    def chat(self, chat_request: ChatRequest) -> AskResponse:
        """Send ``chat_request`` to ``/chat`` and return the parsed answer."""

        payload = chat_request.to_dict()
        logger.info(
            "Dispatching chat request",
            extra={
                "history_length": len(payload["history"]),
                "approach": payload["approach"],
                "override_keys": sorted(payload["overrides"]),
                "base_url": self._base_url,
            },
        )
        status, data = self._post_json(CHAT_PATH, payload)
        if isinstance(data, dict) and data.get("error"):
            raise ChatServiceError(str(data["error"]), status=status)
        response = AskResponse.from_payload(data)
        logger.info(
            "Chat response received",
            extra={
                "answer_length": len(response.answer),
                "citation_count": len(response.citations),
                "followup_count": len(response.followup_questions),
            },
        )
        return response

    def _post_json(self, path: str, payload: dict[str, Any]) -> tuple[int, Any]:
        url = f"{self._base_url}{path}"
        body = json.dumps(payload).encode("utf-8")
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        last_error: ChatError | None = None
        for attempt in range(self.max_retries + 1):
            request_obj = request.Request(url, data=body, headers=headers, method="POST")
            retryable = True
            try:
                logger.debug("Chat request attempt", extra={"url": url, "attempt": attempt + 1})
                with request.urlopen(request_obj, timeout=self.timeout) as response:
                    status = response.getcode()
                    raw = response.read()
                return status, self._decode(raw, status)
            except error.HTTPError as exc:
                last_error = ChatServiceError(
                    self._describe_http_error(exc.code, exc.read()), status=exc.code
                )
                retryable = exc.code in RETRYABLE_STATUSES
            except error.URLError as exc:
                if isinstance(exc.reason, (TimeoutError, socket.timeout)):
                    last_error = ChatTransportError("Chat request timed out")
                else:
                    last_error = ChatTransportError(f"Chat backend unreachable: {exc.reason}")
            except TimeoutError:
                last_error = ChatTransportError("Chat request timed out")
            except (ConnectionError, http.client.HTTPException) as exc:
                last_error = ChatTransportError(f"Chat connection failed: {exc}")
            if not retryable or attempt >= self.max_retries:
                break
            logger.warning(
                "Chat request failed, retrying",
                extra={"url": url, "attempt": attempt + 1, "error": str(last_error)},
            )
            time.sleep(self.retry_backoff * (2**attempt))
        if last_error is None:
            raise ChatError("Unexpected chat request failure")
        raise last_error

    @staticmethod
    def _decode(raw: bytes, status: int) -> Any:
        if not raw:
            raise ChatServiceError("Empty response from chat backend", status=status)
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            raise ChatServiceError("Invalid JSON from chat backend", status=status) from None

    @staticmethod
    def _describe_http_error(status: int, body: bytes | None) -> str:
        text = (body or b"").decode("utf-8", errors="replace").strip()
        detail = ""
        if text:
            try:
                data = json.loads(text)
            except json.JSONDecodeError:
                detail = " ".join(text.split())
            else:
                if isinstance(data, dict):
                    detail = str(data.get("error") or data.get("message") or "")
        return f"Chat backend returned HTTP {status}: {detail or 'Unknown error'}"


__all__ = [
    "Approach",
    "AskResponse",
    "ChatClient",
    "ChatError",
    "ChatRequest",
    "ChatServiceError",
    "ChatTransportError",
    "ChatTurnPayload",
    "DEFAULT_BASE_URL",
    "ParsedAnswer",
    "parse_answer",
]
