from __future__ import annotations

import json
import socket
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from retrievalchat.services import (
    AskResponse,
    ChatClient,
    ChatRequest,
    ChatServiceError,
    ChatTransportError,
    ChatTurnPayload,
    SessionController,
    parse_answer,
)

from conftest import InlineExecutor


def _default_chat_response(payload: dict[str, object]) -> dict[str, object]:
    history = payload.get("history") or [{}]
    question = history[-1].get("user", "") if isinstance(history[-1], dict) else ""
    return {
        "answer": f"Echo: {question} [info1.pdf] <<What else?>>",
        "thoughts": "Searched for: echo",
        "data_points": ["info1.pdf: the echo"],
    }


def _make_handler(state: dict[str, object]) -> type[BaseHTTPRequestHandler]:
    class Handler(BaseHTTPRequestHandler):
        def do_POST(self) -> None:  # noqa: N802 - signature defined by BaseHTTPRequestHandler
            length = int(self.headers.get("Content-Length", "0"))
            raw_body = self.rfile.read(length)
            payload = json.loads(raw_body.decode("utf-8")) if raw_body else {}
            state["requests"].append({"path": self.path, "payload": payload})

            responses = state["responses"]
            if responses:
                current = responses.pop(0)
            else:
                current = {"status": 200, "body": _default_chat_response(payload)}
            body = current.get("body", {})
            if not isinstance(body, (bytes, bytearray)):
                body = json.dumps(body).encode("utf-8")
            self.send_response(int(current.get("status", 200)))
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, format: str, *args: object) -> None:  # noqa: N802
            """Silence default request logging during tests."""

    return Handler


@pytest.fixture()
def chat_server() -> tuple[dict[str, list], str]:
    state: dict[str, list] = {"requests": [], "responses": []}
    server = ThreadingHTTPServer(("127.0.0.1", 0), _make_handler(state))
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    base_url = f"http://{server.server_address[0]}:{server.server_address[1]}"
    try:
        yield state, base_url
    finally:
        server.shutdown()
        thread.join()


def _request(question: str = "What is the price?") -> ChatRequest:
    return ChatRequest(
        history=(ChatTurnPayload(user=question),),
        overrides={"top": 3, "exclude_category": None},
    )


def test_parse_answer_extracts_citations_and_followups() -> None:
    parsed = parse_answer(
        "Plans start at $10 [plan.pdf] and $20 [plan.pdf][extra.pdf]. "
        "<<Is roaming included?>> <<What about data?>>"
    )

    assert parsed.citations == ("plan.pdf", "extra.pdf")
    assert parsed.followup_questions == ("Is roaming included?", "What about data?")
    assert parsed.text == "Plans start at $10 [plan.pdf] and $20 [plan.pdf][extra.pdf]."


def test_parse_answer_without_markers() -> None:
    parsed = parse_answer("Plain answer.")

    assert parsed.citations == ()
    assert parsed.followup_questions == ()
    assert parsed.text == "Plain answer."


def test_ask_response_requires_answer_text() -> None:
    with pytest.raises(ChatServiceError):
        AskResponse.from_payload({"thoughts": "none"})
    with pytest.raises(ChatServiceError):
        AskResponse.from_payload(["not", "an", "object"])


def test_chat_posts_request_and_parses_response(chat_server) -> None:
    state, base_url = chat_server
    client = ChatClient(base_url=base_url)

    response = client(_request())

    sent = state["requests"][0]
    assert sent["path"] == "/chat"
    assert sent["payload"] == {
        "history": [{"user": "What is the price?"}],
        "approach": "rrr",
        "overrides": {"top": 3},
    }
    assert response.answer.startswith("Echo: What is the price?")
    assert response.citations == ("info1.pdf",)
    assert response.followup_questions == ("What else?",)
    assert response.thoughts == "Searched for: echo"
    assert response.data_points == ("info1.pdf: the echo",)


def test_http_error_raises_service_error_with_backend_message(chat_server) -> None:
    state, base_url = chat_server
    state["responses"].append({"status": 400, "body": {"error": "request must be json"}})
    client = ChatClient(base_url=base_url, max_retries=0)

    with pytest.raises(ChatServiceError) as excinfo:
        client.chat(_request())

    assert excinfo.value.status == 400
    assert "request must be json" in str(excinfo.value)


def test_error_field_in_success_body_is_a_service_error(chat_server) -> None:
    state, base_url = chat_server
    state["responses"].append({"status": 200, "body": {"answer": "", "error": "Index missing"}})
    client = ChatClient(base_url=base_url)

    with pytest.raises(ChatServiceError, match="Index missing"):
        client.chat(_request())


def test_invalid_json_is_a_service_error(chat_server) -> None:
    state, base_url = chat_server
    state["responses"].append({"status": 200, "body": b"<html>oops</html>"})
    client = ChatClient(base_url=base_url)

    with pytest.raises(ChatServiceError, match="Invalid JSON"):
        client.chat(_request())


def test_server_errors_are_retried(chat_server) -> None:
    state, base_url = chat_server
    state["responses"].append({"status": 503, "body": {"error": "busy"}})
    client = ChatClient(base_url=base_url, max_retries=1, retry_backoff=0.01)

    response = client.chat(_request())

    assert len(state["requests"]) == 2
    assert response.citations == ("info1.pdf",)


def test_client_errors_are_not_retried(chat_server) -> None:
    state, base_url = chat_server
    state["responses"].append({"status": 422, "body": {"error": "bad overrides"}})
    client = ChatClient(base_url=base_url, max_retries=3, retry_backoff=0.01)

    with pytest.raises(ChatServiceError):
        client.chat(_request())

    assert len(state["requests"]) == 1


def test_unreachable_backend_raises_transport_error() -> None:
    with socket.socket() as probe:
        probe.bind(("127.0.0.1", 0))
        port = probe.getsockname()[1]
    client = ChatClient(base_url=f"http://127.0.0.1:{port}", max_retries=0)

    with pytest.raises(ChatTransportError):
        client.chat(_request())


def test_configure_and_citation_url() -> None:
    client = ChatClient(base_url="http://example.test/")

    assert client.base_url == "http://example.test"
    client.configure(base_url="http://other.test/api/", timeout=12)

    assert client.timeout == 12
    assert client.citation_url("plan 1.pdf") == "http://other.test/api/content/plan%201.pdf"


def test_controller_end_to_end_with_http_client(chat_server) -> None:
    state, base_url = chat_server
    controller = SessionController(ChatClient(base_url=base_url), executor=InlineExecutor())

    controller.submit("First").result()
    controller.submit("Second").result()

    second_payload = state["requests"][1]["payload"]
    assert second_payload["history"] == [
        {"user": "First", "bot": "Echo: First [info1.pdf] <<What else?>>"},
        {"user": "Second"},
    ]
    assert [turn.question for turn in controller.history] == ["First", "Second"]
