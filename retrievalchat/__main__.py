"""Entry point for the RetrievalChat console client."""

from __future__ import annotations

import logging

from .config import ANSWER_SECTION, BACKEND_SECTION, ConfigManager
from .logging import get_log_file_path, install_exception_hook, setup_logging
from .services.answer_settings import AnswerSettings
from .services.chat_client import DEFAULT_BASE_URL, ChatClient
from .services.session_controller import SessionController
from .ui.console import ConsoleSession


def _coerce_timeout(value: object) -> float | None:
    try:
        timeout = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return timeout if timeout > 0 else None


def main() -> None:
    """Start an interactive chat session in the terminal."""
    logger = setup_logging(console=False)
    install_exception_hook(logger)

    config = ConfigManager()
    backend = config.load_section(BACKEND_SECTION)
    settings = AnswerSettings()
    settings.update(config.load_section(ANSWER_SECTION))
    client = ChatClient(
        base_url=config.backend_url(DEFAULT_BASE_URL),
        timeout=_coerce_timeout(backend.get("timeout")),
    )
    controller = SessionController(client, settings=settings)
    logger.info("Session ready", extra={"base_url": client.base_url})

    try:
        ConsoleSession(controller, client, log_path=get_log_file_path(logger)).run()
    finally:
        config.save_section(ANSWER_SECTION, settings.as_dict())
        controller.shutdown()
        logger.info("Shutdown complete")
        logging.shutdown()


if __name__ == "__main__":
    main()
