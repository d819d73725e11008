"""Logging utilities for the RetrievalChat client."""

from __future__ import annotations

import functools
import inspect
import logging
import os
import platform
import sys
import threading
import time
from pathlib import Path
from typing import Any, Optional

from .config import CONFIG_DIR_NAME, get_user_config_dir

LOG_FILENAME = "retrievalchat.log"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_EXCEPTION_HOOK_INSTALLED = False
_HOOK_LOCK = threading.Lock()


def setup_logging(
    app_name: str = CONFIG_DIR_NAME,
    *,
    level: int = logging.INFO,
    log_filename: Optional[str] = None,
    console: bool = True,
) -> logging.Logger:
    """Configure the root logger with a file handler and, optionally, the console.

    Handlers go on the *root* logger so every ``logging.getLogger(__name__)``
    in the package inherits them. Calling this twice is a no-op.
    """

    root_logger = logging.getLogger()
    if root_logger.handlers:
        return logging.getLogger(app_name)

    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    log_path = Path(get_user_config_dir(app_name)) / (log_filename or LOG_FILENAME)
    handlers: list[logging.Handler] = [logging.FileHandler(log_path, encoding="utf-8")]
    if console:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers)

    logger = logging.getLogger(app_name)
    root_logger.log_path = log_path  # type: ignore[attr-defined]
    logger.log_path = log_path  # type: ignore[attr-defined]

    logger.info(
        "Logging initialised",
        extra={"log_path": str(log_path), "level": logging.getLevelName(level)},
    )
    logger.debug(
        "Runtime environment",
        extra={
            "python": platform.python_version(),
            "platform": platform.platform(),
            "cwd": os.getcwd(),
        },
    )
    return logger


def get_log_file_path(logger: logging.Logger) -> Optional[Path]:
    """Return the path of the first file handler attached to ``logger``."""

    log_path = getattr(logger, "log_path", None)
    if isinstance(log_path, Path):
        return log_path

    for handler in logger.handlers:
        filename = getattr(handler, "baseFilename", None)
        if filename:
            return Path(filename)
    return None


def install_exception_hook(logger: logging.Logger) -> None:
    """Log unhandled exceptions from the main thread and worker threads."""

    global _EXCEPTION_HOOK_INSTALLED
    with _HOOK_LOCK:
        if _EXCEPTION_HOOK_INSTALLED:
            return
        _EXCEPTION_HOOK_INSTALLED = True

    default_hook = sys.excepthook
    default_thread_hook = threading.excepthook

    def handle_exception(exc_type, exc_value, exc_traceback):
        if not issubclass(exc_type, KeyboardInterrupt):
            logger.critical(
                "Unhandled exception", exc_info=(exc_type, exc_value, exc_traceback)
            )
            _flush_handlers(logger)
        default_hook(exc_type, exc_value, exc_traceback)

    def handle_thread_exception(args):
        if not issubclass(args.exc_type, KeyboardInterrupt):
            logger.critical(
                "Unhandled exception in thread %s",
                getattr(args.thread, "name", "<unknown>"),
                exc_info=(args.exc_type, args.exc_value, args.exc_traceback),
            )
            _flush_handlers(logger)
        default_thread_hook(args)

    sys.excepthook = handle_exception
    threading.excepthook = handle_thread_exception


def _flush_handlers(logger: logging.Logger) -> None:
    for handler in logger.handlers + logging.getLogger().handlers:
        try:
            handler.flush()
        except (OSError, ValueError):  # pragma: no cover - closed stream
            pass


def _safe_repr(value: Any, *, max_length: int = 500) -> str:
    """Return a truncated ``repr`` suitable for logging."""

    try:
        result = repr(value)
    except Exception:
        result = object.__repr__(value)
    if len(result) > max_length:
        return result[: max_length - 3] + "..."
    return result


def _format_arguments(signature: inspect.Signature, *args: Any, **kwargs: Any) -> str:
    try:
        bound = signature.bind_partial(*args, **kwargs)
    except TypeError:
        return "unavailable"
    return ", ".join(
        f"{name}={_safe_repr(value)}"
        for name, value in bound.arguments.items()
        if name not in {"self", "cls"}
    )


def log_call(
    _func: Optional[Any] = None,
    *,
    logger: logging.Logger | str | None = None,
    level: int = logging.DEBUG,
    include_args: bool = True,
    include_result: bool = False,
    exc_level: int = logging.ERROR,
) -> Any:
    """Decorator that logs entry, exit, and failures for ``_func``.

    Usable bare or with arguments::

        @log_call
        def some_function(...):
            ...

        @log_call(logger=logger, include_result=True)
        def another(...):
            ...
    """

    def decorator(func: Any) -> Any:
        signature = inspect.signature(func)
        module = getattr(func, "__module__", "") or ""
        qualname = getattr(func, "__qualname__", getattr(func, "__name__", "<call>"))
        identifier = f"{module}.{qualname}" if module else qualname
        if isinstance(logger, logging.Logger):
            target = logger
        else:
            target = logging.getLogger(logger or module)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            if target.isEnabledFor(level):
                if include_args:
                    target.log(
                        level,
                        "Calling %s(%s)",
                        identifier,
                        _format_arguments(signature, *args, **kwargs),
                    )
                else:
                    target.log(level, "Calling %s", identifier)
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception:
                target.log(
                    exc_level,
                    "Error in %s after %.3fs",
                    identifier,
                    time.perf_counter() - start,
                    exc_info=True,
                )
                raise
            elapsed = time.perf_counter() - start
            if include_result:
                target.log(
                    level, "%s returned %s (%.3fs)", identifier, _safe_repr(result), elapsed
                )
            else:
                target.log(level, "%s completed in %.3fs", identifier, elapsed)
            return result

        return wrapper

    if callable(_func):
        return decorator(_func)
    return decorator


__all__ = [
    "setup_logging",
    "install_exception_hook",
    "get_log_file_path",
    "log_call",
]
