"""Front ends for the RetrievalChat client."""

from .console import ConsoleSession
from .session_bridge import SessionBridge

__all__ = ["ConsoleSession", "SessionBridge"]
