"""widgetchat package exports."""

from .config import Settings, settings
from .service import ConversationOrchestrator, UsageLimiter

__all__ = [
    "ConversationOrchestrator",
    "Settings",
    "UsageLimiter",
    "settings",
]
