"""Service layer - turn orchestration, usage limits and storage wiring."""

from .conversation import ConversationOrchestrator, ConversationTranscript, TurnResult
from .storage import ChatStore, InMemoryChatStore, RedisChatStore, StorageService
from .usage import UsageLimiter, UsageStatus

__all__ = [
    "ChatStore",
    "ConversationOrchestrator",
    "ConversationTranscript",
    "InMemoryChatStore",
    "RedisChatStore",
    "StorageService",
    "TurnResult",
    "UsageLimiter",
    "UsageStatus",
]
