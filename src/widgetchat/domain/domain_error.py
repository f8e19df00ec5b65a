"""Domain Errors - Failure Taxonomy for a Chat Turn.

Every exception the core raises derives from ChatError so the HTTP layer can
translate them in one place. Messages are meant for operators; user-facing
text is produced by the routers.
"""

from __future__ import annotations

from .domain_type import ConversationStatus, LimitType


class ChatError(Exception):
    """Base class for all chat core errors."""


class InputValidationError(ChatError):
    """Malformed input, rejected before any persistence."""

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class NotFoundError(ChatError):
    """Referenced entity is missing or belongs to another tenant."""

    def __init__(self, entity: str, entity_id: object):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class LimitExceededError(ChatError):
    """Tenant reached a monthly usage cap."""

    def __init__(self, limit_type: LimitType, used: int, limit: int):
        self.limit_type = limit_type
        self.used = used
        self.limit = limit
        super().__init__(f"{limit_type.value} limit reached ({used}/{limit})")


class InvalidTransitionError(ChatError):
    """Conversation status does not allow the requested action."""

    def __init__(self, current: ConversationStatus, action: str):
        self.current = current
        self.action = action
        super().__init__(f"Cannot {action} a conversation in status {current.value}")


class ProviderError(ChatError):
    """A model backend failed (timeout, quota, auth, malformed response).

    Raised only by backends. The orchestrator treats it as retryable once
    against the fallback tier.
    """

    def __init__(self, model: str, reason: str):
        self.model = model
        self.reason = reason
        super().__init__(f"Provider call to {model} failed: {reason}")


class AIUnavailableError(ChatError):
    """Primary and fallback backends both failed; the user message is kept."""

    def __init__(self, conversation_id: object, attempts: tuple[str, ...]):
        self.conversation_id = conversation_id
        self.attempts = attempts
        super().__init__(f"No model produced a reply for {conversation_id} (tried {', '.join(attempts)})")


__all__ = [
    "AIUnavailableError",
    "ChatError",
    "InputValidationError",
    "InvalidTransitionError",
    "LimitExceededError",
    "NotFoundError",
    "ProviderError",
]
