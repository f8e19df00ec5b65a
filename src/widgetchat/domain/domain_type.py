"""Domain Type System - Core Enumerations.

Defines type-safe constants using Python's StrEnum for domain concepts.
Using StrEnum instead of plain Enum provides automatic string coercion
and better JSON serialization without custom encoders.
"""

from enum import StrEnum


class TenantPlan(StrEnum):
    """Billing Plans.

    The plan is the single input for a tenant's feature set, usage limits and
    model routing. Values match what the billing layer writes.
    """

    STARTER = "starter"
    PROFESSIONAL = "professional"
    BUSINESS = "business"
    ENTERPRISE = "enterprise"

    @classmethod
    def parse(cls, value: "TenantPlan | str | None") -> "TenantPlan":
        """Coerce a stored plan string, defaulting unknown values to STARTER."""
        if isinstance(value, TenantPlan):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.STARTER


class Complexity(StrEnum):
    """Coarse message complexity used to pick a cost-appropriate model."""

    SIMPLE = "simple"
    MEDIUM = "medium"
    COMPLEX = "complex"


class ModelTier(StrEnum):
    """Model Routing Destinations.

    Abstract cost/quality tiers the ModelSelector chooses between. Concrete
    model identifiers are bound to tiers by the TierRegistry, so the routing
    policy never names a vendor model directly.
    """

    ECONOMY = "economy"
    STANDARD = "standard"
    PREMIUM_FAST = "premium-fast"
    PREMIUM_DEEP = "premium-deep"


class AIModelVendor(StrEnum):
    """LLM Provider Identifiers.

    Used as keys in the model catalog and for parsing model specifications in
    the format "vendor:model-id".

    Note:
        Adding new vendors requires corresponding entries in model_metadata.json
        and a backend class in model_backend.py
    """

    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    GOOGLE = "google"


class ConversationStatus(StrEnum):
    """Conversation Lifecycle States.

    States:
        ACTIVE: Normal conversation in progress
        PENDING_TRANSFER: End-user asked for a human agent
        CLOSED: Terminal, no further turns accepted
    """

    ACTIVE = "ACTIVE"
    PENDING_TRANSFER = "PENDING_TRANSFER"
    CLOSED = "CLOSED"


class MessageSender(StrEnum):
    """Who wrote a persisted message."""

    USER = "USER"
    BOT = "BOT"


class ChatRole(StrEnum):
    """Role of a message inside a model prompt."""

    USER = "user"
    ASSISTANT = "assistant"


class LimitType(StrEnum):
    """Monthly usage counters enforced per tenant."""

    CONVERSATIONS = "conversations"
    MESSAGES = "messages"


__all__ = [
    "AIModelVendor",
    "ChatRole",
    "Complexity",
    "ConversationStatus",
    "LimitType",
    "MessageSender",
    "ModelTier",
    "TenantPlan",
]
