"""Domain Layer - Business Logic and Rich Models.

Pure routing policy, context assembly and the provider adapter contract for
the chat core. Nothing here reads configuration or holds global state.

Key Components:
    - ComplexityClassifier: Textual heuristics scoring a message simple/medium/complex
    - ModelSelector: Plan x complexity -> model tier policy
    - TierRegistry / ModelCatalog: Tier -> vendor model binding with pricing
    - ModelBackend: Uniform adapter contract with one implementation per provider
    - TurnContext: Bounded, role-mapped history plus system instructions for one turn

Design Principles:
    - Immutable by Default: domain models use frozen=True
    - Explicit Dependencies: collaborators are passed in, never imported as singletons
    - Closed Enums: plans, tiers and statuses are StrEnums validated for completeness
"""

from .complexity import ComplexityClassifier
from .conversation import ContextMessage, TurnContext
from .domain_error import (
    AIUnavailableError,
    ChatError,
    InputValidationError,
    InvalidTransitionError,
    LimitExceededError,
    NotFoundError,
    ProviderError,
)
from .domain_type import (
    AIModelVendor,
    ChatRole,
    Complexity,
    ConversationStatus,
    LimitType,
    MessageSender,
    ModelTier,
    TenantPlan,
)
from .domain_value import Chatbot, ConversationId, ConversationRecord, MessageId, StoredMessage, Tenant, Widget
from .model_backend import (
    AgentBackend,
    AnthropicBackend,
    BackendPool,
    GeminiBackend,
    ModelBackend,
    OpenAIBackend,
)
from .model_catalog import ModelCatalog, ModelSpec, ModelVariant, TierRegistry, VendorCatalog
from .model_selector import ModelSelector
from .normalizer import NormalizedResponse, RawCompletion, TokenRates, normalize
from .plan_catalog import PLAN_CATALOG, PlanCatalog, PlanLimits, PlanPolicy

__all__ = [
    "PLAN_CATALOG",
    "AIModelVendor",
    "AIUnavailableError",
    "AgentBackend",
    "AnthropicBackend",
    "BackendPool",
    "ChatError",
    "ChatRole",
    "Chatbot",
    "Complexity",
    "ComplexityClassifier",
    "ContextMessage",
    "ConversationId",
    "ConversationRecord",
    "ConversationStatus",
    "GeminiBackend",
    "InputValidationError",
    "InvalidTransitionError",
    "LimitExceededError",
    "LimitType",
    "MessageId",
    "MessageSender",
    "ModelBackend",
    "ModelCatalog",
    "ModelSelector",
    "ModelSpec",
    "ModelTier",
    "ModelVariant",
    "NormalizedResponse",
    "NotFoundError",
    "OpenAIBackend",
    "PlanCatalog",
    "PlanLimits",
    "PlanPolicy",
    "ProviderError",
    "RawCompletion",
    "StoredMessage",
    "Tenant",
    "TenantPlan",
    "TierRegistry",
    "TokenRates",
    "TurnContext",
    "VendorCatalog",
    "Widget",
    "normalize",
]
