"""Identity and Entity Layer - Tenants, Chatbots, Widgets, Conversations, Messages.

This module provides the persisted shapes the chat core reads and writes.

Architecture:
    - Identity (our layer): MessageId, ConversationId as UUID RootModels
    - Configuration entities: Tenant, Chatbot, Widget (owned by the tenant side of the app)
    - Chat entities: ConversationRecord, StoredMessage (written by the turn engine)

All models are frozen. State changes are expressed as methods returning a new
instance, so a record read at the start of a turn is never mutated underneath
concurrent readers.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, RootModel, computed_field, field_validator

from .domain_error import InvalidTransitionError
from .domain_type import ConversationStatus, MessageSender, TenantPlan
from .plan_catalog import PLAN_CATALOG, PlanLimits


def utc_now() -> datetime:
    return datetime.now(UTC)


class MessageId(RootModel[UUID]):
    """Unique Identifier for Individual Messages.

    Uses Pydantic's RootModel pattern to create a strongly-typed UUID wrapper.

    Usage:
        >>> msg_id = MessageId()  # Auto-generates UUID
        >>> str(msg_id.root)
        '550e8400-e29b-41d4-a716-446655440000'
    """

    root: UUID = Field(default_factory=uuid4)
    model_config = ConfigDict(frozen=True)


class ConversationId(RootModel[UUID]):
    """Unique Identifier for Conversations.

    Usage:
        >>> conv_id = ConversationId()
        >>> redis_key = f"conversation:{conv_id.root}"
    """

    root: UUID = Field(default_factory=uuid4)
    model_config = ConfigDict(frozen=True)


class Tenant(BaseModel):
    """Paying organization.

    Features and limits are derived from the plan on every read rather than
    stored, so they cannot drift away from what billing assigned.
    """

    id: UUID = Field(default_factory=uuid4)
    name: str
    plan: TenantPlan = TenantPlan.STARTER
    is_active: bool = True

    model_config = ConfigDict(frozen=True)

    @field_validator("plan", mode="before")
    @classmethod
    def default_unknown_plan(cls, v: Any) -> TenantPlan:
        return TenantPlan.parse(v)

    @computed_field
    @property
    def features(self) -> tuple[str, ...]:
        return PLAN_CATALOG.features(self.plan)

    @computed_field
    @property
    def limits(self) -> PlanLimits:
        return PLAN_CATALOG.limits(self.plan)

    def has_feature(self, feature: str) -> bool:
        return feature in self.features


class Chatbot(BaseModel):
    """AI persona owned by one tenant."""

    id: UUID = Field(default_factory=uuid4)
    tenant_id: UUID
    name: str = "Main Assistant"
    model: str = "openai:gpt-4o"
    system_prompt: str = ""
    welcome_message: str = "Hi! How can I help you?"
    is_active: bool = True

    model_config = ConfigDict(frozen=True)


class Widget(BaseModel):
    """Embeddable chat entry point bound to one chatbot and one tenant."""

    id: UUID = Field(default_factory=uuid4)
    tenant_id: UUID
    chatbot_id: UUID
    name: str = "Main Widget"
    config: dict[str, Any] = Field(default_factory=dict)
    theme: dict[str, Any] = Field(default_factory=dict)
    allowed_domains: tuple[str, ...] = ()
    is_active: bool = True

    model_config = ConfigDict(frozen=True)

    def allows_origin(self, origin: str | None, referer: str | None = None) -> bool:
        """Empty allow-list admits any page; otherwise a listed domain must appear in Origin or Referer."""
        if not self.allowed_domains:
            return True
        return any(
            (origin is not None and domain in origin) or (referer is not None and domain in referer)
            for domain in self.allowed_domains
        )


class ConversationRecord(BaseModel):
    """One chat session between an end-user and a chatbot.

    Widget and chatbot references are nullable so history survives deletion
    of either. Lifecycle: ACTIVE -> CLOSED | PENDING_TRANSFER, PENDING_TRANSFER
    -> CLOSED; CLOSED is terminal.
    """

    id: ConversationId = Field(default_factory=ConversationId)
    tenant_id: UUID
    widget_id: UUID | None = None
    chatbot_id: UUID | None = None
    user_id: str
    status: ConversationStatus = ConversationStatus.ACTIVE
    rating: int | None = Field(default=None, ge=1, le=5)
    feedback: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    model_config = ConfigDict(frozen=True)

    @staticmethod
    def anonymous_user_id() -> str:
        return f"anonymous_{uuid4().hex}"

    def belongs_to(self, tenant_id: UUID) -> bool:
        return self.tenant_id == tenant_id

    @property
    def accepts_turns(self) -> bool:
        return self.status != ConversationStatus.CLOSED

    def ensure_accepts_turns(self) -> None:
        if not self.accepts_turns:
            raise InvalidTransitionError(self.status, "send a message to")

    def close(self, rating: int | None = None, feedback: str | None = None) -> ConversationRecord:
        if self.status == ConversationStatus.CLOSED:
            raise InvalidTransitionError(self.status, "close")
        update: dict[str, Any] = {"status": ConversationStatus.CLOSED, "updated_at": utc_now()}
        if rating is not None:
            update["rating"] = rating
        if feedback:
            update["feedback"] = feedback
        # model_copy skips validation, so re-validate to keep the rating bounds
        return ConversationRecord.model_validate(self.model_copy(update=update).model_dump())

    def request_transfer(self) -> ConversationRecord:
        if self.status != ConversationStatus.ACTIVE:
            raise InvalidTransitionError(self.status, "transfer")
        return self.model_copy(update={"status": ConversationStatus.PENDING_TRANSFER, "updated_at": utc_now()})


class StoredMessage(BaseModel):
    """One immutable utterance inside a conversation.

    tenant_id is denormalized so per-tenant monthly counts need no join.
    """

    id: MessageId = Field(default_factory=MessageId)
    conversation_id: ConversationId
    tenant_id: UUID
    content: str
    sender: MessageSender
    created_at: datetime = Field(default_factory=utc_now)

    model_config = ConfigDict(frozen=True)


__all__ = [
    "Chatbot",
    "ConversationId",
    "ConversationRecord",
    "MessageId",
    "StoredMessage",
    "Tenant",
    "Widget",
    "utc_now",
]
