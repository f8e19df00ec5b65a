"""Chat API contracts - request/response shapes for the widget endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from ...domain.domain_type import Complexity, ConversationStatus, MessageSender, ModelTier
from ...domain.domain_value import ConversationId, MessageId, StoredMessage


class SendMessageRequest(BaseModel):
    """Request to send a message from a widget."""

    message: str = Field(
        description="User message to send",
        examples=["How do I reset my password?"],
    )
    widget_id: UUID = Field(description="Widget the message comes from")
    conversation_id: ConversationId | None = Field(
        default=None,
        description="Existing conversation ID to continue, or None to start new",
        examples=["3fa85f64-5717-4562-b3fc-2c963f66afa6"],
    )
    user_id: str | None = Field(default=None, description="Visitor identifier; anonymous when omitted")
    metadata: dict[str, Any] | None = Field(
        default=None,
        description="Visitor context (userAgent, url, referrer...) passed to the model as user info",
    )


class MessageResponse(BaseModel):
    """A single stored message."""

    id: MessageId
    content: str
    sender: MessageSender
    timestamp: datetime

    @classmethod
    def from_stored(cls, message: StoredMessage) -> MessageResponse:
        return cls(id=message.id, content=message.content, sender=message.sender, timestamp=message.created_at)


class TurnMetadata(BaseModel):
    """Routing details for the reply."""

    model: str
    tier: ModelTier
    complexity: Complexity
    response_time_ms: float = Field(ge=0)
    tokens_used: int | None = None
    fell_back: bool = False


class SendMessageResponse(BaseModel):
    """Response from sending a message."""

    success: bool = True
    conversation_id: ConversationId = Field(description="Conversation ID for subsequent requests")
    message: MessageResponse = Field(description="Bot reply")
    metadata: TurnMetadata


class OpenConversationRequest(BaseModel):
    widget_id: UUID
    user_id: str | None = None
    metadata: dict[str, Any] | None = None


class ConversationSummary(BaseModel):
    id: ConversationId
    status: ConversationStatus
    created_at: datetime
    updated_at: datetime | None = None


class OpenConversationResponse(BaseModel):
    success: bool = True
    conversation: ConversationSummary
    welcome_message: str


class ConversationHistoryResponse(BaseModel):
    """Response containing a conversation and its messages, oldest first."""

    success: bool = True
    conversation: ConversationSummary
    messages: list[MessageResponse]
    message_count: int = Field(ge=0)


class CloseConversationRequest(BaseModel):
    widget_id: UUID
    rating: int | None = Field(default=None, ge=1, le=5)
    feedback: str | None = None


class CloseConversationResponse(BaseModel):
    success: bool = True
    message: str = "Conversation closed"
    conversation: ConversationSummary


class TransferRequest(BaseModel):
    widget_id: UUID
    conversation_id: ConversationId
    reason: str | None = None


class TransferResponse(BaseModel):
    success: bool = True
    message: str = "Transfer request sent"
    estimated_wait_time: str = "2-5 minutes"
    conversation: ConversationSummary


class FeedbackRequest(BaseModel):
    """Visitor rating of a single bot reply."""

    widget_id: UUID
    message_id: MessageId
    rating: int | None = Field(default=None, ge=1, le=5)
    feedback: str | None = None


class FeedbackResponse(BaseModel):
    success: bool = True
    message: str = "Feedback received"


class WidgetChatbotInfo(BaseModel):
    id: UUID
    name: str
    welcome_message: str


class WidgetConfigResponse(BaseModel):
    """Public widget configuration used to render the embed."""

    success: bool = True
    id: UUID
    name: str
    config: dict[str, Any]
    theme: dict[str, Any]
    chatbot: WidgetChatbotInfo
    tenant_name: str
