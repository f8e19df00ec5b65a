from .conversation import (
    CloseConversationRequest,
    CloseConversationResponse,
    ConversationHistoryResponse,
    ConversationSummary,
    FeedbackRequest,
    FeedbackResponse,
    MessageResponse,
    OpenConversationRequest,
    OpenConversationResponse,
    SendMessageRequest,
    SendMessageResponse,
    TransferRequest,
    TransferResponse,
    TurnMetadata,
    WidgetChatbotInfo,
    WidgetConfigResponse,
)
from .health import HealthResponse

__all__ = [
    "CloseConversationRequest",
    "CloseConversationResponse",
    "ConversationHistoryResponse",
    "ConversationSummary",
    "FeedbackRequest",
    "FeedbackResponse",
    "HealthResponse",
    "MessageResponse",
    "OpenConversationRequest",
    "OpenConversationResponse",
    "SendMessageRequest",
    "SendMessageResponse",
    "TransferRequest",
    "TransferResponse",
    "TurnMetadata",
    "WidgetChatbotInfo",
    "WidgetConfigResponse",
]
