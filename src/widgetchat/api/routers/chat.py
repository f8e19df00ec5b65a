"""Chat API Router - thin HTTP layer over the conversation orchestrator.

Every endpoint is scoped by a widget: the widget resolves the tenant and
chatbot, so a conversation id is only reachable through a widget of the
tenant that owns it.

Domain errors are translated here, and only here, into HTTP status codes.
Response bodies carry generic text; details go to the logs.
"""

from typing import Annotated
from uuid import UUID

import logfire
from fastapi import APIRouter, Depends, HTTPException, Request, status

from ...domain.domain_error import (
    AIUnavailableError,
    ChatError,
    InputValidationError,
    InvalidTransitionError,
    LimitExceededError,
    NotFoundError,
)
from ...domain.domain_value import Chatbot, ConversationId, ConversationRecord, Tenant, Widget
from ...service import ConversationOrchestrator
from ...service.storage import ChatStore
from ..contracts import (
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
from ..deps import get_chat_store, get_orchestrator

router = APIRouter(prefix="/chat", tags=["chat"])

FALLBACK_REPLY = (
    "Sorry, I'm having technical difficulties right now. "
    "Please try again later or contact our support team."
)


def _http_error(exc: ChatError) -> HTTPException:
    """Map a domain error to its HTTP status with a user-safe body."""
    match exc:
        case InputValidationError():
            return HTTPException(status.HTTP_400_BAD_REQUEST, detail={"error": "Invalid data", "field": exc.field})
        case NotFoundError():
            return HTTPException(status.HTTP_404_NOT_FOUND, detail={"error": f"{exc.entity.capitalize()} not found"})
        case InvalidTransitionError():
            return HTTPException(
                status.HTTP_409_CONFLICT,
                detail={"error": "Conversation does not allow this action", "status": exc.current.value},
            )
        case LimitExceededError():
            return HTTPException(
                status.HTTP_429_TOO_MANY_REQUESTS,
                detail={
                    "error": "Usage limit reached",
                    "limit_type": exc.limit_type.value,
                    "used": exc.used,
                    "limit": exc.limit,
                },
            )
        case AIUnavailableError():
            return HTTPException(
                status.HTTP_503_SERVICE_UNAVAILABLE,
                detail={"error": "Error processing the message", "fallback": FALLBACK_REPLY},
            )
        case _:
            logfire.error("Unmapped chat error: {error}", error=str(exc))
            return HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, detail={"error": "Internal error"})


def _summary(conversation: ConversationRecord) -> ConversationSummary:
    return ConversationSummary(
        id=conversation.id,
        status=conversation.status,
        created_at=conversation.created_at,
        updated_at=conversation.updated_at,
    )


async def _resolve_widget(
    widget_id: UUID,
    request: Request,
    store: ChatStore,
    *,
    require_chatbot: bool = True,
) -> tuple[Widget, Tenant, Chatbot]:
    """Load the widget binding and enforce active flags and the origin allow-list."""
    widget = await store.get_widget(widget_id)
    if widget is None or not widget.is_active:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail={"error": "Widget not found or inactive"})

    tenant = await store.get_tenant(widget.tenant_id)
    if tenant is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail={"error": "Widget not found or inactive"})
    if not tenant.is_active:
        raise HTTPException(status.HTTP_403_FORBIDDEN, detail={"error": "Account inactive"})

    if not widget.allows_origin(request.headers.get("origin"), request.headers.get("referer")):
        logfire.warn(
            "Rejected origin {origin} for widget {widget_id}",
            origin=request.headers.get("origin") or request.headers.get("referer") or "unknown",
            widget_id=str(widget_id),
        )
        raise HTTPException(status.HTTP_403_FORBIDDEN, detail={"error": "Domain not allowed"})

    chatbot = await store.get_chatbot(widget.chatbot_id)
    if chatbot is None or chatbot.tenant_id != tenant.id:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail={"error": "Chatbot not found"})
    if require_chatbot and not chatbot.is_active:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail={"error": "Chatbot unavailable"})

    return widget, tenant, chatbot


@router.post("/message", response_model=SendMessageResponse)
async def send_message(
    body: SendMessageRequest,
    request: Request,
    store: Annotated[ChatStore, Depends(get_chat_store)],
    orchestrator: Annotated[ConversationOrchestrator, Depends(get_orchestrator)],
) -> SendMessageResponse:
    """
    Send a visitor message and get the bot reply.

    Thin orchestration layer:
    1. Resolve widget -> tenant + chatbot, enforce access
    2. Run the turn (orchestrator owns sequencing, routing and fallback)
    3. Map to API contract
    """
    widget, tenant, chatbot = await _resolve_widget(body.widget_id, request, store)

    try:
        result = await orchestrator.submit_message(
            tenant_id=tenant.id,
            widget_id=widget.id,
            chatbot_id=chatbot.id,
            message=body.message,
            conversation_id=body.conversation_id,
            user_id=body.user_id,
            metadata=body.metadata,
        )
    except ChatError as exc:
        raise _http_error(exc) from exc

    return SendMessageResponse(
        conversation_id=result.conversation_id,
        message=MessageResponse.from_stored(result.bot_message),
        metadata=TurnMetadata(
            model=result.model_used,
            tier=result.tier,
            complexity=result.complexity,
            response_time_ms=result.latency_ms,
            tokens_used=result.tokens_used,
            fell_back=result.fell_back,
        ),
    )


@router.post("/conversation", response_model=OpenConversationResponse, status_code=status.HTTP_201_CREATED)
async def open_conversation(
    body: OpenConversationRequest,
    request: Request,
    store: Annotated[ChatStore, Depends(get_chat_store)],
    orchestrator: Annotated[ConversationOrchestrator, Depends(get_orchestrator)],
) -> OpenConversationResponse:
    """Start a conversation explicitly and return the chatbot's welcome message."""
    widget, tenant, chatbot = await _resolve_widget(body.widget_id, request, store)
    try:
        conversation, welcome = await orchestrator.open_conversation(
            tenant_id=tenant.id,
            widget_id=widget.id,
            chatbot_id=chatbot.id,
            user_id=body.user_id,
            metadata=body.metadata,
        )
    except ChatError as exc:
        raise _http_error(exc) from exc
    return OpenConversationResponse(conversation=_summary(conversation), welcome_message=welcome)


@router.get("/conversation/{conversation_id}", response_model=ConversationHistoryResponse)
async def get_conversation(
    conversation_id: UUID,
    widget_id: UUID,
    request: Request,
    store: Annotated[ChatStore, Depends(get_chat_store)],
    orchestrator: Annotated[ConversationOrchestrator, Depends(get_orchestrator)],
) -> ConversationHistoryResponse:
    """Get a conversation's full history, oldest message first."""
    _, tenant, _ = await _resolve_widget(widget_id, request, store, require_chatbot=False)
    try:
        transcript = await orchestrator.get_history(
            tenant_id=tenant.id,
            conversation_id=ConversationId(root=conversation_id),
        )
    except ChatError as exc:
        raise _http_error(exc) from exc
    return ConversationHistoryResponse(
        conversation=_summary(transcript.conversation),
        messages=[MessageResponse.from_stored(m) for m in transcript.messages],
        message_count=len(transcript.messages),
    )


@router.put("/conversation/{conversation_id}/close", response_model=CloseConversationResponse)
async def close_conversation(
    conversation_id: UUID,
    body: CloseConversationRequest,
    request: Request,
    store: Annotated[ChatStore, Depends(get_chat_store)],
    orchestrator: Annotated[ConversationOrchestrator, Depends(get_orchestrator)],
) -> CloseConversationResponse:
    """Close a conversation, optionally recording a rating and feedback."""
    _, tenant, _ = await _resolve_widget(body.widget_id, request, store, require_chatbot=False)
    try:
        closed = await orchestrator.close_conversation(
            tenant_id=tenant.id,
            conversation_id=ConversationId(root=conversation_id),
            rating=body.rating,
            feedback=body.feedback,
        )
    except ChatError as exc:
        raise _http_error(exc) from exc
    return CloseConversationResponse(conversation=_summary(closed))


@router.post("/transfer-to-human", response_model=TransferResponse)
async def transfer_to_human(
    body: TransferRequest,
    request: Request,
    store: Annotated[ChatStore, Depends(get_chat_store)],
    orchestrator: Annotated[ConversationOrchestrator, Depends(get_orchestrator)],
) -> TransferResponse:
    """Flag the conversation for a human agent."""
    _, tenant, _ = await _resolve_widget(body.widget_id, request, store, require_chatbot=False)
    try:
        pending = await orchestrator.request_transfer(
            tenant_id=tenant.id,
            conversation_id=body.conversation_id,
            reason=body.reason,
        )
    except ChatError as exc:
        raise _http_error(exc) from exc
    return TransferResponse(conversation=_summary(pending))


@router.post("/feedback", response_model=FeedbackResponse)
async def submit_feedback(
    body: FeedbackRequest,
    request: Request,
    store: Annotated[ChatStore, Depends(get_chat_store)],
) -> FeedbackResponse:
    """Record a visitor's rating of one reply. Feedback is logged, not stored."""
    _, tenant, _ = await _resolve_widget(body.widget_id, request, store, require_chatbot=False)
    logfire.info(
        "Feedback on message {message_id}: rating={rating}",
        tenant_id=str(tenant.id),
        message_id=str(body.message_id.root),
        rating=body.rating,
        feedback=body.feedback,
    )
    return FeedbackResponse()


@router.get("/widget/{widget_id}/config", response_model=WidgetConfigResponse)
async def widget_config(
    widget_id: UUID,
    request: Request,
    store: Annotated[ChatStore, Depends(get_chat_store)],
) -> WidgetConfigResponse:
    """Public configuration the embed script needs to render."""
    widget, tenant, chatbot = await _resolve_widget(widget_id, request, store, require_chatbot=False)
    return WidgetConfigResponse(
        id=widget.id,
        name=widget.name,
        config=widget.config,
        theme=widget.theme,
        chatbot=WidgetChatbotInfo(id=chatbot.id, name=chatbot.name, welcome_message=chatbot.welcome_message),
        tenant_name=tenant.name,
    )
