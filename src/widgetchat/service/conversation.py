"""Conversation Orchestrator - executes one chat turn end to end.

Turn flow:
    1. Validate input (no side effects on failure)
    2. Load tenant + chatbot, resolve an existing conversation (NotFound on tenant mismatch)
    3. Usage pre-check, before any write or provider call
    4. Create the conversation if none was given
    5. Persist the USER message unconditionally
    6. Assemble context from the last N prior messages
    7. Classify complexity, select tier from the tenant plan
    8. Invoke the tier's backend; on ProviderError retry once on the fallback tier
    9. Persist the BOT message and return the reply with routing metadata

A failure after step 5 leaves the user message stored and no bot message.
Callers should treat it as "resend to retry".

Concurrency: no locks. Two turns on the same conversation may interleave
between steps 5 and 9, so a reply can miss a racing user message. Messages
are never lost or duplicated because each write is a single append.
"""

from __future__ import annotations

import time
from typing import Any
from uuid import UUID

import logfire
from pydantic import BaseModel, ConfigDict

from ..domain.complexity import ComplexityClassifier
from ..domain.conversation import CONTEXT_WINDOW, TurnContext
from ..domain.domain_error import AIUnavailableError, InputValidationError, NotFoundError, ProviderError
from ..domain.domain_type import Complexity, LimitType, MessageSender, ModelTier
from ..domain.domain_value import Chatbot, ConversationId, ConversationRecord, StoredMessage, Tenant
from ..domain.model_backend import BackendResolver
from ..domain.model_selector import ModelSelector
from ..domain.normalizer import NormalizedResponse
from .storage import ChatStore
from .usage import UsageLimiter

MAX_MESSAGE_LENGTH = 1000

TRANSFER_NOTICE = "I'm transferring you to a human agent. One moment please..."


class TurnResult(BaseModel):
    """Outcome of a successful turn, handed to the presentation layer."""

    conversation_id: ConversationId
    user_message: StoredMessage
    bot_message: StoredMessage
    model_used: str
    tier: ModelTier
    complexity: Complexity
    latency_ms: float
    tokens_used: int | None = None
    cost_estimate: float = 0.0
    fell_back: bool = False

    model_config = ConfigDict(frozen=True)


class ConversationTranscript(BaseModel):
    """A conversation with its full message history, oldest first."""

    conversation: ConversationRecord
    messages: tuple[StoredMessage, ...]

    model_config = ConfigDict(frozen=True)


class _Attempt(BaseModel):
    tier: ModelTier
    model: str
    response: NormalizedResponse
    latency_ms: float

    model_config = ConfigDict(frozen=True)


class ConversationOrchestrator:
    """
    Turn engine - the only place that sequences persistence and model calls.

    Collaborators are injected; none are module globals:
    - store: persistence
    - backends: tier -> ModelBackend resolution and the fallback tier
    - limiter: monthly caps (optional; without it no caps are enforced)
    """

    def __init__(
        self,
        *,
        store: ChatStore,
        backends: BackendResolver,
        limiter: UsageLimiter | None = None,
        classifier: ComplexityClassifier | None = None,
        selector: ModelSelector | None = None,
        context_window: int = CONTEXT_WINDOW,
        max_message_length: int = MAX_MESSAGE_LENGTH,
    ):
        self.store = store
        self.backends = backends
        self.limiter = limiter
        self.classifier = classifier or ComplexityClassifier()
        self.selector = selector or ModelSelector()
        self.context_window = context_window
        self.max_message_length = max_message_length

    # =========================================================================
    # Turn
    # =========================================================================

    async def submit_message(
        self,
        *,
        tenant_id: UUID,
        widget_id: UUID | None,
        chatbot_id: UUID,
        message: str,
        conversation_id: ConversationId | None = None,
        user_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> TurnResult:
        """Run one user-message-in, bot-message-out cycle.

        Raises:
            InputValidationError: empty or oversized message
            NotFoundError: tenant/chatbot/conversation missing or owned by another tenant
            InvalidTransitionError: conversation is CLOSED
            LimitExceededError: monthly cap reached
            AIUnavailableError: primary and fallback backends failed (user message kept)
        """
        text = self._validate_message(message)

        with logfire.span("chat turn", tenant_id=str(tenant_id)):
            tenant, chatbot = await self._load_binding(tenant_id, chatbot_id)

            conversation: ConversationRecord | None = None
            if conversation_id is not None:
                conversation = await self._load_conversation(tenant_id, conversation_id)
                conversation.ensure_accepts_turns()

            await self._precheck_usage(tenant_id, creating=conversation is None)

            if conversation is None:
                conversation = await self._create_conversation(tenant, widget_id, chatbot, user_id, metadata)

            user_message = await self.store.append_message(
                StoredMessage(
                    conversation_id=conversation.id,
                    tenant_id=tenant.id,
                    content=text,
                    sender=MessageSender.USER,
                )
            )

            recent = await self.store.recent_messages(conversation.id, self.context_window + 1)
            context = TurnContext.assemble(
                tenant=tenant,
                system_prompt=chatbot.system_prompt,
                recent=recent,
                exclude=user_message.id,
                user_info=metadata,
                window=self.context_window,
            )

            complexity = self.classifier.classify(text)
            tier = self.selector.select(tenant.plan, complexity)
            logfire.info(
                "Routing {complexity} message for {plan} tenant to {tier}",
                complexity=complexity.value,
                plan=tenant.plan.value,
                tier=tier.value,
            )

            attempt = await self._invoke_with_fallback(conversation.id, tier, text, context)

            bot_message = await self.store.append_message(
                StoredMessage(
                    conversation_id=conversation.id,
                    tenant_id=tenant.id,
                    content=attempt.response.content,
                    sender=MessageSender.BOT,
                )
            )

        return TurnResult(
            conversation_id=conversation.id,
            user_message=user_message,
            bot_message=bot_message,
            model_used=attempt.model,
            tier=attempt.tier,
            complexity=complexity,
            latency_ms=attempt.latency_ms,
            tokens_used=attempt.response.tokens_used,
            cost_estimate=attempt.response.cost_estimate,
            fell_back=attempt.tier != tier,
        )

    async def _invoke_with_fallback(
        self,
        conversation_id: ConversationId,
        tier: ModelTier,
        message: str,
        context: TurnContext,
    ) -> _Attempt:
        """Primary attempt, then at most one attempt on the fallback tier.

        The fallback is skipped when it resolves to the model that already
        failed. A backend that cannot be built counts as that tier's attempt.
        """
        fallback = self.backends.fallback_tier
        tiers = (tier,) if tier == fallback else (tier, fallback)

        tried: list[str] = []
        for candidate in tiers:
            try:
                backend = self.backends.get_backend(candidate)
                if backend.model_name in tried:
                    continue
                tried.append(backend.model_name)
                started = time.perf_counter()
                response = await backend.generate(message, context)
            except ProviderError as exc:
                if exc.model not in tried:
                    tried.append(exc.model)
                logfire.warn(
                    "Model {model} failed on tier {tier}: {reason}",
                    model=exc.model,
                    tier=candidate.value,
                    reason=exc.reason,
                )
                continue
            latency_ms = (time.perf_counter() - started) * 1000
            return _Attempt(tier=candidate, model=backend.model_name, response=response, latency_ms=latency_ms)

        logfire.error(
            "No model available for conversation {conversation_id}",
            conversation_id=str(conversation_id.root),
        )
        raise AIUnavailableError(conversation_id.root, tuple(tried))

    # =========================================================================
    # Conversation lifecycle
    # =========================================================================

    async def open_conversation(
        self,
        *,
        tenant_id: UUID,
        widget_id: UUID | None,
        chatbot_id: UUID,
        user_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> tuple[ConversationRecord, str]:
        """Explicitly start a conversation; returns it with the chatbot's welcome message."""
        tenant, chatbot = await self._load_binding(tenant_id, chatbot_id)
        await self._precheck_usage(tenant_id, creating=True)
        conversation = await self._create_conversation(tenant, widget_id, chatbot, user_id, metadata)
        return conversation, chatbot.welcome_message

    async def get_history(self, *, tenant_id: UUID, conversation_id: ConversationId) -> ConversationTranscript:
        conversation = await self._load_conversation(tenant_id, conversation_id)
        messages = await self.store.list_messages(conversation.id)
        return ConversationTranscript(conversation=conversation, messages=tuple(messages))

    async def close_conversation(
        self,
        *,
        tenant_id: UUID,
        conversation_id: ConversationId,
        rating: int | None = None,
        feedback: str | None = None,
    ) -> ConversationRecord:
        conversation = await self._load_conversation(tenant_id, conversation_id)
        closed = conversation.close(rating=rating, feedback=feedback)
        await self.store.update_conversation(closed)
        logfire.info("Closed conversation {conversation_id}", conversation_id=str(conversation_id.root))
        return closed

    async def request_transfer(
        self,
        *,
        tenant_id: UUID,
        conversation_id: ConversationId,
        reason: str | None = None,
    ) -> ConversationRecord:
        """Mark the conversation for a human agent and tell the user so."""
        conversation = await self._load_conversation(tenant_id, conversation_id)
        pending = conversation.request_transfer()
        await self.store.update_conversation(pending)
        await self.store.append_message(
            StoredMessage(
                conversation_id=pending.id,
                tenant_id=pending.tenant_id,
                content=TRANSFER_NOTICE,
                sender=MessageSender.BOT,
            )
        )
        logfire.info(
            "Transfer requested for conversation {conversation_id}: {reason}",
            conversation_id=str(conversation_id.root),
            reason=reason or "unspecified",
        )
        return pending

    # =========================================================================
    # Helpers
    # =========================================================================

    def _validate_message(self, message: str) -> str:
        text = message.strip() if isinstance(message, str) else ""
        if not text:
            raise InputValidationError("message", "must not be empty")
        if len(text) > self.max_message_length:
            raise InputValidationError("message", f"longer than {self.max_message_length} characters")
        return text

    async def _load_binding(self, tenant_id: UUID, chatbot_id: UUID) -> tuple[Tenant, Chatbot]:
        tenant = await self.store.get_tenant(tenant_id)
        if tenant is None:
            raise NotFoundError("tenant", tenant_id)
        chatbot = await self.store.get_chatbot(chatbot_id)
        if chatbot is None or chatbot.tenant_id != tenant.id:
            raise NotFoundError("chatbot", chatbot_id)
        return tenant, chatbot

    async def _load_conversation(self, tenant_id: UUID, conversation_id: ConversationId) -> ConversationRecord:
        conversation = await self.store.get_conversation(conversation_id)
        if conversation is None or not conversation.belongs_to(tenant_id):
            raise NotFoundError("conversation", conversation_id.root)
        return conversation

    async def _precheck_usage(self, tenant_id: UUID, *, creating: bool) -> None:
        if self.limiter is None:
            return
        if creating:
            await self.limiter.enforce(tenant_id, LimitType.CONVERSATIONS)
        await self.limiter.enforce(tenant_id, LimitType.MESSAGES)

    async def _create_conversation(
        self,
        tenant: Tenant,
        widget_id: UUID | None,
        chatbot: Chatbot,
        user_id: str | None,
        metadata: dict[str, Any] | None,
    ) -> ConversationRecord:
        conversation = ConversationRecord(
            tenant_id=tenant.id,
            widget_id=widget_id,
            chatbot_id=chatbot.id,
            user_id=user_id or ConversationRecord.anonymous_user_id(),
            metadata=metadata or {},
        )
        created = await self.store.create_conversation(conversation)
        logfire.info(
            "Started conversation {conversation_id} for tenant {tenant_id}",
            conversation_id=str(created.id.root),
            tenant_id=str(tenant.id),
        )
        return created


__all__ = [
    "MAX_MESSAGE_LENGTH",
    "TRANSFER_NOTICE",
    "ConversationOrchestrator",
    "ConversationTranscript",
    "TurnResult",
]
