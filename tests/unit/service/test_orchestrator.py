"""
Tests for ConversationOrchestrator.

These tests demonstrate:
- End-to-end turn behavior against the in-memory store and scripted backends
- Failure semantics (user message kept, no bot message, fallback exactly once)
- Tenant isolation and usage gating with no side effects
- Concurrent turns on one conversation (no lost or duplicate messages)
"""

import asyncio
from pathlib import Path
from uuid import uuid4

import pytest

from widgetchat.domain.domain_error import (
    AIUnavailableError,
    InputValidationError,
    InvalidTransitionError,
    LimitExceededError,
    NotFoundError,
)
from widgetchat.domain.domain_type import (
    ChatRole,
    Complexity,
    ConversationStatus,
    LimitType,
    MessageSender,
    ModelTier,
    TenantPlan,
)
from widgetchat.domain.domain_value import Chatbot, ConversationId, ConversationRecord, StoredMessage, Tenant, Widget
from widgetchat.domain.model_backend import BackendPool, ModelBackend
from widgetchat.domain.model_catalog import ModelSpec, TierRegistry
from widgetchat.domain.plan_catalog import PLAN_CATALOG, PlanCatalog
from widgetchat.service.conversation import TRANSFER_NOTICE, ConversationOrchestrator
from widgetchat.service.usage import UsageLimiter


CATALOG_PATH = Path(__file__).parents[3] / "src" / "widgetchat" / "domain" / "model_metadata.json"


def _pool(backends, *, broken: set[ModelTier]) -> BackendPool:
    """Real BackendPool whose factory fails for the given tiers, like a missing provider key."""
    registry = TierRegistry.from_json_file(CATALOG_PATH)
    by_spec = {registry.spec_for(tier): tier for tier in ModelTier}

    def factory(spec: ModelSpec) -> ModelBackend:
        tier = by_spec[spec]
        if tier in broken:
            raise RuntimeError(f"Set the API key for {spec.vendor.value}")
        return backends[tier]

    return BackendPool(registry, factory=factory)


async def _turn(orchestrator, tenant: Tenant, chatbot: Chatbot, widget: Widget, message: str, **kwargs):
    return await orchestrator.submit_message(
        tenant_id=tenant.id,
        widget_id=widget.id,
        chatbot_id=chatbot.id,
        message=message,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_acme_end_to_end_turn(orchestrator, seeded_store, backends, tenant, chatbot, widget):
    """
    Demonstrates: The full happy path.

    Starter tenant, medium message -> economy model; conversation ends with
    exactly USER then BOT and stays ACTIVE.
    """
    result = await _turn(orchestrator, tenant, chatbot, widget, "How do I reset my password?")

    assert result.complexity == Complexity.MEDIUM
    assert result.tier == ModelTier.ECONOMY
    assert result.model_used == "google:gemini-2.5-flash"
    assert result.bot_message.content == "Here's how to reset your password..."
    assert not result.fell_back

    messages = await seeded_store.list_messages(result.conversation_id)
    assert [m.sender for m in messages] == [MessageSender.USER, MessageSender.BOT]
    assert messages[0].content == "How do I reset my password?"

    conversation = await seeded_store.get_conversation(result.conversation_id)
    assert conversation.status == ConversationStatus.ACTIVE
    assert conversation.widget_id == widget.id
    assert conversation.user_id.startswith("anonymous_")

    message, context = backends[ModelTier.ECONOMY].calls[0]
    assert message == "How do I reset my password?"
    assert context.history == ()
    assert context.system_prompt == "You are Acme's support bot"


@pytest.mark.asyncio
async def test_follow_up_turn_sees_prior_messages(orchestrator, backends, tenant, chatbot, widget):
    first = await _turn(orchestrator, tenant, chatbot, widget, "Hi")
    await _turn(orchestrator, tenant, chatbot, widget, "Thanks", conversation_id=first.conversation_id)

    _, context = backends[ModelTier.ECONOMY].calls[-1]
    assert [(t.role, t.content) for t in context.history] == [
        (ChatRole.USER, "Hi"),
        (ChatRole.ASSISTANT, "Here's how to reset your password..."),
    ]


@pytest.mark.asyncio
async def test_context_is_capped_at_window(seeded_store, resolver, backends, tenant, chatbot, widget):
    orchestrator = ConversationOrchestrator(store=seeded_store, backends=resolver, context_window=3)
    first = await _turn(orchestrator, tenant, chatbot, widget, "one")
    await _turn(orchestrator, tenant, chatbot, widget, "two", conversation_id=first.conversation_id)
    await _turn(orchestrator, tenant, chatbot, widget, "three", conversation_id=first.conversation_id)

    _, context = backends[ModelTier.ECONOMY].calls[-1]
    assert len(context.history) == 3
    assert [t.content for t in context.history][1] == "two"
    assert context.history[0].role == ChatRole.ASSISTANT


@pytest.mark.asyncio
async def test_enterprise_complex_message_routes_to_premium_deep(seeded_store, resolver, backends, chatbot, widget):
    enterprise = Tenant(name="BigCo", plan=TenantPlan.ENTERPRISE)
    bot = chatbot.model_copy(update={"id": uuid4(), "tenant_id": enterprise.id})
    seeded_store.tenants[enterprise.id] = enterprise
    seeded_store.chatbots[bot.id] = bot
    orchestrator = ConversationOrchestrator(store=seeded_store, backends=resolver)

    result = await _turn(orchestrator, enterprise, bot, widget, "Please compare the annual and monthly plans")

    assert result.tier == ModelTier.PREMIUM_DEEP
    assert len(backends[ModelTier.PREMIUM_DEEP].calls) == 1


@pytest.mark.asyncio
async def test_provider_failure_falls_back_exactly_once(orchestrator, seeded_store, backends, tenant, chatbot, widget):
    """
    Demonstrates: One retry on the fallback tier, attributed to the fallback model.
    """
    backends[ModelTier.ECONOMY].fail = True

    result = await _turn(orchestrator, tenant, chatbot, widget, "How do I reset my password?")

    assert result.fell_back
    assert result.tier == ModelTier.STANDARD
    assert result.model_used == "openai:gpt-4o"
    assert len(backends[ModelTier.ECONOMY].calls) == 1
    assert len(backends[ModelTier.STANDARD].calls) == 1


@pytest.mark.asyncio
async def test_both_failures_raise_ai_unavailable_and_keep_user_message(
    orchestrator, seeded_store, backends, tenant, chatbot, widget
):
    """
    Demonstrates: At-least-once user capture.

    The turn fails, but the user's message is stored and no bot message is.
    """
    backends[ModelTier.ECONOMY].fail = True
    backends[ModelTier.STANDARD].fail = True

    with pytest.raises(AIUnavailableError) as excinfo:
        await _turn(orchestrator, tenant, chatbot, widget, "How do I reset my password?")

    assert excinfo.value.attempts == ("google:gemini-2.5-flash", "openai:gpt-4o")
    assert len(backends[ModelTier.STANDARD].calls) == 1

    conversation_id = ConversationId(root=excinfo.value.conversation_id)
    messages = await seeded_store.list_messages(conversation_id)
    assert [m.sender for m in messages] == [MessageSender.USER]


@pytest.mark.asyncio
async def test_no_second_attempt_when_primary_is_the_fallback(seeded_store, resolver, backends, chatbot, widget):
    business = Tenant(name="MidCo", plan=TenantPlan.BUSINESS)
    bot = chatbot.model_copy(update={"id": uuid4(), "tenant_id": business.id})
    seeded_store.tenants[business.id] = business
    seeded_store.chatbots[bot.id] = bot
    backends[ModelTier.STANDARD].fail = True
    orchestrator = ConversationOrchestrator(store=seeded_store, backends=resolver)

    with pytest.raises(AIUnavailableError) as excinfo:
        await _turn(orchestrator, business, bot, widget, "How do I reset my password?")

    assert excinfo.value.attempts == ("openai:gpt-4o",)
    assert len(backends[ModelTier.STANDARD].calls) == 1


@pytest.mark.asyncio
async def test_conversation_of_other_tenant_is_not_found(orchestrator, seeded_store, resolver, tenant, chatbot, widget):
    """
    Demonstrates: Tenant isolation with no side effects.
    """
    other = ConversationRecord(tenant_id=uuid4(), user_id="visitor")
    await seeded_store.create_conversation(other)

    with pytest.raises(NotFoundError):
        await _turn(orchestrator, tenant, chatbot, widget, "Hello?", conversation_id=other.id)

    assert await seeded_store.list_messages(other.id) == []
    assert sum(len(msgs) for msgs in seeded_store.messages.values()) == 0
    assert resolver.total_calls == 0


@pytest.mark.asyncio
async def test_chatbot_of_other_tenant_is_not_found(orchestrator, seeded_store, tenant, widget):
    foreign_bot = Chatbot(tenant_id=uuid4())
    seeded_store.chatbots[foreign_bot.id] = foreign_bot

    with pytest.raises(NotFoundError):
        await _turn(orchestrator, tenant, foreign_bot, widget, "Hello")

    assert seeded_store.conversations == {}


@pytest.mark.asyncio
@pytest.mark.parametrize("message", ["", "   ", "x" * 1001])
async def test_invalid_message_has_no_side_effects(orchestrator, seeded_store, resolver, tenant, chatbot, widget, message):
    with pytest.raises(InputValidationError):
        await _turn(orchestrator, tenant, chatbot, widget, message)

    assert seeded_store.conversations == {}
    assert resolver.total_calls == 0


@pytest.mark.asyncio
async def test_closed_conversation_rejects_turns(orchestrator, seeded_store, resolver, tenant, chatbot, widget):
    first = await _turn(orchestrator, tenant, chatbot, widget, "Hi")
    await orchestrator.close_conversation(tenant_id=tenant.id, conversation_id=first.conversation_id)

    with pytest.raises(InvalidTransitionError):
        await _turn(orchestrator, tenant, chatbot, widget, "Still there?", conversation_id=first.conversation_id)

    assert len(await seeded_store.list_messages(first.conversation_id)) == 2
    assert resolver.total_calls == 1


@pytest.mark.asyncio
async def test_conversation_limit_blocks_before_any_ai_call(seeded_store, resolver, tenant, chatbot, widget):
    """
    Demonstrates: Limit gating.

    Starter plan allows 500 conversations; with 500 already this month a new
    conversation is rejected and no backend is invoked.
    """
    for _ in range(500):
        await seeded_store.create_conversation(ConversationRecord(tenant_id=tenant.id, user_id="visitor"))
    orchestrator = ConversationOrchestrator(
        store=seeded_store,
        backends=resolver,
        limiter=UsageLimiter(seeded_store),
    )

    with pytest.raises(LimitExceededError) as excinfo:
        await _turn(orchestrator, tenant, chatbot, widget, "How do I reset my password?")

    assert excinfo.value.limit_type == LimitType.CONVERSATIONS
    assert (excinfo.value.used, excinfo.value.limit) == (500, 500)
    assert resolver.total_calls == 0
    assert len(seeded_store.conversations) == 500


@pytest.mark.asyncio
async def test_message_limit_blocks_turn_on_existing_conversation(seeded_store, resolver, tenant, chatbot, widget):
    tight = PlanCatalog.model_validate(
        {
            **PLAN_CATALOG.root,
            TenantPlan.STARTER: {
                "features": PLAN_CATALOG.features(TenantPlan.STARTER),
                "limits": {"conversations": 500, "messages": 2, "agents": 2},
            },
        }
    )
    orchestrator = ConversationOrchestrator(
        store=seeded_store,
        backends=resolver,
        limiter=UsageLimiter(seeded_store, catalog=tight),
    )
    first = await _turn(orchestrator, tenant, chatbot, widget, "Hi")

    with pytest.raises(LimitExceededError) as excinfo:
        await _turn(orchestrator, tenant, chatbot, widget, "Again", conversation_id=first.conversation_id)

    assert excinfo.value.limit_type == LimitType.MESSAGES
    assert resolver.total_calls == 1


@pytest.mark.asyncio
async def test_concurrent_turns_lose_no_messages(orchestrator, seeded_store, tenant, chatbot, widget):
    """
    Demonstrates: Interleaving is allowed, corruption is not.

    Turns on one conversation are not serialized, so a reply may miss a racing
    message, but every message is stored once with a unique id.
    """
    first = await _turn(orchestrator, tenant, chatbot, widget, "Hi")

    results = await asyncio.gather(
        *(
            _turn(orchestrator, tenant, chatbot, widget, f"question {i}", conversation_id=first.conversation_id)
            for i in range(10)
        )
    )

    messages = await seeded_store.list_messages(first.conversation_id)
    assert len(messages) == 2 + 2 * 10
    assert len({m.id for m in messages}) == len(messages)
    user_texts = {m.content for m in messages if m.sender == MessageSender.USER}
    assert user_texts == {"Hi", *(f"question {i}" for i in range(10))}
    assert {r.bot_message.id for r in results} <= {m.id for m in messages}


# ---------------------------------------------------------------------------
# Lifecycle operations
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_open_conversation_returns_welcome_message(orchestrator, seeded_store, tenant, chatbot, widget):
    conversation, welcome = await orchestrator.open_conversation(
        tenant_id=tenant.id,
        widget_id=widget.id,
        chatbot_id=chatbot.id,
        user_id="visitor-42",
    )

    assert welcome == chatbot.welcome_message
    assert conversation.user_id == "visitor-42"
    assert await seeded_store.get_conversation(conversation.id) == conversation


@pytest.mark.asyncio
async def test_history_is_tenant_scoped(orchestrator, tenant, chatbot, widget):
    result = await _turn(orchestrator, tenant, chatbot, widget, "Hi")

    transcript = await orchestrator.get_history(tenant_id=tenant.id, conversation_id=result.conversation_id)
    assert [m.content for m in transcript.messages] == ["Hi", "Here's how to reset your password..."]

    with pytest.raises(NotFoundError):
        await orchestrator.get_history(tenant_id=uuid4(), conversation_id=result.conversation_id)


@pytest.mark.asyncio
async def test_close_records_rating_and_feedback(orchestrator, seeded_store, tenant, chatbot, widget):
    result = await _turn(orchestrator, tenant, chatbot, widget, "Hi")

    closed = await orchestrator.close_conversation(
        tenant_id=tenant.id,
        conversation_id=result.conversation_id,
        rating=4,
        feedback="Quick answer",
    )

    stored = await seeded_store.get_conversation(result.conversation_id)
    assert stored == closed
    assert (stored.status, stored.rating, stored.feedback) == (ConversationStatus.CLOSED, 4, "Quick answer")


@pytest.mark.asyncio
async def test_transfer_marks_pending_and_notifies_user(orchestrator, seeded_store, tenant, chatbot, widget):
    result = await _turn(orchestrator, tenant, chatbot, widget, "I want a human")

    pending = await orchestrator.request_transfer(
        tenant_id=tenant.id,
        conversation_id=result.conversation_id,
        reason="asked for agent",
    )

    assert pending.status == ConversationStatus.PENDING_TRANSFER
    messages: list[StoredMessage] = await seeded_store.list_messages(result.conversation_id)
    assert messages[-1].sender == MessageSender.BOT
    assert messages[-1].content == TRANSFER_NOTICE


@pytest.mark.asyncio
async def test_turns_continue_while_transfer_is_pending(orchestrator, tenant, chatbot, widget):
    result = await _turn(orchestrator, tenant, chatbot, widget, "Hi")
    await orchestrator.request_transfer(tenant_id=tenant.id, conversation_id=result.conversation_id)

    follow_up = await _turn(orchestrator, tenant, chatbot, widget, "Still waiting", conversation_id=result.conversation_id)

    assert follow_up.conversation_id == result.conversation_id


# ---------------------------------------------------------------------------
# Backend construction failures and shared models
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_unbuildable_primary_backend_falls_back(seeded_store, backends, tenant, chatbot, widget):
    """
    Demonstrates: A backend that cannot be built counts as a failed attempt.

    The economy model has no credentials; the turn is answered by the fallback
    model instead of escaping as a provider-specific error.
    """
    orchestrator = ConversationOrchestrator(store=seeded_store, backends=_pool(backends, broken={ModelTier.ECONOMY}))

    result = await _turn(orchestrator, tenant, chatbot, widget, "hi")

    assert result.fell_back
    assert result.model_used == "openai:gpt-4o"
    assert len(backends[ModelTier.STANDARD].calls) == 1
    assert backends[ModelTier.ECONOMY].calls == []


@pytest.mark.asyncio
async def test_unbuildable_primary_and_fallback_raise_ai_unavailable(seeded_store, backends, tenant, chatbot, widget):
    orchestrator = ConversationOrchestrator(
        store=seeded_store,
        backends=_pool(backends, broken={ModelTier.ECONOMY, ModelTier.STANDARD}),
    )

    with pytest.raises(AIUnavailableError) as excinfo:
        await _turn(orchestrator, tenant, chatbot, widget, "hi")

    assert excinfo.value.attempts == ("google:gemini-2.5-flash", "openai:gpt-4o")
    messages = await seeded_store.list_messages(ConversationId(root=excinfo.value.conversation_id))
    assert [m.sender for m in messages] == [MessageSender.USER]


@pytest.mark.asyncio
async def test_fallback_bound_to_failed_model_is_not_called_again(
    seeded_store, resolver, backends, tenant, chatbot, widget
):
    """
    Demonstrates: The fallback is skipped by model, not by tier name.

    Economy and standard share one model here; when it fails there is no
    second call to it.
    """
    shared = backends[ModelTier.STANDARD]
    shared.fail = True
    resolver.backends[ModelTier.ECONOMY] = shared
    orchestrator = ConversationOrchestrator(store=seeded_store, backends=resolver)

    with pytest.raises(AIUnavailableError) as excinfo:
        await _turn(orchestrator, tenant, chatbot, widget, "hi")

    assert excinfo.value.attempts == ("openai:gpt-4o",)
    assert len(shared.calls) == 1
