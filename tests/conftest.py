"""
Shared test fixtures and configuration.

Environment strategy:
- All tests use .env.test (in-memory store, dummy provider keys)
- Model backends are replaced by scripted fakes; no network is touched
"""

import asyncio
from pathlib import Path

import pytest
from dotenv import load_dotenv

ENV_FILE = Path(__file__).parent.parent / ".env.test"

load_dotenv(ENV_FILE, override=True)

from widgetchat.domain.conversation import TurnContext
from widgetchat.domain.domain_error import ProviderError
from widgetchat.domain.domain_type import ModelTier, TenantPlan
from widgetchat.domain.domain_value import Chatbot, Tenant, Widget
from widgetchat.domain.normalizer import NormalizedResponse
from widgetchat.service.conversation import ConversationOrchestrator
from widgetchat.service.storage import InMemoryChatStore
from widgetchat.service.usage import UsageLimiter


class ScriptedBackend:
    """ModelBackend fake that records every call and replies or fails on demand."""

    def __init__(self, model_name: str, reply: str = "Here's how to reset your password...", *, fail: bool = False):
        self._model_name = model_name
        self.reply = reply
        self.fail = fail
        self.calls: list[tuple[str, TurnContext]] = []

    @property
    def model_name(self) -> str:
        return self._model_name

    async def generate(self, message: str, context: TurnContext) -> NormalizedResponse:
        self.calls.append((message, context))
        await asyncio.sleep(0)
        if self.fail:
            raise ProviderError(self._model_name, "timeout after 30.0s")
        return NormalizedResponse(content=self.reply, tokens_used=42, cost_estimate=0.0001)


class StaticResolver:
    """BackendResolver fake: one ScriptedBackend per tier."""

    def __init__(self, backends: dict[ModelTier, ScriptedBackend], fallback: ModelTier = ModelTier.STANDARD):
        self.backends = backends
        self._fallback = fallback

    @property
    def fallback_tier(self) -> ModelTier:
        return self._fallback

    def get_backend(self, tier: ModelTier) -> ScriptedBackend:
        return self.backends[tier]

    @property
    def total_calls(self) -> int:
        return sum(len(b.calls) for b in self.backends.values())


@pytest.fixture
def store() -> InMemoryChatStore:
    return InMemoryChatStore()


@pytest.fixture
def tenant() -> Tenant:
    """Tenant 'Acme' on the starter plan."""
    return Tenant(name="Acme", plan=TenantPlan.STARTER)


@pytest.fixture
def chatbot(tenant: Tenant) -> Chatbot:
    return Chatbot(tenant_id=tenant.id, system_prompt="You are Acme's support bot")


@pytest.fixture
def widget(tenant: Tenant, chatbot: Chatbot) -> Widget:
    return Widget(tenant_id=tenant.id, chatbot_id=chatbot.id, allowed_domains=("acme.com",))


@pytest.fixture
def seeded_store(store: InMemoryChatStore, tenant: Tenant, chatbot: Chatbot, widget: Widget) -> InMemoryChatStore:
    """In-memory store holding the Acme tenant, chatbot and widget."""
    store.tenants[tenant.id] = tenant
    store.chatbots[chatbot.id] = chatbot
    store.widgets[widget.id] = widget
    return store


@pytest.fixture
def backends() -> dict[ModelTier, ScriptedBackend]:
    return {
        ModelTier.ECONOMY: ScriptedBackend("google:gemini-2.5-flash"),
        ModelTier.STANDARD: ScriptedBackend("openai:gpt-4o"),
        ModelTier.PREMIUM_FAST: ScriptedBackend("openai:gpt-4.1"),
        ModelTier.PREMIUM_DEEP: ScriptedBackend("anthropic:claude-sonnet-4-5-20250929"),
    }


@pytest.fixture
def resolver(backends: dict[ModelTier, ScriptedBackend]) -> StaticResolver:
    return StaticResolver(backends)


@pytest.fixture
def orchestrator(seeded_store: InMemoryChatStore, resolver: StaticResolver) -> ConversationOrchestrator:
    return ConversationOrchestrator(
        store=seeded_store,
        backends=resolver,
        limiter=UsageLimiter(seeded_store),
    )
