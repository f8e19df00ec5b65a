"""Model Backends - One Adapter per AI Provider behind a Uniform Contract.

Every backend satisfies ModelBackend:

    async generate(message, context) -> NormalizedResponse   (raises ProviderError)

Backends drive a Pydantic AI Agent. The per-provider subclasses differ in how
they translate the canonical TurnContext into the provider's conversation
shape and in their sampling settings:

    OpenAIBackend     structured user/assistant history
    AnthropicBackend  structured history with consecutive same-role turns merged
    GeminiBackend     history flattened into one transcript prompt

Each call runs under a hard timeout. Any failure (timeout, HTTP error, quota,
auth, empty output) is re-raised as ProviderError so nothing provider-specific
reaches the orchestrator.

BackendPool caches one backend per ModelSpec. Agents are stateless between
runs, so one instance safely serves concurrent turns.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import TYPE_CHECKING, ClassVar, Protocol, runtime_checkable

import logfire
from pydantic_ai import Agent, RunContext
from pydantic_ai.messages import ModelMessage, ModelRequest, ModelResponse, TextPart, UserPromptPart
from pydantic_ai.settings import ModelSettings

from .conversation import ContextMessage, TurnContext
from .domain_error import ProviderError
from .domain_type import AIModelVendor, ChatRole, ModelTier
from .model_catalog import ModelSpec, TierRegistry
from .normalizer import NormalizedResponse, RawCompletion, TokenRates, normalize

if TYPE_CHECKING:
    from pydantic_ai.models import Model


@runtime_checkable
class ModelBackend(Protocol):
    """Capability every provider adapter implements."""

    @property
    def model_name(self) -> str: ...

    async def generate(self, message: str, context: TurnContext) -> NormalizedResponse: ...


class AgentBackend:
    """Shared Pydantic AI plumbing for provider adapters.

    Subclasses override the translation hooks (history/prompt) and the
    sampling settings. The Agent is built lazily on first use so that
    constructing a backend never opens a network client.
    """

    vendor: ClassVar[AIModelVendor]
    default_settings: ClassVar[ModelSettings] = ModelSettings(max_tokens=1000, temperature=0.7)

    def __init__(
        self,
        model: Model | str,
        *,
        model_name: str,
        rates: TokenRates | None = None,
        timeout: float = 30.0,
        settings: ModelSettings | None = None,
    ):
        if timeout <= 0:
            raise ValueError("Backend timeout must be positive")
        self._model = model
        self._model_name = model_name
        self.rates = rates or TokenRates()
        self.timeout = timeout
        self.settings = settings or self.default_settings
        self._agent: Agent[TurnContext, str] | None = None

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def agent(self) -> Agent[TurnContext, str]:
        """Lazy-initialized agent (cached)."""
        if self._agent is None:
            agent: Agent[TurnContext, str] = Agent(self._model, deps_type=TurnContext, output_type=str)

            @agent.instructions
            def turn_instructions(ctx: RunContext[TurnContext]) -> str:
                return ctx.deps.instructions()

            self._agent = agent
        return self._agent

    # --- translation hooks -------------------------------------------------

    def build_history(self, context: TurnContext) -> list[ModelMessage]:
        return [_to_model_message(turn) for turn in context.history]

    def build_prompt(self, message: str, context: TurnContext) -> str:
        return message

    # --- contract ----------------------------------------------------------

    async def generate(self, message: str, context: TurnContext) -> NormalizedResponse:
        raw = await self._complete(message, context)
        return normalize(raw, self.rates, model=self.model_name)

    async def _complete(self, message: str, context: TurnContext) -> RawCompletion:
        try:
            async with asyncio.timeout(self.timeout):
                result = await self.agent.run(
                    self.build_prompt(message, context),
                    message_history=self.build_history(context) or None,
                    deps=context,
                    model_settings=self.settings,
                )
        except TimeoutError as exc:
            raise ProviderError(self.model_name, f"timeout after {self.timeout}s") from exc
        except Exception as exc:
            # provider SDKs raise their own hierarchies; none of them may escape the adapter
            raise ProviderError(self.model_name, f"{type(exc).__name__}: {exc}") from exc

        usage = result.usage()
        return RawCompletion(
            content=result.output,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            total_tokens=usage.total_tokens,
        )


def _to_model_message(turn: ContextMessage) -> ModelMessage:
    if turn.role == ChatRole.ASSISTANT:
        return ModelResponse(parts=[TextPart(content=turn.content)])
    return ModelRequest(parts=[UserPromptPart(content=turn.content)])


class OpenAIBackend(AgentBackend):
    """OpenAI chat completions."""

    vendor = AIModelVendor.OPENAI
    default_settings = ModelSettings(
        max_tokens=1000,
        temperature=0.7,
        presence_penalty=0.6,
        frequency_penalty=0.3,
    )

    @classmethod
    def for_spec(cls, spec: ModelSpec, registry: TierRegistry, *, api_key: str | None, timeout: float) -> OpenAIBackend:
        from pydantic_ai.models.openai import OpenAIChatModel
        from pydantic_ai.providers.openai import OpenAIProvider

        model = OpenAIChatModel(spec.to_agent_model(registry.catalog), provider=OpenAIProvider(api_key=api_key))
        return cls(model, model_name=spec.identifier, rates=registry.rates_for(spec), timeout=timeout)


class AnthropicBackend(AgentBackend):
    """Anthropic messages API.

    The history must alternate user/assistant, so consecutive turns from the
    same side (e.g. a user message whose reply failed) are merged.
    """

    vendor = AIModelVendor.ANTHROPIC
    default_settings = ModelSettings(max_tokens=1000, temperature=0.7)

    def build_history(self, context: TurnContext) -> list[ModelMessage]:
        merged: list[ContextMessage] = []
        for turn in context.history:
            if merged and merged[-1].role == turn.role:
                merged[-1] = ContextMessage(role=turn.role, content=f"{merged[-1].content}\n\n{turn.content}")
            else:
                merged.append(turn)
        return [_to_model_message(turn) for turn in merged]

    @classmethod
    def for_spec(
        cls, spec: ModelSpec, registry: TierRegistry, *, api_key: str | None, timeout: float
    ) -> AnthropicBackend:
        from pydantic_ai.models.anthropic import AnthropicModel
        from pydantic_ai.providers.anthropic import AnthropicProvider

        model = AnthropicModel(spec.to_agent_model(registry.catalog), provider=AnthropicProvider(api_key=api_key))
        return cls(model, model_name=spec.identifier, rates=registry.rates_for(spec), timeout=timeout)


class GeminiBackend(AgentBackend):
    """Google Gemini, fed a single transcript prompt instead of a structured history."""

    vendor = AIModelVendor.GOOGLE

    def build_history(self, context: TurnContext) -> list[ModelMessage]:
        return []

    def build_prompt(self, message: str, context: TurnContext) -> str:
        return context.transcript(message)

    @classmethod
    def for_spec(cls, spec: ModelSpec, registry: TierRegistry, *, api_key: str | None, timeout: float) -> GeminiBackend:
        from pydantic_ai.models.google import GoogleModel
        from pydantic_ai.providers.google import GoogleProvider

        model = GoogleModel(spec.to_agent_model(registry.catalog), provider=GoogleProvider(api_key=api_key))
        return cls(model, model_name=spec.identifier, rates=registry.rates_for(spec), timeout=timeout)


BACKEND_CLASSES: dict[AIModelVendor, type[OpenAIBackend] | type[AnthropicBackend] | type[GeminiBackend]] = {
    AIModelVendor.OPENAI: OpenAIBackend,
    AIModelVendor.ANTHROPIC: AnthropicBackend,
    AIModelVendor.GOOGLE: GeminiBackend,
}


class BackendResolver(Protocol):
    """What the orchestrator needs: a backend for a tier, and the fallback tier."""

    @property
    def fallback_tier(self) -> ModelTier: ...

    def get_backend(self, tier: ModelTier) -> ModelBackend: ...


class BackendPool:
    """Provider Client Pool.

    Caches backend instances by ModelSpec to avoid repeated HTTP client
    initialization. Two tiers bound to the same model share one backend.

    Attributes:
        registry: Tier bindings, catalog and pricing
        api_keys: Per-vendor credentials
        timeouts: Per-vendor call bounds (seconds); catalog default when absent
    """

    def __init__(
        self,
        registry: TierRegistry,
        *,
        api_keys: dict[AIModelVendor, str | None] | None = None,
        timeouts: dict[AIModelVendor, float] | None = None,
        factory: Callable[[ModelSpec], ModelBackend] | None = None,
    ):
        self.registry = registry
        self.api_keys = api_keys or {}
        self.timeouts = timeouts or {}
        self._factory = factory or self._build
        self._cache: dict[ModelSpec, ModelBackend] = {}

    @property
    def fallback_tier(self) -> ModelTier:
        return self.registry.fallback

    def get_backend(self, tier: ModelTier) -> ModelBackend:
        """Get or create the cached backend bound to a tier.

        Raises:
            ProviderError: the backend could not be built (missing key, bad
                catalog entry). Failed builds are not cached and are retried
                on the next call.
        """
        spec = self.registry.spec_for(tier)
        if spec not in self._cache:
            try:
                backend = self._factory(spec)
            except Exception as exc:
                raise ProviderError(spec.identifier, f"backend unavailable: {type(exc).__name__}: {exc}") from exc
            self._cache[spec] = backend
            logfire.debug("Created backend {model} for tier {tier}", model=spec.identifier, tier=tier.value)
        return self._cache[spec]

    def _build(self, spec: ModelSpec) -> ModelBackend:
        backend_cls = BACKEND_CLASSES[spec.vendor]
        timeout = self.timeouts.get(spec.vendor) or self.registry.catalog.vendor(spec.vendor).timeout_seconds
        return backend_cls.for_spec(spec, self.registry, api_key=self.api_keys.get(spec.vendor), timeout=timeout)


__all__ = [
    "BACKEND_CLASSES",
    "AgentBackend",
    "AnthropicBackend",
    "BackendPool",
    "BackendResolver",
    "GeminiBackend",
    "ModelBackend",
    "OpenAIBackend",
]
