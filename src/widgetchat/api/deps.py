"""API dependency wiring - thin DI glue over the chat core.

Every collaborator is a cached singleton built from settings. Tests replace
them through FastAPI's dependency_overrides rather than patching modules.
"""

from functools import lru_cache
from pathlib import Path

from ..config import settings
from ..domain.complexity import ComplexityClassifier
from ..domain.model_backend import BackendPool
from ..domain.model_catalog import TierRegistry
from ..domain.model_selector import ModelSelector
from ..service import ConversationOrchestrator, UsageLimiter
from ..service.storage import ChatStore, MemoryStoreConfig, StorageService, create_storage_service


@lru_cache(maxsize=1)
def get_storage_service() -> StorageService:
    """Create storage service from config (cached singleton)."""
    return create_storage_service(
        memory_config=MemoryStoreConfig(backend=settings.storage_backend, url=settings.redis_url),
    )


def get_chat_store() -> ChatStore:
    return get_storage_service().get_chat_store()


@lru_cache(maxsize=1)
def get_tier_registry() -> TierRegistry:
    """Load tier bindings and model pricing from the catalog file (cached singleton)."""
    return TierRegistry.from_json_file(Path(settings.model_catalog_path), fallback=settings.fallback_tier)


@lru_cache(maxsize=1)
def get_backend_pool() -> BackendPool:
    """Create backend pool with provider credentials (cached singleton)."""
    return BackendPool(
        get_tier_registry(),
        api_keys=settings.api_keys,
        timeouts=settings.provider_timeouts,
    )


@lru_cache(maxsize=1)
def get_classifier() -> ComplexityClassifier:
    return ComplexityClassifier(
        complex_length=settings.classifier_complex_length,
        medium_length=settings.classifier_medium_length,
        complex_questions=settings.classifier_complex_questions,
        keywords=tuple(settings.classifier_keywords.split(",")),
    )


@lru_cache(maxsize=1)
def get_usage_limiter() -> UsageLimiter:
    return UsageLimiter(get_chat_store())


@lru_cache(maxsize=1)
def get_orchestrator() -> ConversationOrchestrator:
    """
    Create the turn orchestrator (cached singleton).

    Store, limiter and backends are handed in explicitly; the orchestrator
    never reaches for module-level clients.
    """
    return ConversationOrchestrator(
        store=get_chat_store(),
        backends=get_backend_pool(),
        limiter=get_usage_limiter(),
        classifier=get_classifier(),
        selector=ModelSelector(),
        context_window=settings.context_window,
        max_message_length=settings.max_message_length,
    )


__all__ = [
    "get_backend_pool",
    "get_chat_store",
    "get_classifier",
    "get_orchestrator",
    "get_storage_service",
    "get_tier_registry",
    "get_usage_limiter",
]
