"""Storage service - the chat core's persistence collaborator.

The core talks to a ChatStore; two implementations ship:

    RedisChatStore     production store on redis.asyncio
    InMemoryChatStore  process-local store for tests and local development

Redis layout:
    tenant:{id} / chatbot:{id} / widget:{id}     JSON documents
    conversation:{id}                             hash (fields patched independently)
    conversation:{id}:messages                    list of message JSON, creation order
    tenant:{id}:conversations                     sorted set, member=conversation id, score=created_at
    tenant:{id}:messages                          sorted set, member=message id, score=created_at
"""

from __future__ import annotations

import asyncio
import json
from collections import defaultdict
from datetime import datetime
from typing import TYPE_CHECKING, Any, Literal, Protocol
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from ..domain.domain_value import Chatbot, ConversationId, ConversationRecord, StoredMessage, Tenant, Widget

if TYPE_CHECKING:
    from redis.asyncio import Redis


class ChatStore(Protocol):
    """Persistence operations the chat core depends on."""

    async def get_tenant(self, tenant_id: UUID) -> Tenant | None: ...
    async def save_tenant(self, tenant: Tenant) -> None: ...
    async def get_chatbot(self, chatbot_id: UUID) -> Chatbot | None: ...
    async def save_chatbot(self, chatbot: Chatbot) -> None: ...
    async def get_widget(self, widget_id: UUID) -> Widget | None: ...
    async def save_widget(self, widget: Widget) -> None: ...
    async def create_conversation(self, conversation: ConversationRecord) -> ConversationRecord: ...
    async def get_conversation(self, conversation_id: ConversationId) -> ConversationRecord | None: ...
    async def update_conversation(self, conversation: ConversationRecord) -> None: ...
    async def append_message(self, message: StoredMessage) -> StoredMessage: ...
    async def recent_messages(self, conversation_id: ConversationId, limit: int) -> list[StoredMessage]: ...
    async def list_messages(self, conversation_id: ConversationId) -> list[StoredMessage]: ...
    async def count_conversations(self, tenant_id: UUID, since: datetime) -> int: ...
    async def count_messages(self, tenant_id: UUID, since: datetime) -> int: ...
    async def ping(self) -> bool: ...
    async def close(self) -> None: ...


# =============================================================================
# Redis
# =============================================================================


def _conversation_to_hash(conversation: ConversationRecord) -> dict[str, str]:
    data = conversation.model_dump(mode="json", exclude_none=True)
    return {key: value if isinstance(value, str) else json.dumps(value) for key, value in data.items()}


def _conversation_from_hash(data: dict[str, str]) -> ConversationRecord:
    decoded: dict[str, Any] = dict(data)
    if "metadata" in decoded:
        decoded["metadata"] = json.loads(decoded["metadata"])
    return ConversationRecord.model_validate(decoded)


class RedisChatStore:
    """ChatStore on Redis.

    append_message runs its writes in one MULTI/EXEC pipeline so the message
    list, the tenant counter and the conversation's updated_at move together.
    """

    def __init__(self, redis: Redis):
        self.redis = redis

    # --- configuration entities ---------------------------------------------

    async def _get_json(self, key: str) -> str | None:
        return await self.redis.get(key)

    async def get_tenant(self, tenant_id: UUID) -> Tenant | None:
        data = await self._get_json(f"tenant:{tenant_id}")
        return Tenant.model_validate_json(data) if data else None

    async def save_tenant(self, tenant: Tenant) -> None:
        await self.redis.set(f"tenant:{tenant.id}", tenant.model_dump_json(exclude={"features", "limits"}))

    async def get_chatbot(self, chatbot_id: UUID) -> Chatbot | None:
        data = await self._get_json(f"chatbot:{chatbot_id}")
        return Chatbot.model_validate_json(data) if data else None

    async def save_chatbot(self, chatbot: Chatbot) -> None:
        await self.redis.set(f"chatbot:{chatbot.id}", chatbot.model_dump_json())

    async def get_widget(self, widget_id: UUID) -> Widget | None:
        data = await self._get_json(f"widget:{widget_id}")
        return Widget.model_validate_json(data) if data else None

    async def save_widget(self, widget: Widget) -> None:
        await self.redis.set(f"widget:{widget.id}", widget.model_dump_json())

    # --- conversations -------------------------------------------------------

    async def create_conversation(self, conversation: ConversationRecord) -> ConversationRecord:
        conv_key = f"conversation:{conversation.id.root}"
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.hset(conv_key, mapping=_conversation_to_hash(conversation))
            pipe.zadd(
                f"tenant:{conversation.tenant_id}:conversations",
                {str(conversation.id.root): conversation.created_at.timestamp()},
            )
            await pipe.execute()
        return conversation

    async def get_conversation(self, conversation_id: ConversationId) -> ConversationRecord | None:
        data = await self.redis.hgetall(f"conversation:{conversation_id.root}")
        return _conversation_from_hash(data) if data else None

    async def update_conversation(self, conversation: ConversationRecord) -> None:
        await self.redis.hset(f"conversation:{conversation.id.root}", mapping=_conversation_to_hash(conversation))

    # --- messages --------------------------------------------------------------

    async def append_message(self, message: StoredMessage) -> StoredMessage:
        conv_key = f"conversation:{message.conversation_id.root}"
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.rpush(f"{conv_key}:messages", message.model_dump_json())
            pipe.zadd(f"tenant:{message.tenant_id}:messages", {str(message.id.root): message.created_at.timestamp()})
            pipe.hset(conv_key, "updated_at", message.created_at.isoformat())
            await pipe.execute()
        return message

    async def recent_messages(self, conversation_id: ConversationId, limit: int) -> list[StoredMessage]:
        if limit <= 0:
            return []
        raw = await self.redis.lrange(f"conversation:{conversation_id.root}:messages", -limit, -1)
        return [StoredMessage.model_validate_json(item) for item in raw]

    async def list_messages(self, conversation_id: ConversationId) -> list[StoredMessage]:
        raw = await self.redis.lrange(f"conversation:{conversation_id.root}:messages", 0, -1)
        return [StoredMessage.model_validate_json(item) for item in raw]

    # --- usage counters ----------------------------------------------------------

    async def count_conversations(self, tenant_id: UUID, since: datetime) -> int:
        return await self.redis.zcount(f"tenant:{tenant_id}:conversations", since.timestamp(), "+inf")

    async def count_messages(self, tenant_id: UUID, since: datetime) -> int:
        return await self.redis.zcount(f"tenant:{tenant_id}:messages", since.timestamp(), "+inf")

    async def ping(self) -> bool:
        return bool(await self.redis.ping())

    async def close(self) -> None:
        await self.redis.aclose()


# =============================================================================
# In-memory
# =============================================================================


class InMemoryChatStore:
    """Process-local ChatStore.

    Every call awaits asyncio.sleep(0) so concurrent turns interleave at the
    same points they would against a real database.
    """

    def __init__(self) -> None:
        self.tenants: dict[UUID, Tenant] = {}
        self.chatbots: dict[UUID, Chatbot] = {}
        self.widgets: dict[UUID, Widget] = {}
        self.conversations: dict[ConversationId, ConversationRecord] = {}
        self.messages: defaultdict[ConversationId, list[StoredMessage]] = defaultdict(list)

    async def _yield(self) -> None:
        await asyncio.sleep(0)

    async def get_tenant(self, tenant_id: UUID) -> Tenant | None:
        await self._yield()
        return self.tenants.get(tenant_id)

    async def save_tenant(self, tenant: Tenant) -> None:
        await self._yield()
        self.tenants[tenant.id] = tenant

    async def get_chatbot(self, chatbot_id: UUID) -> Chatbot | None:
        await self._yield()
        return self.chatbots.get(chatbot_id)

    async def save_chatbot(self, chatbot: Chatbot) -> None:
        await self._yield()
        self.chatbots[chatbot.id] = chatbot

    async def get_widget(self, widget_id: UUID) -> Widget | None:
        await self._yield()
        return self.widgets.get(widget_id)

    async def save_widget(self, widget: Widget) -> None:
        await self._yield()
        self.widgets[widget.id] = widget

    async def create_conversation(self, conversation: ConversationRecord) -> ConversationRecord:
        await self._yield()
        self.conversations[conversation.id] = conversation
        return conversation

    async def get_conversation(self, conversation_id: ConversationId) -> ConversationRecord | None:
        await self._yield()
        return self.conversations.get(conversation_id)

    async def update_conversation(self, conversation: ConversationRecord) -> None:
        await self._yield()
        self.conversations[conversation.id] = conversation

    async def append_message(self, message: StoredMessage) -> StoredMessage:
        await self._yield()
        self.messages[message.conversation_id].append(message)
        current = self.conversations.get(message.conversation_id)
        if current is not None:
            self.conversations[message.conversation_id] = current.model_copy(update={"updated_at": message.created_at})
        return message

    async def recent_messages(self, conversation_id: ConversationId, limit: int) -> list[StoredMessage]:
        await self._yield()
        if limit <= 0:
            return []
        return list(self.messages.get(conversation_id, [])[-limit:])

    async def list_messages(self, conversation_id: ConversationId) -> list[StoredMessage]:
        await self._yield()
        return list(self.messages.get(conversation_id, []))

    async def count_conversations(self, tenant_id: UUID, since: datetime) -> int:
        await self._yield()
        return sum(1 for c in self.conversations.values() if c.tenant_id == tenant_id and c.created_at >= since)

    async def count_messages(self, tenant_id: UUID, since: datetime) -> int:
        await self._yield()
        return sum(
            1 for msgs in self.messages.values() for m in msgs if m.tenant_id == tenant_id and m.created_at >= since
        )

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


# =============================================================================
# Service
# =============================================================================


class MemoryStoreConfig(BaseModel):
    """Chat store selection and Redis connection configuration."""

    backend: Literal["redis", "memory"] = "redis"
    url: str = "redis://localhost:6379/0"

    model_config = ConfigDict(frozen=True)


class StorageService:
    """
    Thin orchestrator - lazy-loads the chat store from config.

    Responsibilities:
    - Provide the ChatStore used by the orchestrator and usage limiter
    - Lazy initialization for faster startup
    - Close the underlying client on shutdown
    """

    def __init__(self, memory_config: MemoryStoreConfig):
        self.memory_config = memory_config
        self._store: ChatStore | None = None

    def get_chat_store(self) -> ChatStore:
        """Get or create the chat store (lazy)."""
        if self._store is None:
            if self.memory_config.backend == "memory":
                self._store = InMemoryChatStore()
            else:
                from redis.asyncio import Redis

                self._store = RedisChatStore(Redis.from_url(self.memory_config.url, decode_responses=True))
        return self._store

    async def close(self) -> None:
        if self._store is not None:
            await self._store.close()
            self._store = None


def create_storage_service(memory_config: MemoryStoreConfig) -> StorageService:
    """Factory from infrastructure configs."""
    return StorageService(memory_config)


__all__ = [
    "ChatStore",
    "InMemoryChatStore",
    "MemoryStoreConfig",
    "RedisChatStore",
    "StorageService",
    "create_storage_service",
]
