"""
Integration tests for RedisChatStore against a live Redis.

Demonstrates:
- Testing the production store with the same expectations as the in-memory one
- Testing the conversation hash after partial updates from append_message
- Skipping cleanly when no Redis is reachable (REDIS_URL from .env.test)
"""

from datetime import timedelta
from uuid import uuid4

import pytest
import pytest_asyncio
from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from widgetchat.config import get_settings
from widgetchat.domain.domain_type import ConversationStatus, MessageSender, TenantPlan
from widgetchat.domain.domain_value import ConversationRecord, StoredMessage, Tenant, utc_now
from widgetchat.service.storage import RedisChatStore

pytestmark = pytest.mark.integration


@pytest_asyncio.fixture
async def redis_store():
    client = Redis.from_url(get_settings().redis_url, decode_responses=True)
    try:
        await client.ping()
    except (RedisConnectionError, RedisTimeoutError):
        await client.aclose()
        pytest.skip("Redis not reachable")
    await client.flushdb()
    store = RedisChatStore(client)
    yield store
    await client.flushdb()
    await store.close()


def _message(
    conversation: ConversationRecord, content: str, sender: MessageSender = MessageSender.USER
) -> StoredMessage:
    return StoredMessage(
        conversation_id=conversation.id,
        tenant_id=conversation.tenant_id,
        content=content,
        sender=sender,
    )


@pytest.mark.asyncio
async def test_tenant_round_trips_without_derived_fields(redis_store: RedisChatStore):
    tenant = Tenant(name="Acme", plan=TenantPlan.PROFESSIONAL)

    await redis_store.save_tenant(tenant)

    restored = await redis_store.get_tenant(tenant.id)
    assert restored == tenant
    assert await redis_store.get_tenant(uuid4()) is None


@pytest.mark.asyncio
async def test_conversation_update_round_trips(redis_store: RedisChatStore):
    """
    Demonstrates: A closed conversation reads back exactly as written.
    """
    conversation = await redis_store.create_conversation(
        ConversationRecord(tenant_id=uuid4(), user_id="visitor", metadata={"page": "/pricing"})
    )
    closed = conversation.close(rating=5, feedback="Quick and clear")

    await redis_store.update_conversation(closed)

    restored = await redis_store.get_conversation(conversation.id)
    assert restored == closed
    assert restored.status == ConversationStatus.CLOSED


@pytest.mark.asyncio
async def test_append_keeps_order_and_touches_conversation(redis_store: RedisChatStore):
    conversation = await redis_store.create_conversation(ConversationRecord(tenant_id=uuid4(), user_id="visitor"))

    for i in range(4):
        last = await redis_store.append_message(_message(conversation, f"m{i}"))

    stored = await redis_store.get_conversation(conversation.id)
    assert stored.updated_at == last.created_at
    assert [m.content for m in await redis_store.list_messages(conversation.id)] == ["m0", "m1", "m2", "m3"]
    assert [m.content for m in await redis_store.recent_messages(conversation.id, 2)] == ["m2", "m3"]
    assert await redis_store.recent_messages(conversation.id, 0) == []


@pytest.mark.asyncio
async def test_counts_are_tenant_and_window_scoped(redis_store: RedisChatStore):
    conversation = await redis_store.create_conversation(ConversationRecord(tenant_id=uuid4(), user_id="visitor"))
    await redis_store.create_conversation(ConversationRecord(tenant_id=uuid4(), user_id="other"))
    await redis_store.append_message(_message(conversation, "hello"))
    await redis_store.append_message(_message(conversation, "hi there", MessageSender.BOT))

    since = utc_now() - timedelta(minutes=1)

    assert await redis_store.count_conversations(conversation.tenant_id, since) == 1
    assert await redis_store.count_messages(conversation.tenant_id, since) == 2
    assert await redis_store.count_messages(conversation.tenant_id, utc_now() + timedelta(minutes=1)) == 0
