"""Usage Limiter - monthly plan caps checked before a turn spends provider money.

Counts are read at call time and compared against the tenant's plan limits.
There is no reservation: two turns racing near a cap can both pass, so the
cap is soft by a small margin under concurrency. Exact enforcement would need
an atomic increment-if-below-limit in the store.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from uuid import UUID

import logfire
from pydantic import BaseModel, ConfigDict, computed_field

from ..domain.domain_error import LimitExceededError, NotFoundError
from ..domain.domain_type import LimitType
from ..domain.plan_catalog import PLAN_CATALOG, PlanCatalog
from .storage import ChatStore


class UsageStatus(BaseModel):
    """Current-period usage for one counter."""

    limit_type: LimitType
    used: int
    limit: int

    model_config = ConfigDict(frozen=True)

    @computed_field
    @property
    def exceeded(self) -> bool:
        return self.limit > 0 and self.used >= self.limit

    @property
    def unlimited(self) -> bool:
        return self.limit <= 0


def month_start(now: datetime) -> datetime:
    """First instant of the calendar month containing now, in UTC."""
    now = now.astimezone(UTC)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


class UsageLimiter:
    """Reads current-month counters and compares them with plan limits."""

    def __init__(
        self,
        store: ChatStore,
        *,
        catalog: PlanCatalog = PLAN_CATALOG,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.catalog = catalog
        self.clock = clock or (lambda: datetime.now(UTC))

    def period_start(self) -> datetime:
        return month_start(self.clock())

    async def check_limit(self, tenant_id: UUID, limit_type: LimitType) -> UsageStatus:
        tenant = await self.store.get_tenant(tenant_id)
        if tenant is None:
            raise NotFoundError("tenant", tenant_id)

        limit = self.catalog.limits(tenant.plan).for_type(limit_type)
        since = self.period_start()
        if limit_type == LimitType.CONVERSATIONS:
            used = await self.store.count_conversations(tenant_id, since)
        else:
            used = await self.store.count_messages(tenant_id, since)
        return UsageStatus(limit_type=limit_type, used=used, limit=limit)

    async def enforce(self, tenant_id: UUID, limit_type: LimitType) -> UsageStatus:
        """Raise LimitExceededError when the counter is at or over its cap."""
        status = await self.check_limit(tenant_id, limit_type)
        if status.exceeded:
            logfire.warn(
                "Usage limit reached for tenant {tenant_id}: {limit_type} {used}/{limit}",
                tenant_id=str(tenant_id),
                limit_type=limit_type.value,
                used=status.used,
                limit=status.limit,
            )
            raise LimitExceededError(limit_type, status.used, status.limit)
        return status

    async def usage_summary(self, tenant_id: UUID) -> dict[LimitType, UsageStatus]:
        return {limit_type: await self.check_limit(tenant_id, limit_type) for limit_type in LimitType}


__all__ = ["UsageLimiter", "UsageStatus", "month_start"]
