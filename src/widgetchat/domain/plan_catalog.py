"""Plan Catalog - Features and Usage Limits per Billing Plan.

A tenant's feature set and monthly limits are a pure function of its plan.
The table is closed over TenantPlan and checked for completeness when the
catalog is built, so adding a plan without limits fails at import time.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, RootModel, model_validator

from .domain_type import LimitType, TenantPlan

UNLIMITED = -1


class PlanLimits(BaseModel):
    """Monthly usage caps. Zero or negative means unlimited."""

    conversations: int
    messages: int
    agents: int

    model_config = ConfigDict(frozen=True)

    def for_type(self, limit_type: LimitType) -> int:
        return getattr(self, limit_type.value)


class PlanPolicy(BaseModel):
    """Everything a plan grants."""

    features: tuple[str, ...]
    limits: PlanLimits

    model_config = ConfigDict(frozen=True)


class PlanCatalog(RootModel[dict[TenantPlan, PlanPolicy]]):
    """Lookup table from plan to policy."""

    root: dict[TenantPlan, PlanPolicy]

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def require_every_plan(self) -> PlanCatalog:
        missing = [plan.value for plan in TenantPlan if plan not in self.root]
        if missing:
            raise ValueError(f"Plan catalog missing plans: {missing}")
        return self

    def policy(self, plan: TenantPlan | str) -> PlanPolicy:
        """Policy for a plan; unknown plans get the starter policy."""
        return self.root[TenantPlan.parse(plan)]

    def features(self, plan: TenantPlan | str) -> tuple[str, ...]:
        return self.policy(plan).features

    def limits(self, plan: TenantPlan | str) -> PlanLimits:
        return self.policy(plan).limits


PLAN_CATALOG = PlanCatalog.model_validate(
    {
        TenantPlan.STARTER: {
            "features": ("basic_ai", "widget", "email_support"),
            "limits": {"conversations": 500, "messages": 2000, "agents": 2},
        },
        TenantPlan.PROFESSIONAL: {
            "features": ("advanced_ai", "widget", "knowledge_base", "analytics", "email_support"),
            "limits": {"conversations": 2000, "messages": 10000, "agents": 5},
        },
        TenantPlan.BUSINESS: {
            "features": (
                "multi_model_ai",
                "widget",
                "knowledge_base",
                "advanced_analytics",
                "api",
                "priority_support",
            ),
            "limits": {"conversations": 5000, "messages": 25000, "agents": 10},
        },
        TenantPlan.ENTERPRISE: {
            "features": (
                "premium_ai",
                "widget",
                "knowledge_base",
                "advanced_analytics",
                "api",
                "webhooks",
                "dedicated_support",
                "compliance",
            ),
            "limits": {"conversations": 15000, "messages": 75000, "agents": UNLIMITED},
        },
    }
)


__all__ = ["PLAN_CATALOG", "UNLIMITED", "PlanCatalog", "PlanLimits", "PlanPolicy"]
