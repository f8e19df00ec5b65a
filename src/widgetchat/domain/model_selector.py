"""Model Selector - Plan x Complexity Routing Policy.

Encodes the product's cost/quality tradeoff: cheaper tiers for lower plans
and simpler messages, premium tiers only for enterprise tenants. The policy
returns abstract ModelTier values; the TierRegistry binds them to vendor models.

    plan          simple        medium        complex
    enterprise    premium-fast  premium-fast  premium-deep
    business      economy       standard      standard
    professional  economy       economy       standard
    starter       economy       economy       economy
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, model_validator

from .domain_type import Complexity, ModelTier, TenantPlan

RoutingTable = dict[TenantPlan, dict[Complexity, ModelTier]]

DEFAULT_ROUTING: RoutingTable = {
    TenantPlan.ENTERPRISE: {
        Complexity.SIMPLE: ModelTier.PREMIUM_FAST,
        Complexity.MEDIUM: ModelTier.PREMIUM_FAST,
        Complexity.COMPLEX: ModelTier.PREMIUM_DEEP,
    },
    TenantPlan.BUSINESS: {
        Complexity.SIMPLE: ModelTier.ECONOMY,
        Complexity.MEDIUM: ModelTier.STANDARD,
        Complexity.COMPLEX: ModelTier.STANDARD,
    },
    TenantPlan.PROFESSIONAL: {
        Complexity.SIMPLE: ModelTier.ECONOMY,
        Complexity.MEDIUM: ModelTier.ECONOMY,
        Complexity.COMPLEX: ModelTier.STANDARD,
    },
    TenantPlan.STARTER: {
        Complexity.SIMPLE: ModelTier.ECONOMY,
        Complexity.MEDIUM: ModelTier.ECONOMY,
        Complexity.COMPLEX: ModelTier.ECONOMY,
    },
}


class ModelSelector(BaseModel):
    """Total mapping from (plan, complexity) to a model tier."""

    routing: RoutingTable = DEFAULT_ROUTING

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def require_complete_table(self) -> ModelSelector:
        """Every plan must route every complexity tier."""
        gaps = [
            f"{plan.value}/{complexity.value}"
            for plan in TenantPlan
            for complexity in Complexity
            if complexity not in self.routing.get(plan, {})
        ]
        if gaps:
            raise ValueError(f"Routing table incomplete: {gaps}")
        return self

    def select(self, plan: TenantPlan | str, complexity: Complexity) -> ModelTier:
        """Pick the tier for a tenant plan; unknown plans route like starter."""
        return self.routing[TenantPlan.parse(plan)][complexity]


__all__ = ["DEFAULT_ROUTING", "ModelSelector", "RoutingTable"]
