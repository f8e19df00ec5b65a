"""Model Catalog - Configuration-Driven LLM Model Management.

Provides type-safe, validated management of available LLM models across providers.
The catalog is loaded from JSON configuration and binds the routing tiers used
by the ModelSelector to concrete vendor models.

Architecture:
    ModelCatalog: Root container, loaded from model_metadata.json
    ├─ VendorCatalog: Per-provider metadata (OpenAI, Anthropic, Google)
    │  └─ ModelVariant: Specific model versions with pricing
    ├─ ModelSpec: Normalized reference (vendor + variant_id)
    └─ TierRegistry: ModelTier -> ModelSpec binding plus the fallback tier

Key Features:
    - O(1) Model Lookup: identifiers flattened into a dict
    - Validation: no duplicate identifiers per vendor, every tier bound
    - Flexible Identifiers: aliases resolve to the same variant
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, RootModel, computed_field, model_validator

from .domain_type import AIModelVendor, ModelTier
from .normalizer import TokenRates

# ---------------------------------------------------------------------------
# Model Catalog Definitions (loaded from configuration)
# ---------------------------------------------------------------------------


class ModelVariant(BaseModel):
    """Specific LLM Model Version within a Vendor's Catalog.

    Attributes:
        id: Canonical identifier (e.g., "gpt-4o")
        api_id: Provider's API string (usually same as id)
        family: Model family for grouping (e.g., "gpt-4")
        rates: Price card used for cost estimates
        aliases: Alternative names that resolve to this variant
        notes: Human-readable description/usage notes
    """

    id: str
    api_id: str
    family: str
    rates: TokenRates = TokenRates()
    aliases: tuple[str, ...] = ()
    notes: str | None = None

    model_config = ConfigDict(frozen=True)

    @computed_field
    @property
    def identifiers(self) -> frozenset[str]:
        """All valid lookup keys for this variant: {id, api_id, *aliases}."""
        return frozenset({self.id, self.api_id, *self.aliases})


class VendorCatalog(BaseModel):
    """Per-Provider Model Catalog.

    Attributes:
        vendor: Provider identifier enum value
        timeout_seconds: Default upper bound for one provider call
        available_models: All model variants offered by this provider
    """

    vendor: AIModelVendor
    timeout_seconds: float = 30.0
    available_models: tuple[ModelVariant, ...] = ()

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def check_duplicate_identifiers(self) -> VendorCatalog:
        """Reject catalogs where an identifier (including aliases) maps to two variants."""
        all_ids = [id for variant in self.available_models for id in variant.identifiers]
        unique_ids = set(all_ids)

        if len(all_ids) != len(unique_ids):
            duplicates = [x for x in unique_ids if all_ids.count(x) > 1]
            raise ValueError(f"Duplicate model identifiers for vendor '{self.vendor.value}': {sorted(duplicates)}")
        return self

    @property
    def variant_lookup(self) -> dict[str, ModelVariant]:
        return {id: variant for variant in self.available_models for id in variant.identifiers}

    def find_variant(self, identifier: str) -> ModelVariant:
        """Find a variant by id, API id or alias.

        Raises:
            KeyError: If identifier not found in catalog
        """
        variant = self.variant_lookup.get(identifier.strip())
        if variant is None:
            raise KeyError(f"Model '{identifier}' not registered for vendor '{self.vendor.value}'")
        return variant


class ModelCatalog(RootModel[dict[AIModelVendor, VendorCatalog]]):
    """Catalog of vendors - wraps dict for type safety and validation."""

    root: dict[AIModelVendor, VendorCatalog]

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ModelCatalog:
        """Load catalog from dict, explicitly injecting vendor keys - no mutation."""
        enriched = {vendor_key: {**vendor_data, "vendor": vendor_key} for vendor_key, vendor_data in data.items()}
        return cls.model_validate(enriched)

    @classmethod
    def from_json_file(cls, path: Path) -> ModelCatalog:
        """Load and validate catalog from JSON."""
        data = json.loads(path.read_text(encoding="utf-8"))
        return cls.from_dict(data["vendors"])

    def vendor(self, vendor: AIModelVendor) -> VendorCatalog:
        if vendor not in self.root:
            raise KeyError(f"Vendor '{vendor.value}' not registered")
        return self.root[vendor]

    def parse_spec(self, identifier: str) -> ModelSpec:
        vendor_key, sep, variant_id = identifier.partition(":")
        if not sep:
            raise ValueError("Model identifier must be in 'vendor:model' format")
        vendor = AIModelVendor(vendor_key.strip())
        variant = self.vendor(vendor).find_variant(variant_id.strip())
        return ModelSpec(vendor=vendor, variant_id=variant.id)

    def ensure_spec(self, spec: ModelSpec) -> ModelSpec:
        self.vendor(spec.vendor).find_variant(spec.variant_id)
        return spec


# ---------------------------------------------------------------------------
# Model specifications and tier bindings
# ---------------------------------------------------------------------------


class ModelSpec(BaseModel):
    """Normalized reference to a vendor-scoped model variant."""

    vendor: AIModelVendor
    variant_id: str

    model_config = ConfigDict(frozen=True)

    @property
    def identifier(self) -> str:
        return f"{self.vendor.value}:{self.variant_id}"

    def variant(self, catalog: ModelCatalog) -> ModelVariant:
        return catalog.vendor(self.vendor).find_variant(self.variant_id)

    def to_agent_model(self, catalog: ModelCatalog) -> str:
        return self.variant(catalog).api_id


class TierRegistry(BaseModel):
    """Binds every routing tier to a catalog model and names the fallback tier."""

    catalog: ModelCatalog
    tiers: dict[ModelTier, ModelSpec]
    fallback: ModelTier = ModelTier.STANDARD

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def require_every_tier(self) -> TierRegistry:
        missing = [tier.value for tier in ModelTier if tier not in self.tiers]
        if missing:
            raise ValueError(f"Tier registry missing tiers: {missing}")
        for spec in self.tiers.values():
            self.catalog.ensure_spec(spec)
        return self

    @classmethod
    def from_identifiers(
        cls,
        mapping: dict[str, str],
        *,
        catalog: ModelCatalog,
        fallback: ModelTier | str = ModelTier.STANDARD,
    ) -> TierRegistry:
        """Build from {"economy": "google:gemini-2.5-flash", ...}."""
        tiers = {ModelTier(tier): catalog.parse_spec(identifier) for tier, identifier in mapping.items()}
        return cls(catalog=catalog, tiers=tiers, fallback=ModelTier(fallback))

    @classmethod
    def from_json_file(cls, path: Path, *, fallback: ModelTier | str | None = None) -> TierRegistry:
        """Load catalog and tier bindings from model_metadata.json."""
        data = json.loads(path.read_text(encoding="utf-8"))
        catalog = ModelCatalog.from_dict(data["vendors"])
        return cls.from_identifiers(
            data["tiers"],
            catalog=catalog,
            fallback=fallback or data.get("fallback", ModelTier.STANDARD),
        )

    def spec_for(self, tier: ModelTier) -> ModelSpec:
        return self.tiers[tier]

    def rates_for(self, spec: ModelSpec) -> TokenRates:
        return spec.variant(self.catalog).rates


__all__ = [
    "ModelCatalog",
    "ModelSpec",
    "ModelVariant",
    "TierRegistry",
    "VendorCatalog",
]
