"""Response Normalizer - One Canonical Shape for Every Backend.

Backends report what their provider gives them as a RawCompletion; this module
turns it into a NormalizedResponse with a cost estimate from the model's rate
card. Rates are USD per 1K tokens.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from .domain_error import ProviderError


class TokenRates(BaseModel):
    """Per-model price card, USD per 1K tokens."""

    input_per_1k: float = Field(default=0.0, ge=0)
    output_per_1k: float = Field(default=0.0, ge=0)

    model_config = ConfigDict(frozen=True)

    @property
    def blended_per_1k(self) -> float:
        """Average of input and output rates (assumes a 50/50 token split)."""
        return (self.input_per_1k + self.output_per_1k) / 2


class RawCompletion(BaseModel):
    """Provider output before normalization.

    Token fields are None when the provider does not report them. Some
    providers only give a total, in which case input/output stay None.
    """

    content: str | None
    input_tokens: int | None = None
    output_tokens: int | None = None
    total_tokens: int | None = None

    model_config = ConfigDict(frozen=True)


class NormalizedResponse(BaseModel):
    """Canonical backend result consumed by the orchestrator."""

    content: str
    tokens_used: int | None = None
    cost_estimate: float = 0.0

    model_config = ConfigDict(frozen=True)


def estimate_cost(raw: RawCompletion, rates: TokenRates) -> float:
    if raw.input_tokens is not None and raw.output_tokens is not None:
        return (raw.input_tokens * rates.input_per_1k + raw.output_tokens * rates.output_per_1k) / 1000
    if raw.total_tokens:
        return raw.total_tokens * rates.blended_per_1k / 1000
    return 0.0


def _tokens_used(raw: RawCompletion) -> int | None:
    if raw.total_tokens is not None:
        return raw.total_tokens or None
    if raw.input_tokens is not None and raw.output_tokens is not None:
        return (raw.input_tokens + raw.output_tokens) or None
    return None


def normalize(raw: RawCompletion, rates: TokenRates, *, model: str) -> NormalizedResponse:
    """Map a provider result to the canonical response.

    Raises:
        ProviderError: the provider returned no usable text
    """
    content = (raw.content or "").strip()
    if not content:
        raise ProviderError(model, "malformed response: empty content")

    tokens = _tokens_used(raw)
    cost = estimate_cost(raw, rates) if tokens else 0.0
    return NormalizedResponse(content=content, tokens_used=tokens, cost_estimate=round(cost, 6))


__all__ = ["NormalizedResponse", "RawCompletion", "TokenRates", "estimate_cost", "normalize"]
