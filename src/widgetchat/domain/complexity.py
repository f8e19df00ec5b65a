"""Complexity Classifier - Textual Heuristics for Model Routing.

Scores an inbound message as simple, medium or complex without any I/O.
Thresholds and keyword stems are tuning constants, carried as model fields
so they can come from configuration.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .domain_type import Complexity

DEFAULT_KEYWORDS: tuple[str, ...] = (
    "analyz",
    "analys",
    "compar",
    "evaluat",
    "explain in detail",
    "complex",
    "analiz",
    "evalua",
    "explicar",
    "detallar",
    "complejo",
)


class ComplexityClassifier(BaseModel):
    """Deterministic, total classifier over message text.

    Rules:
        complex: length > complex_length, or more than complex_questions "?",
                 or any keyword stem appears (case-insensitive)
        medium:  length > medium_length, or at least one "?"
        simple:  everything else, including the empty string
    """

    complex_length: int = Field(default=200, ge=0)
    medium_length: int = Field(default=50, ge=0)
    complex_questions: int = Field(default=2, ge=0)
    keywords: tuple[str, ...] = DEFAULT_KEYWORDS

    model_config = ConfigDict(frozen=True)

    @field_validator("keywords", mode="after")
    @classmethod
    def normalize_keywords(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(k.strip().lower() for k in v if k.strip())

    def classify(self, message: str) -> Complexity:
        length = len(message)
        questions = message.count("?")
        lowered = message.lower()

        if length > self.complex_length or questions > self.complex_questions or self._has_keyword(lowered):
            return Complexity.COMPLEX
        if length > self.medium_length or questions > 0:
            return Complexity.MEDIUM
        return Complexity.SIMPLE

    def _has_keyword(self, lowered: str) -> bool:
        return any(keyword in lowered for keyword in self.keywords)


__all__ = ["DEFAULT_KEYWORDS", "ComplexityClassifier"]
