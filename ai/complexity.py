# Document Complexity Estimator
# Scores how legally and structurally dense a document is, on a 0.0-1.0 scale

import re
from dataclasses import dataclass

LEGAL_TERMS_RE = re.compile(
    r"\b(whereas|hereby|thereof|pursuant|notwithstanding|indemnify|liability|breach|terminate|covenant|warranty)\b",
    re.IGNORECASE,
)
SECTIONS_RE = re.compile(r"\b(article|section|clause|paragraph|subsection)\s+\d+", re.IGNORECASE)
DEFINITIONS_RE = re.compile(r"\b(means|defined as|shall mean|refers to)\b", re.IGNORECASE)
CONDITIONALS_RE = re.compile(r"\b(if|unless|provided that|subject to|in the event)\b", re.IGNORECASE)

# (normalizer, cap) per indicator
LENGTH_WEIGHT = (10000, 0.3)
LEGAL_TERMS_WEIGHT = (20, 0.3)
SECTIONS_WEIGHT = (10, 0.2)
DEFINITIONS_WEIGHT = (10, 0.1)
CONDITIONALS_WEIGHT = (15, 0.1)


@dataclass(frozen=True)
class ComplexityIndicators:
    """Raw counts behind a complexity score."""
    length: int
    legal_terms: int
    sections: int
    definitions: int
    conditionals: int

    @classmethod
    def from_text(cls, text: str) -> "ComplexityIndicators":
        return cls(
            length=len(text),
            legal_terms=len(LEGAL_TERMS_RE.findall(text)),
            sections=len(SECTIONS_RE.findall(text)),
            definitions=len(DEFINITIONS_RE.findall(text)),
            conditionals=len(CONDITIONALS_RE.findall(text)),
        )

    def score(self) -> float:
        total = 0.0
        total += _weighted(self.length, LENGTH_WEIGHT)
        total += _weighted(self.legal_terms, LEGAL_TERMS_WEIGHT)
        total += _weighted(self.sections, SECTIONS_WEIGHT)
        total += _weighted(self.definitions, DEFINITIONS_WEIGHT)
        total += _weighted(self.conditionals, CONDITIONALS_WEIGHT)
        return min(total, 1.0)


def _weighted(count: int, weight: tuple[int, float]) -> float:
    normalizer, cap = weight
    return min(count / normalizer, cap)


def estimate_complexity(text: str | None) -> float:
    """
    Estimate a document's analytical complexity.

    Args:
        text: Document text

    Returns:
        Score in [0.0, 1.0]; 0.0 for empty text
    """
    if not text:
        return 0.0
    return ComplexityIndicators.from_text(text).score()
