"""Externally supplied reference texts and their classification."""

import uuid
from typing import Any, Optional

from pydantic import BaseModel, Field

from llm_vetting.models.enums import ClassificationLabel


class ReferenceText(BaseModel):
    """A human-supplied answer to compare against generated ones."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    text: str
    metadata: Optional[dict[str, Any]] = None


class SimilarityScores(BaseModel):
    """Component scores behind a classification."""

    levenshtein: float = 0.0
    cosine: float = 0.0
    tf_idf: float = 0.0

    @property
    def average(self) -> float:
        """Mean of the three components."""
        return (self.levenshtein + self.cosine + self.tf_idf) / 3


class Classification(BaseModel):
    """Verdict on whether a reference text looks generated."""

    classification: ClassificationLabel
    confidence: float = Field(..., ge=0.0)
    likely_model: Optional[str] = None  # only set for RED
    similarity_scores: SimilarityScores = Field(default_factory=SimilarityScores)
