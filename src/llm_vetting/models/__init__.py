"""Data models for the LLM vetting system."""

from llm_vetting.models.enums import ClassificationLabel, ProviderName, ResponseStatus, Transport
from llm_vetting.models.reference import Classification, ReferenceText, SimilarityScores
from llm_vetting.models.run import (
    ResponseRecord,
    Run,
    RunConfig,
    RunStats,
    SimilarityCluster,
    SimilarityResult,
    SimilarResponse,
)

__all__ = [
    "Classification",
    "ClassificationLabel",
    "ProviderName",
    "ReferenceText",
    "ResponseRecord",
    "ResponseStatus",
    "Run",
    "RunConfig",
    "RunStats",
    "SimilarityCluster",
    "SimilarityResult",
    "SimilarityScores",
    "SimilarResponse",
    "Transport",
]
