"""Text similarity, clustering and reference classification."""

from llm_vetting.similarity.text import (
    classify_references,
    compare_expert_to_ai,
    cosine_similarity,
    find_similar_pairs,
    find_similarity_clusters,
    get_similarity_score,
    levenshtein_similarity,
    text_cosine_similarity,
    tokenize,
)

__all__ = [
    "classify_references",
    "compare_expert_to_ai",
    "cosine_similarity",
    "find_similar_pairs",
    "find_similarity_clusters",
    "get_similarity_score",
    "levenshtein_similarity",
    "text_cosine_similarity",
    "tokenize",
]
