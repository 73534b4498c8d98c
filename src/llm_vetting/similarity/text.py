"""Lexical similarity over generated texts.

Vectors are raw term counts divided by document length (no IDF weighting),
built over the vocabulary of whatever set of texts is being compared.
"""

import logging
import math
import re
from collections import Counter, deque
from typing import Optional

from llm_vetting.config.models import ClassificationThresholds
from llm_vetting.models.enums import ClassificationLabel, ResponseStatus
from llm_vetting.models.reference import Classification, ReferenceText, SimilarityScores
from llm_vetting.models.run import ResponseRecord, SimilarityCluster, SimilarResponse

logger = logging.getLogger("llm_vetting.similarity.text")

DEFAULT_THRESHOLD = 0.9

_NON_WORD = re.compile(r"[^A-Za-z0-9_\s]")
_WHITESPACE = re.compile(r"\s+")


def tokenize(text: str) -> list[str]:
    """Lowercase, drop punctuation, split on whitespace."""
    cleaned = _NON_WORD.sub("", text.lower())
    return [token for token in _WHITESPACE.split(cleaned) if token]


def term_frequency_vectors(texts: list[str]) -> tuple[list[list[float]], list[str]]:
    """Build length-normalized term-frequency vectors over a shared vocabulary.

    Args:
        texts: Documents to vectorize.

    Returns:
        (vectors, vocabulary); vocabulary is in first-seen order.
    """
    documents = [tokenize(text) for text in texts]

    vocabulary: dict[str, int] = {}
    for doc in documents:
        for token in doc:
            vocabulary.setdefault(token, len(vocabulary))

    vectors = []
    for doc in documents:
        vector = [0.0] * len(vocabulary)
        for token, count in Counter(doc).items():
            vector[vocabulary[token]] = count / len(doc)
        vectors.append(vector)

    return vectors, list(vocabulary)


def cosine_similarity(vec1: list[float], vec2: list[float]) -> float:
    """Normalized dot product; 0 when either vector has zero norm.

    Raises:
        ValueError: If the vectors differ in length.
    """
    if len(vec1) != len(vec2):
        raise ValueError("Vectors must have the same length")

    dot = sum(a * b for a, b in zip(vec1, vec2))
    norm1 = math.sqrt(sum(a * a for a in vec1))
    norm2 = math.sqrt(sum(b * b for b in vec2))

    denominator = norm1 * norm2
    if denominator == 0:
        return 0.0
    return dot / denominator


def text_cosine_similarity(text1: str, text2: str) -> float:
    """TF-cosine of two texts over their joint vocabulary."""
    vectors, _ = term_frequency_vectors([text1, text2])
    return cosine_similarity(vectors[0], vectors[1])


def levenshtein_distance(s1: str, s2: str) -> int:
    """Edit distance with unit insert, delete and substitute costs."""
    if len(s1) < len(s2):
        s1, s2 = s2, s1

    previous = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1, start=1):
        current = [i]
        for j, c2 in enumerate(s2, start=1):
            current.append(
                min(
                    previous[j] + 1,  # deletion
                    current[j - 1] + 1,  # insertion
                    previous[j - 1] + (c1 != c2),  # substitution
                )
            )
        previous = current
    return previous[-1]


def levenshtein_similarity(s1: str, s2: str) -> float:
    """``1 - distance / max(len)``; two empty strings are identical."""
    longest = max(len(s1), len(s2))
    if longest == 0:
        return 1.0
    return 1.0 - levenshtein_distance(s1, s2) / longest


def _comparable(responses: list[ResponseRecord]) -> list[ResponseRecord]:
    return [r for r in responses if r.status == ResponseStatus.DONE and r.text.strip()]


def find_similar_pairs(
    responses: list[ResponseRecord],
    threshold: float = DEFAULT_THRESHOLD,
) -> dict[str, list[SimilarResponse]]:
    """Find every pair of finished responses whose TF-cosine clears the threshold.

    Args:
        responses: Responses of a run; only done, non-empty ones are compared.
        threshold: Minimum similarity for a pair to be reported.

    Returns:
        Symmetric adjacency map: response id -> similar responses with scores.
    """
    completed = _comparable(responses)
    if len(completed) < 2:
        return {}

    vectors, _ = term_frequency_vectors([r.text for r in completed])
    pairs: dict[str, list[SimilarResponse]] = {}

    for i in range(len(vectors)):
        for j in range(i + 1, len(vectors)):
            score = cosine_similarity(vectors[i], vectors[j])
            if score >= threshold:
                id1, id2 = completed[i].id, completed[j].id
                pairs.setdefault(id1, []).append(SimilarResponse(id=id2, score=score))
                pairs.setdefault(id2, []).append(SimilarResponse(id=id1, score=score))

    return pairs


def find_similarity_clusters(
    responses: list[ResponseRecord],
    threshold: float = DEFAULT_THRESHOLD,
    pairs: Optional[dict[str, list[SimilarResponse]]] = None,
) -> list[SimilarityCluster]:
    """Group similar responses into connected components.

    Args:
        responses: Responses of a run.
        threshold: Pairing threshold, used when ``pairs`` is not supplied.
        pairs: Precomputed adjacency map from :func:`find_similar_pairs`.

    Returns:
        Clusters of two or more responses; singletons are omitted.
    """
    if pairs is None:
        pairs = find_similar_pairs(responses, threshold)

    visited: set[str] = set()
    clusters = []

    for response_id in pairs:
        if response_id in visited:
            continue

        cluster = []
        queue = deque([response_id])
        while queue:
            current = queue.popleft()
            if current in visited:
                continue
            visited.add(current)
            cluster.append(current)
            queue.extend(n.id for n in pairs.get(current, []) if n.id not in visited)

        if len(cluster) > 1:
            clusters.append(SimilarityCluster(ids=cluster))

    return clusters


def get_similarity_score(
    response1: ResponseRecord,
    response2: ResponseRecord,
    threshold: float = DEFAULT_THRESHOLD,
) -> Optional[float]:
    """TF-cosine of two finished responses, or None below the threshold."""
    if response1.status != ResponseStatus.DONE or response2.status != ResponseStatus.DONE:
        return None
    return _gated_cosine(response1.text, response2.text, threshold)


def _gated_cosine(text1: str, text2: str, threshold: float) -> Optional[float]:
    similarity = text_cosine_similarity(text1, text2)
    return similarity if similarity >= threshold else None


def compare_expert_to_ai(
    reference: ReferenceText,
    ai_responses: list[ResponseRecord],
    thresholds: ClassificationThresholds,
    pair_threshold: float = DEFAULT_THRESHOLD,
) -> Classification:
    """Classify a reference text by its closest generated response.

    Each finished response is scored three ways: Levenshtein similarity,
    TF-cosine, and the thresholded pair score (0 below ``pair_threshold``).
    The best average across responses decides the bucket.

    Args:
        reference: Human-supplied text.
        ai_responses: Responses of a run; only done ones are scored.
        thresholds: Red/yellow cut-offs.
        pair_threshold: Cut-off applied to the third component only.

    Returns:
        Classification; ``likely_model`` is set only for red.
    """
    best_score = 0.0
    best_scores = SimilarityScores()
    best_response: Optional[ResponseRecord] = None

    for response in ai_responses:
        if response.status != ResponseStatus.DONE:
            continue

        scores = SimilarityScores(
            levenshtein=levenshtein_similarity(reference.text, response.text),
            cosine=text_cosine_similarity(reference.text, response.text),
            # Zeroed below the pairing threshold, unlike the other two components
            tf_idf=_gated_cosine(reference.text, response.text, pair_threshold) or 0.0,
        )
        if scores.average > best_score:
            best_score = scores.average
            best_scores = scores
            best_response = response

    if best_score >= thresholds.red:
        label = ClassificationLabel.RED
    elif best_score >= thresholds.yellow:
        label = ClassificationLabel.YELLOW
    else:
        label = ClassificationLabel.GREEN

    likely_model = None
    if label == ClassificationLabel.RED and best_response is not None:
        likely_model = f"{best_response.service.value}/{best_response.model_label}"

    logger.debug(f"Reference {reference.id}: {label.value} ({best_score:.3f})")
    return Classification(
        classification=label,
        confidence=best_score,
        likely_model=likely_model,
        similarity_scores=best_scores,
    )


def classify_references(
    references: list[ReferenceText],
    ai_responses: list[ResponseRecord],
    thresholds: ClassificationThresholds,
) -> dict[str, Classification]:
    """Classify every reference text against a run's responses."""
    return {ref.id: compare_expert_to_ai(ref, ai_responses, thresholds) for ref in references}
