"""
Anchor-based sentiment and emotion scoring.

Scores a query embedding against precomputed anchor embeddings using mean
cosine similarity per category. Everything here is synchronous and pure; the
anchor set is only ever read.
"""

from dataclasses import dataclass, field
from typing import Dict, Mapping, Sequence, Tuple

import numpy as np

EPSILON = 1e-8
TOP_EMOTIONS = 3

POSITIVE = "positive"
NEGATIVE = "negative"


class InvalidInputError(ValueError):
    """Raised when vectors or anchor groups cannot be scored"""


@dataclass(frozen=True)
class SentimentEstimate:
    """Sentiment estimate for a single piece of text"""
    score: float
    emotions: Tuple[Tuple[str, float], ...] = ()
    raw: Dict[str, float] = field(default_factory=dict)

    @classmethod
    def default(cls) -> "SentimentEstimate":
        return cls(score=0.0, emotions=(), raw={})

    @property
    def polarity(self) -> str:
        return POSITIVE if self.score >= 0 else NEGATIVE

    def to_dict(self) -> Dict:
        return {
            "score": self.score,
            "emotions": [{"label": label, "score": score} for label, score in self.emotions],
            "raw": dict(self.raw),
        }


def _as_vector(v) -> np.ndarray:
    arr = np.asarray(v, dtype=np.float64)
    if arr.ndim != 1:
        raise InvalidInputError(f"Expected a 1-D vector, got shape {arr.shape}")
    return arr


def cosine_similarity(a, b) -> float:
    """
    Cosine similarity with an epsilon in the denominator.

    A zero vector on either side yields 0.0 rather than NaN.
    """
    va = _as_vector(a)
    vb = _as_vector(b)
    if va.shape[0] != vb.shape[0]:
        raise InvalidInputError(f"Vector length mismatch: {va.shape[0]} vs {vb.shape[0]}")
    denom = float(np.linalg.norm(va)) * float(np.linalg.norm(vb)) + EPSILON
    return float(np.dot(va, vb)) / denom


def mean_similarity(query, anchor_group: Sequence) -> float:
    """Arithmetic mean of the cosine similarity between query and each anchor"""
    if len(anchor_group) == 0:
        raise InvalidInputError("Anchor group is empty")
    total = 0.0
    for anchor in anchor_group:
        total += cosine_similarity(query, anchor)
    return total / len(anchor_group)


def clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def estimate_sentiment(query, anchors: Mapping[str, Sequence]) -> SentimentEstimate:
    """
    Estimate sentiment and the top emotions for a query embedding.

    Args:
        query: Embedding of the text being scored
        anchors: Category -> anchor vectors. Must contain "positive" and
            "negative"; every other category is treated as an emotion, in
            insertion order.

    Returns:
        SentimentEstimate with score = clamp(pos - neg, -1, 1) and up to three
        emotions sorted by descending mean similarity. Ties keep insertion order.
    """
    if POSITIVE not in anchors or NEGATIVE not in anchors:
        raise InvalidInputError("Anchor set must contain 'positive' and 'negative' categories")

    pos = mean_similarity(query, anchors[POSITIVE])
    neg = mean_similarity(query, anchors[NEGATIVE])
    score = clamp(pos - neg, -1.0, 1.0)

    emotion_scores = [
        (label, mean_similarity(query, group))
        for label, group in anchors.items()
        if label not in (POSITIVE, NEGATIVE)
    ]
    # sorted() is stable with reverse=True, so equal scores keep their order
    ranked = sorted(emotion_scores, key=lambda item: item[1], reverse=True)

    return SentimentEstimate(
        score=score,
        emotions=tuple(ranked[:TOP_EMOTIONS]),
        raw={"positive_mean": pos, "negative_mean": neg},
    )


def scale01(score: float) -> float:
    """Map a score in [-1, 1] to [0, 1] for display"""
    return clamp((score + 1.0) / 2.0, 0.0, 1.0)
