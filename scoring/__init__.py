"""
Anchor Scoring Module

Estimates comment sentiment and emotions from text embeddings by comparing
them with precomputed anchor phrase embeddings.
"""

__version__ = "1.0.0"
__author__ = "Image Insight Team"

from .anchors import ANCHOR_PHRASES, AnchorSet, build_anchor_set, build_anchor_set_async
from .similarity import (
    InvalidInputError,
    SentimentEstimate,
    cosine_similarity,
    estimate_sentiment,
    mean_similarity,
    scale01,
)

__all__ = [
    "ANCHOR_PHRASES",
    "AnchorSet",
    "InvalidInputError",
    "SentimentEstimate",
    "build_anchor_set",
    "build_anchor_set_async",
    "cosine_similarity",
    "estimate_sentiment",
    "mean_similarity",
    "scale01",
]
