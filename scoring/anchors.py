"""
Anchor phrase table and one-time anchor embedding precomputation.
"""

from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Sequence, Tuple

import numpy as np
import structlog

from .similarity import NEGATIVE, POSITIVE, InvalidInputError

logger = structlog.get_logger()

# Category -> exemplar phrases. Polarity first, then emotions in display order.
ANCHOR_PHRASES: Dict[str, Tuple[str, ...]] = {
    POSITIVE: ("positive", "good", "great", "love", "excellent", "awesome", "happy"),
    NEGATIVE: ("negative", "bad", "terrible", "hate", "awful", "angry", "sad"),
    "happy": ("happy", "joyful", "pleased", "content"),
    "angry": ("angry", "furious", "irritated", "annoyed"),
    "sad": ("sad", "down", "unhappy", "depressed"),
    "fear": ("afraid", "scared", "fearful", "anxious"),
    "surprise": ("surprised", "amazed", "astonished", "shocked"),
    "disgust": ("disgusted", "gross", "revolted", "nauseated"),
    "neutral": ("neutral", "calm", "okay", "fine"),
}

AnchorSet = Mapping[str, Tuple[np.ndarray, ...]]


def flatten_phrases(table: Mapping[str, Sequence[str]]) -> Tuple[List[str], List[Tuple[str, int]]]:
    """
    Flatten the phrase table into one ordered list.

    Returns the phrases and a list of (category, count) boundaries used to
    split the embeddings back into their categories.
    """
    phrases: List[str] = []
    boundaries: List[Tuple[str, int]] = []
    for category, group in table.items():
        if len(group) == 0:
            raise InvalidInputError(f"Anchor category '{category}' has no phrases")
        phrases.extend(group)
        boundaries.append((category, len(group)))
    return phrases, boundaries


def partition_embeddings(vectors: Sequence, boundaries: Sequence[Tuple[str, int]]) -> AnchorSet:
    expected = sum(count for _, count in boundaries)
    if len(vectors) != expected:
        raise InvalidInputError(f"Expected {expected} anchor embeddings, got {len(vectors)}")

    anchors: Dict[str, Tuple[np.ndarray, ...]] = {}
    idx = 0
    for category, count in boundaries:
        group = []
        for v in vectors[idx:idx + count]:
            arr = np.array(v, dtype=np.float32)
            arr.setflags(write=False)
            group.append(arr)
        anchors[category] = tuple(group)
        idx += count
    return MappingProxyType(anchors)


def build_anchor_set(embed: Callable[[List[str]], Sequence],
                     table: Mapping[str, Sequence[str]] = ANCHOR_PHRASES) -> AnchorSet:
    """Embed every anchor phrase in a single batched call and regroup by category"""
    phrases, boundaries = flatten_phrases(table)
    vectors = embed(phrases)
    anchors = partition_embeddings(vectors, boundaries)
    logger.info("Anchor set built", categories=len(anchors), phrases=len(phrases))
    return anchors


async def build_anchor_set_async(embedder, table: Mapping[str, Sequence[str]] = ANCHOR_PHRASES) -> AnchorSet:
    """Async variant for providers exposing `async embed(texts)`"""
    phrases, boundaries = flatten_phrases(table)
    vectors = await embedder.embed(phrases)
    anchors = partition_embeddings(vectors, boundaries)
    logger.info("Anchor set built", categories=len(anchors), phrases=len(phrases))
    return anchors
