"""
Tests for anchor phrase flattening and batched anchor precomputation.
"""

import asyncio

import numpy as np
import pytest

from scoring.anchors import (
    ANCHOR_PHRASES,
    build_anchor_set,
    build_anchor_set_async,
    flatten_phrases,
    partition_embeddings,
)
from scoring.similarity import InvalidInputError

from conftest import SMALL_TABLE, FakeEmbedder


class TestPhraseTable:

    def test_polarity_first_then_seven_emotions(self):
        categories = list(ANCHOR_PHRASES)
        assert categories[:2] == ["positive", "negative"]
        assert categories[2:] == ["happy", "angry", "sad", "fear", "surprise", "disgust", "neutral"]
        assert all(len(group) > 0 for group in ANCHOR_PHRASES.values())

    def test_flatten_keeps_order_and_boundaries(self):
        phrases, boundaries = flatten_phrases(SMALL_TABLE)
        assert phrases == ["good", "great", "bad", "awful", "joyful", "furious"]
        assert boundaries == [("positive", 2), ("negative", 2), ("happy", 1), ("angry", 1)]

    def test_empty_category_rejected(self):
        with pytest.raises(InvalidInputError):
            flatten_phrases({"positive": ("good",), "negative": ()})


class TestBuildAnchorSet:

    def test_single_batched_call(self):
        embedder = FakeEmbedder({})
        build_anchor_set(embedder.encode)
        assert len(embedder.calls) == 1
        assert len(embedder.calls[0]) == sum(len(g) for g in ANCHOR_PHRASES.values())

    def test_regroups_in_input_order(self):
        vectors = {"good": [1, 0], "great": [2, 0], "bad": [0, 1], "awful": [0, 2],
                   "joyful": [3, 3], "furious": [4, 4]}
        anchors = build_anchor_set(FakeEmbedder(vectors).encode, SMALL_TABLE)
        assert list(anchors) == ["positive", "negative", "happy", "angry"]
        np.testing.assert_allclose(anchors["positive"][1], [2, 0])
        np.testing.assert_allclose(anchors["negative"][0], [0, 1])
        np.testing.assert_allclose(anchors["angry"][0], [4, 4])

    def test_anchor_set_is_read_only(self, anchors):
        with pytest.raises(TypeError):
            anchors["positive"] = ()
        with pytest.raises(ValueError):
            anchors["positive"][0][0] = 5.0

    def test_count_mismatch_raises(self):
        with pytest.raises(InvalidInputError):
            partition_embeddings([[1.0, 0.0]], [("positive", 1), ("negative", 1)])

    def test_async_variant(self):
        embedder = FakeEmbedder({"good": [1, 0]})
        anchors = asyncio.run(build_anchor_set_async(embedder, SMALL_TABLE))
        assert len(embedder.calls) == 1
        np.testing.assert_allclose(anchors["positive"][0], [1, 0])
