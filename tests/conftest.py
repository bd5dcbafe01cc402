import asyncio
from typing import Dict, List, Optional

import numpy as np
import pytest

from history.store import HistoryStore
from scoring.anchors import build_anchor_set


class FakeRedis:
    """In-memory stand-in for the few redis.Redis calls the store makes"""

    def __init__(self):
        self.data: Dict[str, bytes] = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.data[key] = value.encode("utf-8") if isinstance(value, str) else value
        return True

    def delete(self, key):
        return 1 if self.data.pop(key, None) is not None else 0


class FakeEmbedder:
    """Looks up fixed vectors by text and records every batch it is asked for"""

    def __init__(self, vectors: Dict[str, List[float]], default: Optional[List[float]] = None):
        self.vectors = vectors
        self.default = default or [0.0, 0.0]
        self.calls: List[List[str]] = []
        self.gates: Dict[str, asyncio.Event] = {}

    def encode(self, texts):
        self.calls.append(list(texts))
        return [np.array(self.vectors.get(t, self.default), dtype=np.float32) for t in texts]

    async def embed(self, texts):
        for t in texts:
            if t in self.gates:
                await self.gates[t].wait()
        return self.encode(texts)


def stub_classifier(image, top_k=5):
    return [
        {"label": "lynx", "score": 0.05},
        {"label": "tabby cat", "score": 0.80},
        {"label": "tiger cat", "score": 0.10},
    ][:top_k]


def stub_detector(image, threshold=0.5):
    return [
        {"label": "dog", "score": 0.55, "box": {"xmin": 5, "ymin": 5, "xmax": 25, "ymax": 45}},
        {"label": "cat", "score": 0.97, "box": {"xmin": 10, "ymin": 20, "xmax": 110, "ymax": 70}},
        {"label": "cup", "score": 0.30, "box": {"xmin": 0, "ymin": 0, "xmax": 1, "ymax": 1}},
    ]


SMALL_TABLE = {
    "positive": ("good", "great"),
    "negative": ("bad", "awful"),
    "happy": ("joyful",),
    "angry": ("furious",),
}

SMALL_VECTORS = {
    "good": [1.0, 0.0],
    "great": [1.0, 0.0],
    "bad": [0.0, 1.0],
    "awful": [0.0, 1.0],
    "joyful": [1.0, 0.1],
    "furious": [0.1, 1.0],
    "lovely day": [1.0, 0.0],
    "horrible day": [0.0, 1.0],
}


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def store(fake_redis):
    return HistoryStore(fake_redis, key="test-history")


@pytest.fixture
def embedder():
    return FakeEmbedder(SMALL_VECTORS)


@pytest.fixture
def anchors(embedder):
    result = build_anchor_set(embedder.encode, SMALL_TABLE)
    embedder.calls.clear()
    return result
