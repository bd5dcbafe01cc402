"""
Tests for the Redis-backed analysis history.
"""

import json

import pytest

from history.store import HistoryRecord, SentimentEntry
from multimodal.image import ClassificationResult, Detection
from scoring.similarity import SentimentEstimate


def make_record(record_id: str, timestamp: int = 1700000000000, comment: str = "nice") -> HistoryRecord:
    return HistoryRecord.build(
        record_id=record_id,
        timestamp=timestamp,
        thumbnail="data:image/jpeg;base64,AAAA",
        classification=[ClassificationResult(label="tabby cat", probability=0.91)],
        detections=[Detection(label="cat", score=0.88, bbox=(10.0, 20.0, 100.0, 50.0))],
        comment=comment,
        sentiment=SentimentEstimate(score=0.4, emotions=(("happy", 0.6),),
                                    raw={"positive_mean": 0.5, "negative_mean": 0.1}),
    )


class TestHistoryStore:

    def test_empty_by_default(self, store):
        assert store.list() == []

    def test_append_newest_first(self, store):
        store.append(make_record("a"))
        store.append(make_record("b"))
        assert [r.id for r in store.list()] == ["b", "a"]

    def test_persists_whole_array_under_one_key(self, store, fake_redis):
        store.append(make_record("a"))
        store.append(make_record("b"))
        assert list(fake_redis.data) == ["test-history"]
        stored = json.loads(fake_redis.data["test-history"])
        assert [r["id"] for r in stored] == ["b", "a"]
        assert stored[0]["detections"][0]["bbox"] == [10.0, 20.0, 100.0, 50.0]

    def test_remove(self, store):
        store.append(make_record("a"))
        store.append(make_record("b"))
        store.remove("a")
        assert [r.id for r in store.list()] == ["b"]

    def test_remove_unknown_id_is_noop(self, store):
        store.append(make_record("a"))
        store.remove("missing")
        assert [r.id for r in store.list()] == ["a"]

    def test_clear(self, store):
        store.append(make_record("a"))
        store.clear()
        assert store.list() == []

    @pytest.mark.parametrize("payload", [
        b"not json",
        b'{"id": "a"}',
        b'[{"id": "a", "timestamp": "yesterday"}]',
        b'[{"id": "a", "timestamp": 1, "sentiment": {"score": 3}}]',
    ])
    def test_malformed_history_reads_as_empty(self, store, fake_redis, payload):
        fake_redis.data["test-history"] = payload
        assert store.list() == []

    def test_round_trips_sentiment(self, store):
        store.append(make_record("a"))
        estimate = store.list()[0].sentiment.to_estimate()
        assert estimate.score == 0.4
        assert estimate.emotions == (("happy", 0.6),)
        assert estimate.raw == {"positive_mean": 0.5, "negative_mean": 0.1}

    def test_default_sentiment_is_storable(self):
        entry = SentimentEntry.from_estimate(SentimentEstimate.default())
        assert entry.score == 0.0
        assert entry.emotions == []
        assert entry.raw == {}


class TestExport:

    def test_export_json_is_pretty(self, store):
        store.append(make_record("a"))
        text = store.export_json()
        assert text.startswith("[\n  {")
        assert json.loads(text)[0]["comment"] == "nice"

    def test_export_writes_file(self, store, tmp_path):
        store.append(make_record("a"))
        store.append(make_record("b"))
        path = store.export(tmp_path / "history.json")
        data = json.loads(path.read_text(encoding="utf-8"))
        assert [r["id"] for r in data] == ["b", "a"]
