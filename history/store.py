"""
Analysis History Store

Keeps the list of saved analyses in Redis as a single JSON array under one
well-known key, newest first. Every mutation rewrites the whole array.
"""

import json
from pathlib import Path
from typing import Dict, List, Optional, Union

import redis
from pydantic import BaseModel, Field, TypeAdapter, ValidationError
import structlog

from multimodal.image import ClassificationResult, Detection
from scoring.similarity import SentimentEstimate

logger = structlog.get_logger()

DEFAULT_HISTORY_KEY = "image-analyzer-history-v1"
DEFAULT_EXPORT_FILENAME = "image_analysis_history.json"


class ClassificationEntry(BaseModel):
    label: str
    probability: float = Field(ge=0.0, le=1.0)


class DetectionEntry(BaseModel):
    label: str
    score: float = Field(ge=0.0, le=1.0)
    bbox: List[float] = Field(min_length=4, max_length=4)


class EmotionEntry(BaseModel):
    label: str
    score: float


class SentimentEntry(BaseModel):
    """Stored form of a SentimentEstimate"""
    score: float = Field(ge=-1.0, le=1.0)
    emotions: List[EmotionEntry] = Field(default_factory=list)
    raw: Dict[str, float] = Field(default_factory=dict)

    @classmethod
    def from_estimate(cls, estimate: SentimentEstimate) -> "SentimentEntry":
        return cls(**estimate.to_dict())

    def to_estimate(self) -> SentimentEstimate:
        return SentimentEstimate(
            score=self.score,
            emotions=tuple((e.label, e.score) for e in self.emotions),
            raw=dict(self.raw),
        )


class HistoryRecord(BaseModel):
    """One saved analysis: image thumbnail, model outputs, comment and sentiment"""
    id: str
    timestamp: int
    thumbnail: str = ""
    classification: List[ClassificationEntry] = Field(default_factory=list)
    detections: List[DetectionEntry] = Field(default_factory=list)
    comment: str = ""
    sentiment: SentimentEntry

    @classmethod
    def build(cls, record_id: str, timestamp: int, thumbnail: str,
              classification: List[ClassificationResult], detections: List[Detection],
              comment: str, sentiment: SentimentEstimate) -> "HistoryRecord":
        return cls(
            id=record_id,
            timestamp=timestamp,
            thumbnail=thumbnail,
            classification=[ClassificationEntry(label=c.label, probability=c.probability)
                            for c in classification],
            detections=[DetectionEntry(label=d.label, score=d.score, bbox=list(d.bbox))
                        for d in detections],
            comment=comment,
            sentiment=SentimentEntry.from_estimate(sentiment),
        )


_records_adapter = TypeAdapter(List[HistoryRecord])


class HistoryStore:
    """Ordered, newest-first collection of HistoryRecords"""

    def __init__(self, redis_client: redis.Redis, key: str = DEFAULT_HISTORY_KEY):
        self.redis = redis_client
        self.key = key

    def list(self) -> List[HistoryRecord]:
        """
        Load every stored record.

        Unreadable JSON or any record with the wrong shape yields an empty
        history instead of an error.
        """
        data = self.redis.get(self.key)
        if not data:
            return []
        try:
            return _records_adapter.validate_python(json.loads(data))
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
            logger.warning("Discarding malformed history", key=self.key, error=str(e))
            return []

    def _save(self, records: List[HistoryRecord]):
        payload = json.dumps([r.model_dump(mode="json") for r in records])
        self.redis.set(self.key, payload)
        logger.debug("History saved", key=self.key, count=len(records))

    def append(self, record: HistoryRecord) -> List[HistoryRecord]:
        records = self.list()
        records.insert(0, record)
        self._save(records)
        logger.info("History record added", record_id=record.id, count=len(records))
        return records

    def remove(self, record_id: str) -> List[HistoryRecord]:
        records = [r for r in self.list() if r.id != record_id]
        self._save(records)
        logger.info("History record removed", record_id=record_id, count=len(records))
        return records

    def clear(self):
        self.redis.delete(self.key)

    def export_json(self) -> str:
        """Full history as pretty-printed JSON"""
        return json.dumps([r.model_dump(mode="json") for r in self.list()], indent=2, ensure_ascii=False)

    def export(self, path: Optional[Union[str, Path]] = None) -> Path:
        target = Path(path) if path else Path(DEFAULT_EXPORT_FILENAME)
        target.write_text(self.export_json(), encoding="utf-8")
        logger.info("History exported", path=str(target))
        return target
