"""
Analysis History Module

Persists saved image analyses (thumbnail, classification, detections, comment
and sentiment) as one JSON array in Redis and exports it as a JSON file.
"""

__version__ = "1.0.0"
__author__ = "Image Insight Team"

from .store import HistoryRecord, HistoryStore, SentimentEntry

__all__ = ["HistoryRecord", "HistoryStore", "SentimentEntry"]
