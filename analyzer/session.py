"""
Image Analysis Session

Drives the vision models, the comment sentiment scorer and the history store
for one user session: load an image, analyze it, score comments as they are
typed, save results and export the history.
"""

import argparse
import asyncio
import json
import sys
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

import redis
from PIL import Image
from pydantic_settings import BaseSettings
import structlog

from history.store import DEFAULT_EXPORT_FILENAME, DEFAULT_HISTORY_KEY, HistoryRecord, HistoryStore
from multimodal.image import (
    DEFAULT_CLASSIFICATION_MODEL,
    DEFAULT_DETECTION_MODEL,
    ClassificationResult,
    Detection,
    ImageSource,
    InvalidImageError,
    VisionAnalyzer,
    annotate,
    fit_within,
    load_image,
    make_thumbnail,
    scale_detections,
)
from multimodal.text import DEFAULT_EMBEDDING_MODEL, TextEmbedder
from scoring.anchors import AnchorSet, build_anchor_set_async
from scoring.similarity import SentimentEstimate, estimate_sentiment
from utils.helpers import configure_logging, now_ms

logger = structlog.get_logger()


class Settings(BaseSettings):
    """Analyzer settings"""
    redis_url: str = "redis://localhost:6379/0"
    history_key: str = DEFAULT_HISTORY_KEY

    # Models
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    classification_model: str = DEFAULT_CLASSIFICATION_MODEL
    detection_model: str = DEFAULT_DETECTION_MODEL
    device: Optional[str] = None

    # Analysis
    classification_top_k: int = 5
    max_detections: int = 20
    min_detection_score: float = 0.5

    # Display and thumbnails
    display_max_width: int = 1280
    display_max_height: int = 820
    thumbnail_max_width: int = 320
    thumbnail_quality: int = 85

    export_filename: str = DEFAULT_EXPORT_FILENAME
    log_level: str = "INFO"

    class Config:
        env_file = ".env"


@dataclass(frozen=True)
class AnalysisContext:
    """Loaded models and precomputed anchors, shared read-only by every call"""
    embedder: TextEmbedder
    anchors: AnchorSet
    vision: VisionAnalyzer


@dataclass
class AnalysisResult:
    """Outputs of one image analysis"""
    classification: List[ClassificationResult]
    detections: List[Detection]
    display_size: Tuple[int, int]
    display_detections: List[Detection] = field(default_factory=list)


class RequestSequencer:
    """
    Monotonic request tokens for last-write-wins updates.

    A response is only used if its token is still the latest one issued.
    In-flight work is never cancelled, its result is just dropped.
    """

    def __init__(self):
        self._latest = 0

    def issue(self) -> int:
        self._latest += 1
        return self._latest

    def is_current(self, token: int) -> bool:
        return token == self._latest


async def load_context(settings: Settings) -> AnalysisContext:
    """Load every model and precompute the anchor embeddings"""
    logger.info("Loading models",
                embedding_model=settings.embedding_model,
                classification_model=settings.classification_model,
                detection_model=settings.detection_model)
    loop = asyncio.get_event_loop()
    embedder, vision = await asyncio.gather(
        loop.run_in_executor(None, lambda: TextEmbedder(settings.embedding_model, device=settings.device)),
        loop.run_in_executor(None, lambda: VisionAnalyzer(
            classification_model=settings.classification_model,
            detection_model=settings.detection_model,
            min_detection_score=settings.min_detection_score,
            device=settings.device,
        )),
    )
    anchors = await build_anchor_set_async(embedder)
    logger.info("Models ready")
    return AnalysisContext(embedder=embedder, anchors=anchors, vision=vision)


class AnalysisSession:
    """State for one interactive analysis session"""

    def __init__(self, store: HistoryStore, settings: Optional[Settings] = None,
                 context: Optional[AnalysisContext] = None):
        self.settings = settings or Settings()
        self.store = store
        self.context = context
        self.sequencer = RequestSequencer()

        self.current_image: Optional[Image.Image] = None
        self.last_classification: List[ClassificationResult] = []
        self.last_detections: List[Detection] = []

    @property
    def ready(self) -> bool:
        return self.context is not None

    async def start(self):
        """Load models once; later calls are no-ops"""
        if self.context is None:
            self.context = await load_context(self.settings)

    def load_image(self, source: ImageSource) -> Image.Image:
        self.current_image = load_image(source)
        self.last_classification = []
        self.last_detections = []
        logger.info("Image loaded", size=self.current_image.size)
        return self.current_image

    def clear(self):
        self.current_image = None
        self.last_classification = []
        self.last_detections = []

    async def analyze(self) -> Optional[AnalysisResult]:
        """Classify and detect objects in the current image"""
        if not self.ready or self.current_image is None:
            logger.debug("Analysis skipped", ready=self.ready, has_image=self.current_image is not None)
            return None

        image = self.current_image
        vision = self.context.vision
        classification = await vision.classify_async(image, self.settings.classification_top_k)
        detections = await vision.detect_async(image, self.settings.max_detections)

        display_size = fit_within(image.size, self.settings.display_max_width, self.settings.display_max_height)
        display_detections = scale_detections(
            detections, display_size[0] / image.width, display_size[1] / image.height)

        # a different image may have been loaded while inference was running
        if self.current_image is image:
            self.last_classification = classification
            self.last_detections = detections
        else:
            logger.debug("Image changed during analysis, results not kept")

        logger.info("Image analyzed",
                    classes=[c.label for c in classification],
                    detections=len(detections))
        return AnalysisResult(
            classification=classification,
            detections=detections,
            display_size=display_size,
            display_detections=display_detections,
        )

    async def estimate(self, text: str) -> SentimentEstimate:
        """Sentiment for a comment; the default estimate when blank or not ready"""
        text = (text or "").strip()
        if not text or not self.ready:
            return SentimentEstimate.default()
        vectors = await self.context.embedder.embed([text])
        return estimate_sentiment(vectors[0], self.context.anchors)

    async def on_comment_changed(self, text: str) -> Optional[SentimentEstimate]:
        """
        Score the latest comment text.

        Returns None when a newer edit arrived while this one was being
        scored, so the caller never renders an outdated result.
        """
        token = self.sequencer.issue()
        result = await self.estimate(text)
        if not self.sequencer.is_current(token):
            logger.debug("Discarding stale sentiment", token=token)
            return None
        return result

    async def save(self, comment: str) -> HistoryRecord:
        comment = (comment or "").strip()
        sentiment = await self.estimate(comment)
        thumbnail = ""
        if self.current_image is not None:
            thumbnail = make_thumbnail(self.current_image, self.settings.thumbnail_max_width,
                                       self.settings.thumbnail_quality)
        record = HistoryRecord.build(
            record_id=uuid.uuid4().hex,
            timestamp=now_ms(),
            thumbnail=thumbnail,
            classification=self.last_classification,
            detections=self.last_detections,
            comment=comment,
            sentiment=sentiment,
        )
        self.store.append(record)
        return record

    def annotated_image(self) -> Optional[Image.Image]:
        if self.current_image is None:
            return None
        return annotate(self.current_image, self.last_detections)

    def export(self, path: Optional[str] = None) -> Path:
        return self.store.export(path or self.settings.export_filename)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Analyze an image and the sentiment of a comment about it")
    parser.add_argument("image", help="Image path or http(s) URL")
    parser.add_argument("--comment", default="", help="Comment to score")
    parser.add_argument("--save", action="store_true", help="Save the analysis to the history")
    parser.add_argument("--export", help="Write the full history as JSON to this path")
    parser.add_argument("--annotated", help="Write the image with detection boxes to this path")
    return parser


async def main(argv: Optional[List[str]] = None):
    """Main entry point"""
    args = build_parser().parse_args(argv)
    settings = Settings()
    configure_logging(settings.log_level)

    store = HistoryStore(redis.from_url(settings.redis_url), key=settings.history_key)
    session = AnalysisSession(store, settings)

    try:
        session.load_image(args.image)
    except InvalidImageError as e:
        logger.error("Failed to load image", image=args.image, error=str(e))
        sys.exit(1)

    await session.start()
    result = await session.analyze()
    sentiment = await session.estimate(args.comment)

    output = {
        "classification": [{"label": c.label, "probability": c.probability} for c in result.classification],
        "detections": [{"label": d.label, "score": d.score, "bbox": list(d.bbox)} for d in result.detections],
        "sentiment": sentiment.to_dict(),
    }
    print(json.dumps(output, indent=2))

    if args.annotated:
        session.annotated_image().save(args.annotated)
    if args.save:
        record = await session.save(args.comment)
        logger.info("Saved to history", record_id=record.id)
    if args.export:
        session.export(args.export)


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    run()
