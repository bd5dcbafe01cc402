"""
Image classification and object detection via Hugging Face pipelines,
plus the image helpers used around them (loading, thumbnails, annotation).
"""

import asyncio
import base64
import colorsys
import io
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError
import torch
from transformers import pipeline
import structlog

from utils.helpers import fetch_bytes

logger = structlog.get_logger()

DEFAULT_CLASSIFICATION_MODEL = "google/mobilenet_v2_1.0_224"
DEFAULT_DETECTION_MODEL = "hustvl/yolos-tiny"

ImageSource = Union[str, Path, bytes, Image.Image]


class InvalidImageError(ValueError):
    """Raised when the input cannot be decoded as an image"""


@dataclass(frozen=True)
class ClassificationResult:
    """A single classification prediction"""
    label: str
    probability: float


@dataclass(frozen=True)
class Detection:
    """A detected object; bbox is [x, y, width, height] in pixels"""
    label: str
    score: float
    bbox: Tuple[float, float, float, float] = field(default=(0.0, 0.0, 0.0, 0.0))


def load_image(source: ImageSource) -> Image.Image:
    """Open a local path, an http(s) URL, raw bytes or a PIL image as RGB"""
    if isinstance(source, Image.Image):
        return source.convert("RGB")
    try:
        if isinstance(source, bytes):
            image = Image.open(io.BytesIO(source))
        elif str(source).startswith(("http://", "https://")):
            image = Image.open(io.BytesIO(fetch_bytes(str(source))))
        else:
            image = Image.open(source)
        return image.convert("RGB")
    except (UnidentifiedImageError, OSError) as e:
        raise InvalidImageError(f"Not a readable image: {e}") from e


def fit_within(size: Tuple[int, int], max_width: int = 1280, max_height: int = 820) -> Tuple[int, int]:
    """Display size for an image, scaled down to fit the bounds but never up"""
    w, h = size
    s = min(1.0, max_width / w, max_height / h)
    return round(w * s), round(h * s)


def scale_detections(detections: List[Detection], scale_x: float, scale_y: float) -> List[Detection]:
    return [
        Detection(
            label=d.label,
            score=d.score,
            bbox=(d.bbox[0] * scale_x, d.bbox[1] * scale_y, d.bbox[2] * scale_x, d.bbox[3] * scale_y),
        )
        for d in detections
    ]


def make_thumbnail(image: Image.Image, max_width: int = 320, quality: int = 85) -> str:
    """Encode a downscaled JPEG copy of the image as a data URL"""
    scale = min(1.0, max_width / image.width)
    size = (max(1, round(image.width * scale)), max(1, round(image.height * scale)))
    thumb = image.convert("RGB").resize(size)
    buf = io.BytesIO()
    thumb.save(buf, format="JPEG", quality=quality)
    return "data:image/jpeg;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


def detection_colors(count: int) -> List[Tuple[int, int, int]]:
    """One distinct color per detection index (hue steps of 53 degrees)"""
    colors = []
    for i in range(count):
        r, g, b = colorsys.hls_to_rgb(((i * 53) % 360) / 360.0, 0.6, 0.8)
        colors.append((round(r * 255), round(g * 255), round(b * 255)))
    return colors


def annotate(image: Image.Image, detections: List[Detection]) -> Image.Image:
    """Return a copy of the image with detection boxes and score labels drawn"""
    out = image.convert("RGB")
    draw = ImageDraw.Draw(out)
    font = ImageFont.load_default()
    for d, color in zip(detections, detection_colors(len(detections))):
        x, y, w, h = d.bbox
        draw.rectangle([x, y, x + w, y + h], outline=color, width=2)
        label = f"{d.label} {d.score * 100:.1f}%"
        tw = draw.textlength(label, font=font) + 8
        th = 18
        top = max(0, y - th)
        draw.rectangle([x, top, x + tw, top + th], fill=color)
        draw.text((x + 4, top + 3), label, fill=(8, 16, 34), font=font)
    return out


def pipeline_device(device: Optional[str] = None) -> Union[int, str]:
    """
    Map a device setting to the form transformers pipelines accept.

    None picks GPU 0 when CUDA is available, "cpu" is -1, "cuda" / "cuda:N"
    is the GPU index. Anything else (e.g. "mps") is passed through.
    """
    if device is None or device == "auto":
        return 0 if torch.cuda.is_available() else -1
    if device == "cpu":
        return -1
    if device == "cuda":
        return 0
    if device.startswith("cuda:"):
        return int(device.split(":", 1)[1])
    return device


class VisionAnalyzer:
    """Classification and detection over a single image"""

    def __init__(self,
                 classification_model: str = DEFAULT_CLASSIFICATION_MODEL,
                 detection_model: str = DEFAULT_DETECTION_MODEL,
                 min_detection_score: float = 0.5,
                 device: Optional[str] = None,
                 classifier: Optional[Callable] = None,
                 detector: Optional[Callable] = None):
        self.classification_model = classification_model
        self.detection_model = detection_model
        self.min_detection_score = min_detection_score
        self.device = pipeline_device(device)

        try:
            self.classifier = classifier or pipeline(
                "image-classification", model=classification_model, device=self.device)
            self.detector = detector or pipeline(
                "object-detection", model=detection_model, device=self.device)
            logger.info("Vision models loaded",
                        classification_model=classification_model,
                        detection_model=detection_model,
                        device=self.device)
        except Exception as e:
            logger.error("Failed to load vision models", error=str(e))
            raise

    def classify(self, image: Image.Image, top_k: int = 5) -> List[ClassificationResult]:
        """Ranked (label, probability) predictions, highest first"""
        raw = self.classifier(image, top_k=top_k)
        results = [ClassificationResult(label=r["label"], probability=float(r["score"])) for r in raw]
        results.sort(key=lambda r: r.probability, reverse=True)
        return results[:top_k]

    def detect(self, image: Image.Image, max_detections: int = 20) -> List[Detection]:
        """Detected objects with [x, y, width, height] boxes in source pixels"""
        raw = self.detector(image, threshold=self.min_detection_score)
        detections = []
        for r in raw:
            score = float(r["score"])
            if score < self.min_detection_score:
                continue
            box = r["box"]
            detections.append(Detection(
                label=r["label"],
                score=score,
                bbox=(float(box["xmin"]), float(box["ymin"]),
                      float(box["xmax"] - box["xmin"]), float(box["ymax"] - box["ymin"])),
            ))
        detections.sort(key=lambda d: d.score, reverse=True)
        return detections[:max_detections]

    async def classify_async(self, image: Image.Image, top_k: int = 5) -> List[ClassificationResult]:
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, self.classify, image, top_k)

    async def detect_async(self, image: Image.Image, max_detections: int = 20) -> List[Detection]:
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, self.detect, image, max_detections)
