"""
Model Adapters Module

Wraps the pretrained vision (classification, detection) and text embedding
models behind small synchronous and async interfaces.
"""

__version__ = "1.0.0"
__author__ = "Image Insight Team"

from .image import (
    ClassificationResult,
    Detection,
    InvalidImageError,
    VisionAnalyzer,
    annotate,
    detection_colors,
    fit_within,
    load_image,
    make_thumbnail,
    pipeline_device,
    scale_detections,
)
from .text import TextEmbedder

__all__ = [
    "ClassificationResult",
    "Detection",
    "InvalidImageError",
    "TextEmbedder",
    "VisionAnalyzer",
    "annotate",
    "detection_colors",
    "fit_within",
    "load_image",
    "make_thumbnail",
    "pipeline_device",
    "scale_detections",
]
