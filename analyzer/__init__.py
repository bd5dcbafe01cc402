"""
Image Analysis Session Module

Ties together the vision models, anchor-based comment sentiment scoring and
the analysis history for interactive use.
"""

__version__ = "1.0.0"
__author__ = "Image Insight Team"

from .session import AnalysisContext, AnalysisResult, AnalysisSession, RequestSequencer, Settings

__all__ = ["AnalysisContext", "AnalysisResult", "AnalysisSession", "RequestSequencer", "Settings"]
