"""Schema package exports."""

from .jobs import AnalysisJob
from .media import Media

__all__ = ["AnalysisJob", "Media"]
