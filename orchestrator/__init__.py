"""
Analysis orchestrator for Pothole Snap.

Coordinates the detection, dimension, material, severity and volume
inference flows for one captured road photo.
"""

from .client import InferenceBackend, InferenceClient
from .errors import AnalysisError
from .models import AnalysisReport, AnalysisStage, ProgressEvent
from .pipeline import AnalysisOrchestrator
from .session import GeoPoint, InspectionSession, InspectionStep, run_inspection

__all__ = [
    "AnalysisError",
    "AnalysisOrchestrator",
    "AnalysisReport",
    "AnalysisStage",
    "GeoPoint",
    "InferenceBackend",
    "InferenceClient",
    "InspectionSession",
    "InspectionStep",
    "ProgressEvent",
    "run_inspection",
]
