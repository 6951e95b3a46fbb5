"""
Pothole inference service: detection, dimension, material, severity and
volume flows backed by OpenAI models.
"""

from .app import PotholeInferenceService, create_app

__all__ = ["PotholeInferenceService", "create_app"]
