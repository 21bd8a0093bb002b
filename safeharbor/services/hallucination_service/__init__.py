"""Hallucination Service: flags and corrects unsupported claims.

Components:
- config.py: patterns, replacement sentences and thresholds
- detector.py: HallucinationDetector and HallucinationCorrector
"""

from .config import HallucinationConfig
from .detector import CorrectionResult, HallucinationCorrector, HallucinationDetector

__all__ = [
    "HallucinationConfig",
    "CorrectionResult",
    "HallucinationCorrector",
    "HallucinationDetector",
]
