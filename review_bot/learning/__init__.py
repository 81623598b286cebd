"""Effectiveness learning.

This module provides:
- EffectivenessStore: per-rule feedback counters and run history
- LearningFilter: confidence, relevance filtering, pacing, insights and
  adaptive rule variants
"""

from .effectiveness import EffectivenessStore
from .filter import LearningFilter

__all__ = [
    "EffectivenessStore",
    "LearningFilter",
]
