"""
Summary metrics for a computed learning path, serialised to JSON.
"""

import json
import logging
import os
from typing import Any, Dict

import numpy as np

from src.models import LearningPath

logger = logging.getLogger(__name__)


def _histogram(arr: np.ndarray, bins: int = 10) -> Dict[str, Any]:
    counts, edges = np.histogram(arr, bins=bins, range=(0.0, 1.0))
    return {
        "counts": counts.tolist(),
        "bin_edges": [round(float(e), 6) for e in edges],
    }


def summarize_path(path: LearningPath, bins: int = 10) -> Dict[str, Any]:
    """Counts, time and mastery distribution of *path*."""
    scores = np.array(
        [c.mastery_score for c in path.ordered_concepts], dtype=np.float64
    )
    return {
        "ordered_count": len(path.ordered_concepts),
        "blocked_count": len(path.blocked_concept_ids),
        "gap_count": len(path.gap_concept_ids),
        "total_estimated_time_minutes": path.total_estimated_time_minutes,
        "mean_mastery": round(float(scores.mean()), 4) if scores.size else 0.0,
        "mastery_histogram": _histogram(scores, bins=bins),
    }


def write_summary(summary: Dict[str, Any], out_path: str) -> None:
    os.makedirs(os.path.dirname(os.path.abspath(out_path)), exist_ok=True)
    with open(out_path, "w", encoding="utf-8") as fh:
        json.dump(summary, fh, indent=2, default=str)
    logger.info("Summary → %s", out_path)
