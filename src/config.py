"""
Scheduler configuration: defaults, JSON load/save.

CLI flags override whatever a config file provides.
"""

import json
import logging
import os
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from src.models import DEFAULT_MASTERY_THRESHOLD

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "./data/curriculum.db"


class SchedulerConfig(BaseModel):
    """Settings shared by the CLI and the adaptation loop."""

    db_path: str = DEFAULT_DB_PATH
    # Range-checked by the scheduler so callers get InvalidThreshold.
    mastery_threshold: float = DEFAULT_MASTERY_THRESHOLD
    review_threshold: float = Field(default=0.6, ge=0.0, le=1.0)


def load_config(path: Optional[str] = None, **overrides: Any) -> SchedulerConfig:
    """Load a JSON config file (if given) and apply non-``None`` overrides."""
    data: Dict[str, Any] = {}
    if path:
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
        logger.info("Loaded config ← %s", path)
    data.update({k: v for k, v in overrides.items() if v is not None})
    return SchedulerConfig(**data)


def save_config(config: SchedulerConfig, path: str) -> None:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(config.model_dump(), fh, indent=2)
    logger.info("Config saved → %s", path)
