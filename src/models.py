"""
Pydantic models for the learning path scheduler.

Curriculum: subjects' concepts and prerequisite edges.
Learner state: mastery facts as read from the store.
Scheduler output: learning paths and access checks.
Adaptation: loop configuration and result.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator


DepthAdjustment = Literal["surface", "balanced", "deep"]

DEFAULT_MASTERY_THRESHOLD = 0.7
DEFAULT_ESTIMATED_TIME_MINUTES = 30


# =========================================================================
# Curriculum Models
# =========================================================================


class Concept(BaseModel):
    """Mirrors a single row of the ``Concepts`` table."""

    id: str
    title: str
    subject_id: str
    difficulty: float = 0.0
    estimated_time_minutes: int = Field(
        default=DEFAULT_ESTIMATED_TIME_MINUTES, gt=0
    )
    slug: Optional[str] = None
    description: Optional[str] = None


class PrerequisiteEdge(BaseModel):
    """Directed edge: ``prerequisite_id`` must be learned before ``dependent_id``."""

    prerequisite_id: str
    dependent_id: str

    @model_validator(mode="after")
    def _no_self_loop(self) -> "PrerequisiteEdge":
        if self.prerequisite_id == self.dependent_id:
            raise ValueError(
                f"concept {self.prerequisite_id!r} cannot be its own prerequisite"
            )
        return self


# =========================================================================
# Learner State
# =========================================================================


class MasteryFact(BaseModel):
    """Mirrors a single row of the ``LearnerMastery`` table."""

    learner_id: str
    concept_id: str
    mastery_score: float = Field(default=0.0, ge=0.0, le=1.0)
    time_spent_minutes: int = Field(default=0, ge=0)
    last_studied: Optional[datetime] = None


# =========================================================================
# Scheduler Output
# =========================================================================


class PathConcept(Concept):
    """A scheduled concept annotated with the learner's snapshot mastery."""

    mastery_score: float = 0.0
    prerequisite_ids: List[str] = Field(default_factory=list)


class LearningPath(BaseModel):
    """Ordered concepts, their total time, and the prerequisites blocking the rest."""

    ordered_concepts: List[PathConcept] = Field(default_factory=list)
    total_estimated_time_minutes: int = 0
    gap_concept_ids: List[str] = Field(default_factory=list)
    blocked_concept_ids: List[str] = Field(default_factory=list)


class AccessCheck(BaseModel):
    """Result of gating direct access to a single concept."""

    can_access: bool
    missing_prerequisite_ids: List[str] = Field(default_factory=list)


# =========================================================================
# Adaptation
# =========================================================================


class AdaptationConfig(BaseModel):
    """Knobs for one pass of the adaptation loop."""

    mastery_threshold: float = DEFAULT_MASTERY_THRESHOLD
    review_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    pace_adjustment_factor: float = Field(default=1.0, ge=0.5, le=2.0)


class AdaptationResult(BaseModel):
    """Output of :meth:`src.adaptation.AdaptationLoop.adapt`."""

    updated_path: LearningPath
    recommended_actions: List[str] = Field(default_factory=list)
    pace_adjustment: float = 1.0
    depth_adjustment: DepthAdjustment = "balanced"
    remediation_needed: List[str] = Field(default_factory=list)
