"""
Adaptation loop: re-plans a learner's path after each interaction.

Finds concepts needing remediation, pulls them forward in the current
path, and derives pace/depth adjustments and recommendations from the
learner's recorded mastery facts.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

import numpy as np

from src.knowledge_graph import KnowledgeGraphService
from src.models import (
    AdaptationConfig,
    AdaptationResult,
    DepthAdjustment,
    LearningPath,
    MasteryFact,
)

logger = logging.getLogger(__name__)

# Concepts per hour considered an average pace.
AVERAGE_VELOCITY = 0.5
MIN_PACE, MAX_PACE = 0.5, 2.0
VELOCITY_MASTERED = 0.7
SLOW_VELOCITY = 0.3
FAST_VELOCITY = 1.0
MAX_WEAK_BEFORE_SESSION = 3

# Spaced-repetition review rule.
REVIEW_MASTERY_BELOW = 0.8
REVIEW_AFTER_DAYS = 7


class AdaptationLoop:
    """Remediation, pace, depth and review signals on top of a path.

    Reads the learner's mastery facts through the service's store and
    re-plans with :meth:`KnowledgeGraphService.reorder_path`.
    """

    def __init__(self, service: KnowledgeGraphService) -> None:
        self.service = service
        self.store = service.store

    def adapt(
        self,
        learner_id: str,
        subject_id: str,
        config: Optional[AdaptationConfig] = None,
    ) -> AdaptationResult:
        """Run one adaptation pass for *learner_id* in *subject_id*."""
        config = config or AdaptationConfig()

        current_path = self.service.generate_path(
            subject_id, learner_id, config.mastery_threshold
        )
        facts = self.store.list_mastery_facts(learner_id, subject_id)
        weak = [f for f in facts if f.mastery_score < config.review_threshold]
        remediation = [f.concept_id for f in weak]

        velocity = self.learning_velocity(learner_id)
        pace = self.pace_adjustment(velocity, config.pace_adjustment_factor)
        depth = self.depth_adjustment(learner_id, facts)
        actions = self.recommendations(current_path, weak, velocity, remediation)

        if remediation:
            updated_path = self.service.reorder_path(current_path, remediation)
        else:
            updated_path = current_path

        logger.info(
            "Adapted learner=%s subject=%s: %d remediation, pace=%.2f, depth=%s.",
            learner_id, subject_id, len(remediation), pace, depth,
        )
        return AdaptationResult(
            updated_path=updated_path,
            recommended_actions=actions,
            pace_adjustment=pace,
            depth_adjustment=depth,
            remediation_needed=remediation,
        )

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def learning_velocity(self, learner_id: str) -> float:
        """Mastered concepts per hour of recorded study time."""
        studied = [
            f for f in self.store.list_mastery_facts(learner_id)
            if f.last_studied is not None
        ]
        total_minutes = sum(f.time_spent_minutes for f in studied)
        if total_minutes <= 0:
            return 0.0
        mastered = sum(1 for f in studied if f.mastery_score >= VELOCITY_MASTERED)
        return mastered / total_minutes * 60

    @staticmethod
    def pace_adjustment(velocity: float, base_factor: float) -> float:
        normalized = velocity / AVERAGE_VELOCITY
        return min(MAX_PACE, max(MIN_PACE, normalized * base_factor))

    def depth_adjustment(
        self, learner_id: str, facts: List[MasteryFact]
    ) -> DepthAdjustment:
        preference = self.store.get_depth_preference(learner_id)
        if preference:
            return preference  # type: ignore[return-value]
        if not facts:
            return "surface"

        avg_mastery = float(np.mean([f.mastery_score for f in facts]))
        if avg_mastery < 0.4:
            return "surface"
        if avg_mastery > 0.7:
            return "deep"
        return "balanced"

    @staticmethod
    def recommendations(
        path: LearningPath,
        weak: List[MasteryFact],
        velocity: float,
        remediation: List[str],
    ) -> List[str]:
        actions: List[str] = []
        if remediation:
            actions.append(f"Review {len(remediation)} concept(s) before proceeding")
        if path.gap_concept_ids:
            actions.append(
                f"Fill {len(path.gap_concept_ids)} prerequisite gap(s) "
                "to unlock new concepts"
            )
        if velocity < SLOW_VELOCITY:
            actions.append("Consider slowing down and focusing on deep understanding")
        elif velocity > FAST_VELOCITY:
            actions.append(
                "You're learning quickly! Consider exploring advanced applications"
            )
        if len(weak) > MAX_WEAK_BEFORE_SESSION:
            actions.append(
                "Multiple concepts need review - consider a focused review session"
            )
        return actions

    # ------------------------------------------------------------------
    # Review scheduling
    # ------------------------------------------------------------------

    def concepts_due_for_review(
        self,
        learner_id: str,
        subject_id: str,
        now: Optional[datetime] = None,
    ) -> List[str]:
        """Studied concepts that are weak or have not been seen for a week."""
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        due: List[str] = []
        for fact in self.store.list_mastery_facts(learner_id, subject_id):
            if fact.last_studied is None:
                continue
            last = fact.last_studied
            if last.tzinfo is None:
                last = last.replace(tzinfo=timezone.utc)
            days_since = (now - last).days
            if fact.mastery_score < REVIEW_MASTERY_BELOW or days_since > REVIEW_AFTER_DAYS:
                due.append(fact.concept_id)
        return due
