"""
Knowledge graph service: the interface callers use to plan learning.

Each call fetches a snapshot (concepts, edges, mastery) from the
``CurriculumStore`` up front, then runs the pure computation in
:mod:`src.scheduler` / :mod:`src.prerequisite_graph`. Collaborator
failures surface as ``DependencyUnavailable``; nothing is retried here.
"""

import logging
import sqlite3
from typing import Any, Callable, Iterable, List, Set, TypeVar

from src.errors import DependencyUnavailable, validate_threshold
from src.models import DEFAULT_MASTERY_THRESHOLD, AccessCheck, LearningPath
from src.prerequisite_graph import PrerequisiteGraph
from src.scheduler import reorder_path, schedule_path
from src.store import CurriculumStore
from src.utils import timed

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Failures raised by store implementations that mean "snapshot unavailable".
STORE_ERRORS = (sqlite3.Error, OSError)


class KnowledgeGraphService:
    """Learning-path generation, prerequisite closure and access gating."""

    def __init__(self, store: CurriculumStore) -> None:
        self.store = store

    def _fetch(self, operation: str, fn: Callable[..., T], *args: Any) -> T:
        try:
            return fn(*args)
        except STORE_ERRORS as exc:
            logger.error("Store read %s failed: %s", operation, exc)
            raise DependencyUnavailable(operation, exc) from exc

    # ------------------------------------------------------------------
    # Snapshot loading
    # ------------------------------------------------------------------

    def load_subject_graph(self, subject_id: str) -> PrerequisiteGraph:
        """Build the in-memory graph of *subject_id* with two store reads."""
        concepts = self._fetch("list_concepts", self.store.list_concepts, subject_id)
        if not concepts:
            logger.info("Subject %s has no concepts.", subject_id)
            return PrerequisiteGraph()
        edges = self._fetch(
            "list_prerequisite_edges", self.store.list_prerequisite_edges, subject_id
        )
        return PrerequisiteGraph.build(concepts, edges)

    def _load_prerequisite_ancestry(self, concept_id: str) -> PrerequisiteGraph:
        """Fetch every edge above *concept_id*, one batched read per depth level."""
        graph = PrerequisiteGraph()
        seen = {concept_id}
        frontier = [concept_id]
        while frontier:
            mapping = self._fetch(
                "get_prerequisite_ids", self.store.get_prerequisite_ids, frontier
            )
            next_frontier: List[str] = []
            for dependent_id in frontier:
                for prereq_id in mapping.get(dependent_id, ()):
                    graph.add_edge(prereq_id, dependent_id)
                    if prereq_id not in seen:
                        seen.add(prereq_id)
                        next_frontier.append(prereq_id)
            frontier = next_frontier
        return graph

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def generate_path(
        self,
        subject_id: str,
        learner_id: str,
        threshold: float = DEFAULT_MASTERY_THRESHOLD,
    ) -> LearningPath:
        """Personalised learning path of *learner_id* through *subject_id*.

        Unknown subjects yield an empty path; unknown learners are treated
        as having zero mastery everywhere.

        Raises:
            InvalidThreshold: before any store access, if *threshold* is
                outside ``[0, 1]``.
            DependencyUnavailable: if a snapshot read fails.
        """
        threshold = validate_threshold(threshold)

        with timed(f"Snapshot fetch subject={subject_id}"):
            graph = self.load_subject_graph(subject_id)
            if not len(graph):
                return LearningPath()
            wanted = sorted(set(graph.concepts) | graph.external_prerequisite_ids())
            mastery = self._fetch(
                "get_mastery_batch", self.store.get_mastery_batch, learner_id, wanted
            )

        with timed(f"Scheduling subject={subject_id}"):
            path = schedule_path(graph, mastery, threshold)

        logger.info(
            "Path for learner=%s subject=%s: %d concept(s), %d gap(s), %d min.",
            learner_id, subject_id, len(path.ordered_concepts),
            len(path.gap_concept_ids), path.total_estimated_time_minutes,
        )
        return path

    def get_prerequisite_closure(self, concept_id: str) -> Set[str]:
        """Every concept transitively required before *concept_id*."""
        graph = self._load_prerequisite_ancestry(concept_id)
        return graph.prerequisite_closure(concept_id)

    def can_access(
        self,
        concept_id: str,
        learner_id: str,
        threshold: float = DEFAULT_MASTERY_THRESHOLD,
    ) -> AccessCheck:
        """Gate direct access to a concept on its full prerequisite closure."""
        threshold = validate_threshold(threshold)

        closure = sorted(self.get_prerequisite_closure(concept_id))
        if not closure:
            return AccessCheck(can_access=True)

        mastery = self._fetch(
            "get_mastery_batch", self.store.get_mastery_batch, learner_id, closure
        )
        missing = [cid for cid in closure if mastery.get(cid, 0.0) < threshold]
        logger.debug(
            "Access check concept=%s learner=%s: %d/%d prerequisite(s) missing.",
            concept_id, learner_id, len(missing), len(closure),
        )
        return AccessCheck(can_access=not missing, missing_prerequisite_ids=missing)

    def reorder_path(
        self, path: LearningPath, priority_concept_ids: Iterable[str]
    ) -> LearningPath:
        """Bias an already computed path toward *priority_concept_ids*."""
        return reorder_path(path, priority_concept_ids)
