"""
Path scheduler: prerequisite-respecting, priority-ordered learning paths.

Kahn-style topological sort whose frontier is a binary heap keyed by
``(-priority, concept_id)``, so the highest-priority eligible concept is
placed first and ties fall back to lexical concept-ID order.

A prerequisite unlocks its dependents only when the learner's snapshot
mastery on it is at or above the threshold; a mastered prerequisite that
belongs to the subject must additionally be placed earlier in the path.
Everything in here is a pure function of its inputs.
"""

import heapq
import logging
from collections import deque
from typing import Dict, Iterable, List, Mapping, Set

from src.errors import validate_threshold
from src.models import DEFAULT_MASTERY_THRESHOLD, LearningPath, PathConcept
from src.prerequisite_graph import PrerequisiteGraph

logger = logging.getLogger(__name__)

# Output compatibility depends on these exact weights and signs.
W_MASTERY = 0.3
W_DIFFICULTY = 0.2
W_GAP = 0.5


def calculate_priority(mastery: float, difficulty: float, gap_count: int = 0) -> float:
    """Higher means scheduled sooner.

    Rewards room left to learn (low own mastery), penalises difficulty
    and prerequisites still missing when the concept became a candidate.
    """
    return (1 - mastery) * W_MASTERY - difficulty * W_DIFFICULTY - gap_count * W_GAP


# =========================================================================
# Path generation
# =========================================================================


def schedule_path(
    graph: PrerequisiteGraph,
    mastery: Mapping[str, float],
    threshold: float = DEFAULT_MASTERY_THRESHOLD,
) -> LearningPath:
    """Order the concepts of *graph* for a learner with *mastery* snapshot.

    Args:
        graph: Concepts of one subject plus the edges whose dependent is
               one of them. Prerequisites outside the concept set are
               judged on mastery alone.
        mastery: ``{concept_id: score}``; absent concepts score 0.
        threshold: Minimum score for a prerequisite to count as met.

    Returns:
        ``LearningPath`` with the placed concepts, their total time, the
        prerequisites blocking the rest (``gap_concept_ids``) and the
        concepts left out (``blocked_concept_ids``).

    Raises:
        InvalidThreshold: if *threshold* is outside ``[0, 1]``.
    """
    threshold = validate_threshold(threshold)

    def score(concept_id: str) -> float:
        return mastery.get(concept_id, 0.0)

    def is_met(concept_id: str) -> bool:
        return score(concept_id) >= threshold

    concept_ids = sorted(graph.concepts)

    # Missing prerequisites never become met during a run; pending ones
    # are met but still waiting to be placed.
    missing: Dict[str, List[str]] = {}
    pending: Dict[str, int] = {}
    for cid in concept_ids:
        prereqs = graph.prerequisites_of(cid)
        missing[cid] = [p for p in prereqs if not is_met(p)]
        pending[cid] = sum(1 for p in prereqs if is_met(p) and p in graph)

    frontier: List[tuple] = []

    def push(cid: str) -> None:
        concept = graph.concepts[cid]
        priority = calculate_priority(
            score(cid), concept.difficulty, len(missing[cid])
        )
        heapq.heappush(frontier, (-priority, cid))

    for cid in concept_ids:
        if not missing[cid] and pending[cid] == 0:
            push(cid)

    ordered: List[PathConcept] = []
    placed: Set[str] = set()
    while frontier:
        _, cid = heapq.heappop(frontier)
        placed.add(cid)
        ordered.append(_annotate(graph, cid, score(cid)))

        if not is_met(cid):
            # Never counted as pending for its dependents.
            continue
        for dep in graph.dependents_of(cid):
            if dep not in graph or dep in placed:
                continue
            pending[dep] -= 1
            if pending[dep] == 0 and not missing[dep]:
                push(dep)

    blocked = [cid for cid in concept_ids if cid not in placed]
    gaps = _blocking_prerequisites(graph, blocked, placed, is_met)

    total_time = sum(c.estimated_time_minutes for c in ordered)
    logger.debug(
        "Scheduled %d/%d concept(s), %d gap(s), %d min (threshold=%.2f).",
        len(ordered), len(concept_ids), len(gaps), total_time, threshold,
    )
    return LearningPath(
        ordered_concepts=ordered,
        total_estimated_time_minutes=total_time,
        gap_concept_ids=gaps,
        blocked_concept_ids=blocked,
    )


def _annotate(graph: PrerequisiteGraph, concept_id: str, mastery: float) -> PathConcept:
    concept = graph.concepts[concept_id]
    return PathConcept(
        **concept.model_dump(),
        mastery_score=mastery,
        prerequisite_ids=graph.prerequisites_of(concept_id),
    )


def _blocking_prerequisites(
    graph: PrerequisiteGraph,
    blocked: List[str],
    placed: Set[str],
    is_met,
) -> List[str]:
    """Deduplicated, sorted prerequisite IDs that hold back *blocked* concepts.

    A blocked concept is reported through the prerequisites that are not
    themselves blocked (unmastered but placed, or outside the subject).
    Blocked concepts whose chain never reaches such a prerequisite sit on
    or behind a cycle; their still-unmet prerequisites are reported as-is.
    """
    blocked_set = set(blocked)
    still_unmet: Dict[str, List[str]] = {
        cid: [
            p for p in graph.prerequisites_of(cid)
            if not is_met(p) or (p in graph and p not in placed)
        ]
        for cid in blocked
    }

    gaps: Set[str] = set()
    rooted: Set[str] = set()
    queue = deque()
    for cid in blocked:
        roots = [p for p in still_unmet[cid] if p not in blocked_set]
        if roots:
            gaps.update(roots)
            rooted.add(cid)
            queue.append(cid)

    while queue:
        cid = queue.popleft()
        for dep in graph.dependents_of(cid):
            if dep in blocked_set and dep not in rooted:
                rooted.add(dep)
                queue.append(dep)

    for cid in blocked:
        if cid not in rooted:
            gaps.update(still_unmet[cid])

    return sorted(gaps)


# =========================================================================
# Reordering
# =========================================================================


def reorder_path(path: LearningPath, priority_concept_ids: Iterable[str]) -> LearningPath:
    """Pull *priority_concept_ids* forward without breaking prerequisite order.

    Stable partition-and-merge: each priority concept is placed as soon as
    all of its prerequisites that are part of *path* have been placed;
    every other concept keeps its original relative order. Prerequisites
    outside the path (mastered before the run) never block.
    """
    priority = set(priority_concept_ids)
    if not priority:
        return path.model_copy(deep=True)

    concepts = path.ordered_concepts
    in_path = {c.id for c in concepts}
    placed: Set[str] = set()
    result: List[PathConcept] = []

    def ready(concept: PathConcept) -> bool:
        return all(p in placed for p in concept.prerequisite_ids if p in in_path)

    def place(concept: PathConcept) -> None:
        placed.add(concept.id)
        result.append(concept)

    waiting = [c for c in concepts if c.id in priority]

    def drain() -> None:
        progress = True
        while progress:
            progress = False
            for concept in waiting:
                if ready(concept):
                    waiting.remove(concept)
                    place(concept)
                    progress = True
                    break

    drain()
    deferred: List[PathConcept] = []
    for concept in concepts:
        if concept.id in priority:
            continue
        if ready(concept):
            place(concept)
            drain()
        else:
            deferred.append(concept)

    # Only reachable when the input path was not prerequisite-ordered.
    leftovers = waiting + deferred
    while leftovers:
        progressed = [c for c in leftovers if ready(c)]
        if not progressed:
            logger.warning(
                "Reorder could not satisfy prerequisites for %s; "
                "appending in original order.",
                [c.id for c in leftovers],
            )
            order = {c.id: i for i, c in enumerate(concepts)}
            for concept in sorted(leftovers, key=lambda c: order[c.id]):
                place(concept)
            break
        place(progressed[0])
        leftovers.remove(progressed[0])

    logger.debug(
        "Reordered %d concept(s) toward %d priority ID(s).",
        len(result), len(priority & in_path),
    )
    return LearningPath(
        ordered_concepts=[c.model_copy(deep=True) for c in result],
        total_estimated_time_minutes=sum(c.estimated_time_minutes for c in result),
        gap_concept_ids=list(path.gap_concept_ids),
        blocked_concept_ids=list(path.blocked_concept_ids),
    )
