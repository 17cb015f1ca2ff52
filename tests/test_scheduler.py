"""
pytest suite for the path scheduler: priority heuristic, path generation,
gap reporting and the reordering pass.

Pure in-memory graphs only, no database needed.
"""

import os
import random
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from src.errors import InvalidThreshold
from src.models import Concept, LearningPath, PathConcept, PrerequisiteEdge
from src.prerequisite_graph import PrerequisiteGraph
from src.scheduler import calculate_priority, reorder_path, schedule_path


# =========================================================================
# Helpers
# =========================================================================


def _concept(cid, difficulty=1.0, minutes=30, subject="s1"):
    return Concept(
        id=cid, title=cid.upper(), subject_id=subject,
        difficulty=difficulty, estimated_time_minutes=minutes,
    )


def _graph(concepts, edges):
    return PrerequisiteGraph.build(
        concepts,
        [PrerequisiteEdge(prerequisite_id=p, dependent_id=d) for p, d in edges],
    )


def _diamond(c_difficulty=1.0):
    """A; B and C need A; D needs B and C."""
    concepts = [
        _concept("A", 0.5, 30),
        _concept("B", 1.0, 45),
        _concept("C", c_difficulty, 45),
        _concept("D", 2.0, 60),
    ]
    edges = [("A", "B"), ("A", "C"), ("B", "D"), ("C", "D")]
    return _graph(concepts, edges)


def _ids(path):
    return [c.id for c in path.ordered_concepts]


def _random_dag(seed, n=12, edge_prob=0.25):
    rng = random.Random(seed)
    ids = [f"c{i:02d}" for i in range(n)]
    concepts = [
        _concept(cid, round(rng.uniform(0, 5), 2), rng.randint(10, 90))
        for cid in ids
    ]
    edges = [
        (ids[i], ids[j])
        for i in range(n) for j in range(i + 1, n)
        if rng.random() < edge_prob
    ]
    mastery = {cid: rng.choice([0.0, 0.3, 0.7, 0.95]) for cid in ids}
    return _graph(concepts, edges), mastery


def _path_concept(cid, prereqs=(), minutes=30):
    return PathConcept(
        id=cid, title=cid, subject_id="s1",
        estimated_time_minutes=minutes, prerequisite_ids=list(prereqs),
    )


# =========================================================================
# Test: Priority
# =========================================================================


class TestPriority:
    """The linear priority heuristic."""

    def test_fresh_easy_concept(self):
        assert calculate_priority(0.0, 0.0) == pytest.approx(0.3)

    def test_exact_combination(self):
        # (1 - 0.5) * 0.3 - 2.0 * 0.2 - 1 * 0.5
        assert calculate_priority(0.5, 2.0, 1) == pytest.approx(-0.75)

    def test_lower_mastery_scores_higher(self):
        assert calculate_priority(0.1, 1.0) > calculate_priority(0.6, 1.0)

    def test_difficulty_and_gaps_penalised(self):
        assert calculate_priority(0.0, 1.0) > calculate_priority(0.0, 2.0)
        assert calculate_priority(0.0, 1.0, 0) > calculate_priority(0.0, 1.0, 1)


# =========================================================================
# Test: Path Generation
# =========================================================================


class TestSchedulePath:
    """Prerequisite gating, ordering and gap reporting."""

    def test_mastered_prerequisites_schedule_whole_subject(self):
        graph = _diamond()
        mastery = {"A": 0.8, "B": 0.8, "C": 0.8}
        path = schedule_path(graph, mastery, 0.7)

        assert _ids(path) == ["A", "B", "C", "D"]
        assert path.gap_concept_ids == []
        assert path.blocked_concept_ids == []

    def test_mastered_root_unlocks_direct_dependents(self):
        graph = _diamond(c_difficulty=2.0)
        path = schedule_path(graph, {"A": 0.8}, 0.7)

        # B is easier than C, so it comes first; D waits on both.
        assert _ids(path) == ["A", "B", "C"]
        assert path.blocked_concept_ids == ["D"]
        assert path.gap_concept_ids == ["B", "C"]

    def test_unmastered_root_blocks_everything_downstream(self):
        graph = _diamond()
        path = schedule_path(graph, {"A": 0.4}, 0.7)

        assert _ids(path) == ["A"]
        assert path.blocked_concept_ids == ["B", "C", "D"]
        assert path.gap_concept_ids == ["A"]

    def test_annotates_snapshot_mastery_and_prerequisites(self):
        graph = _diamond()
        path = schedule_path(graph, {"A": 0.8, "B": 0.9, "C": 0.75}, 0.7)
        by_id = {c.id: c for c in path.ordered_concepts}

        assert by_id["A"].mastery_score == pytest.approx(0.8)
        assert by_id["D"].mastery_score == 0.0
        assert sorted(by_id["D"].prerequisite_ids) == ["B", "C"]

    def test_higher_priority_first(self):
        graph = _graph(
            [_concept("hard", 3.0), _concept("easy", 1.0), _concept("half", 1.0)],
            [],
        )
        path = schedule_path(graph, {"half": 0.5}, 0.7)
        assert _ids(path) == ["easy", "half", "hard"]

    def test_ties_broken_by_concept_id(self):
        graph = _graph([_concept("b"), _concept("c"), _concept("a")], [])
        path = schedule_path(graph, {}, 0.7)
        assert _ids(path) == ["a", "b", "c"]

    def test_empty_subject(self):
        path = schedule_path(PrerequisiteGraph(), {"x": 1.0}, 0.7)
        assert path.ordered_concepts == []
        assert path.gap_concept_ids == []
        assert path.total_estimated_time_minutes == 0

    def test_time_is_sum_of_ordered_concepts(self):
        graph = _diamond(c_difficulty=2.0)
        path = schedule_path(graph, {"A": 0.8}, 0.7)
        assert path.total_estimated_time_minutes == sum(
            c.estimated_time_minutes for c in path.ordered_concepts
        )
        assert path.total_estimated_time_minutes == 30 + 45 + 45

    def test_idempotent(self):
        graph, mastery = _random_dag(seed=7)
        first = schedule_path(graph, mastery, 0.7)
        second = schedule_path(graph, mastery, 0.7)
        assert first.model_dump() == second.model_dump()

    def test_external_prerequisite_judged_on_mastery(self):
        graph = _graph([_concept("q")], [("outside", "q")])

        blocked = schedule_path(graph, {}, 0.7)
        assert _ids(blocked) == []
        assert blocked.gap_concept_ids == ["outside"]

        unlocked = schedule_path(graph, {"outside": 0.9}, 0.7)
        assert _ids(unlocked) == ["q"]
        assert unlocked.gap_concept_ids == []


class TestThreshold:
    """Threshold validation and sensitivity."""

    @pytest.mark.parametrize("bad", [-0.1, 1.01, 5, float("nan")])
    def test_out_of_range_rejected(self, bad):
        with pytest.raises(InvalidThreshold) as excinfo:
            schedule_path(_diamond(), {}, bad)
        assert excinfo.value.threshold is bad

    @pytest.mark.parametrize("edge", [0.0, 1.0])
    def test_bounds_accepted(self, edge):
        schedule_path(_diamond(), {}, edge)

    def test_zero_threshold_meets_every_prerequisite(self):
        path = schedule_path(_diamond(), {}, 0.0)
        assert _ids(path) == ["A", "B", "C", "D"]

    def test_raising_threshold_blocks_dependent(self):
        graph = _graph([_concept("p"), _concept("x")], [("p", "x")])
        mastery = {"p": 0.7}

        lenient = schedule_path(graph, mastery, 0.5)
        strict = schedule_path(graph, mastery, 0.9)

        assert "x" in _ids(lenient)
        assert "x" not in _ids(strict)
        assert "x" in strict.blocked_concept_ids
        assert strict.gap_concept_ids == ["p"]

    def test_mastery_equal_to_threshold_counts_as_met(self):
        graph = _graph([_concept("p"), _concept("x")], [("p", "x")])
        path = schedule_path(graph, {"p": 0.7}, 0.7)
        assert _ids(path) == ["p", "x"]


class TestCycles:
    """Cyclic data degrades to gaps instead of looping."""

    def test_two_node_cycle(self):
        graph = _graph([_concept("X"), _concept("Y")], [("X", "Y"), ("Y", "X")])
        path = schedule_path(graph, {}, 0.7)

        assert path.ordered_concepts == []
        assert path.gap_concept_ids == ["X", "Y"]
        assert path.blocked_concept_ids == ["X", "Y"]

    def test_cycle_behind_mastered_concept(self):
        graph = _graph(
            [_concept("M"), _concept("X"), _concept("Y")],
            [("M", "X"), ("X", "Y"), ("Y", "X")],
        )
        path = schedule_path(graph, {"M": 0.9}, 0.7)

        assert _ids(path) == ["M"]
        assert path.gap_concept_ids == ["X", "Y"]

    def test_cycle_behind_unmastered_concept_reports_root(self):
        graph = _graph(
            [_concept("R"), _concept("X"), _concept("Y")],
            [("R", "X"), ("X", "Y"), ("Y", "X")],
        )
        path = schedule_path(graph, {}, 0.7)

        assert _ids(path) == ["R"]
        assert path.gap_concept_ids == ["R"]

    def test_self_loop_ignored(self):
        graph = PrerequisiteGraph.build([_concept("s")], [])
        graph.add_edge("s", "s")
        assert _ids(schedule_path(graph, {}, 0.7)) == ["s"]


class TestProperties:
    """Invariants over seeded random DAGs."""

    @pytest.mark.parametrize("seed", range(10))
    def test_prerequisites_met_and_earlier(self, seed):
        graph, mastery = _random_dag(seed)
        path = schedule_path(graph, mastery, 0.7)
        position = {cid: i for i, cid in enumerate(_ids(path))}

        for concept in path.ordered_concepts:
            for prereq in graph.prerequisites_of(concept.id):
                assert mastery.get(prereq, 0.0) >= 0.7
                if prereq in graph:
                    assert position[prereq] < position[concept.id]

    @pytest.mark.parametrize("seed", range(10))
    def test_every_concept_placed_once_or_blocked(self, seed):
        graph, mastery = _random_dag(seed)
        path = schedule_path(graph, mastery, 0.7)
        placed = _ids(path)

        assert len(placed) == len(set(placed))
        assert set(placed).isdisjoint(path.blocked_concept_ids)
        assert set(placed) | set(path.blocked_concept_ids) == set(graph.concepts)

        blocking = {
            p for cid in path.blocked_concept_ids
            for p in graph.prerequisites_of(cid)
        }
        assert set(path.gap_concept_ids) <= blocking
        assert bool(path.gap_concept_ids) == bool(path.blocked_concept_ids)


# =========================================================================
# Test: Reordering
# =========================================================================


class TestReorderPath:
    """Stable partition-and-merge toward priority concepts."""

    def test_priority_cannot_jump_its_prerequisites(self):
        path = schedule_path(_diamond(), {"A": 0.8, "B": 0.8, "C": 0.8}, 0.7)
        reordered = reorder_path(path, ["D"])

        ids = _ids(reordered)
        assert ids == ["A", "B", "C", "D"]
        assert ids.index("B") < ids.index("D")
        assert ids.index("C") < ids.index("D")

    def test_independent_priority_moves_to_front(self):
        path = LearningPath(ordered_concepts=[
            _path_concept("a"), _path_concept("b"), _path_concept("c"),
        ])
        assert _ids(reorder_path(path, ["c"])) == ["c", "a", "b"]

    def test_priority_placed_as_soon_as_prerequisites_allow(self):
        path = LearningPath(ordered_concepts=[
            _path_concept("A"),
            _path_concept("C"),
            _path_concept("E"),
            _path_concept("B", ["A"]),
        ])
        assert _ids(reorder_path(path, ["B"])) == ["A", "B", "C", "E"]

    def test_prerequisites_outside_path_do_not_block(self):
        path = LearningPath(ordered_concepts=[
            _path_concept("a"),
            _path_concept("b", ["mastered-earlier"]),
        ])
        assert _ids(reorder_path(path, ["b"])) == ["b", "a"]

    def test_empty_or_unknown_priority_keeps_order(self):
        path = LearningPath(ordered_concepts=[
            _path_concept("a"), _path_concept("b", ["a"]),
        ])
        assert _ids(reorder_path(path, [])) == ["a", "b"]
        assert _ids(reorder_path(path, ["zzz"])) == ["a", "b"]

    def test_carries_gaps_and_time(self):
        path = LearningPath(
            ordered_concepts=[
                _path_concept("a", minutes=20), _path_concept("b", minutes=25),
            ],
            total_estimated_time_minutes=45,
            gap_concept_ids=["g"],
            blocked_concept_ids=["h"],
        )
        reordered = reorder_path(path, ["b"])
        assert reordered.gap_concept_ids == ["g"]
        assert reordered.blocked_concept_ids == ["h"]
        assert reordered.total_estimated_time_minutes == 45

    def test_does_not_mutate_input(self):
        path = LearningPath(ordered_concepts=[
            _path_concept("a"), _path_concept("b"),
        ])
        reorder_path(path, ["b"])
        assert _ids(path) == ["a", "b"]

    @pytest.mark.parametrize("seed", range(8))
    def test_random_priorities_keep_prerequisite_order(self, seed):
        graph, _ = _random_dag(seed)
        path = schedule_path(graph, {cid: 1.0 for cid in graph.concepts}, 0.7)
        priority = random.Random(seed).sample(sorted(graph.concepts), 3)

        reordered = reorder_path(path, priority)
        ids = _ids(reordered)
        position = {cid: i for i, cid in enumerate(ids)}

        assert sorted(ids) == sorted(_ids(path))
        for concept in reordered.ordered_concepts:
            for prereq in concept.prerequisite_ids:
                assert position[prereq] < position[concept.id]
