"""
In-memory prerequisite graph: adjacency, transitive closure, integrity
validation, and graph metrics.

The graph is built once per invocation from the two collaborator list
calls (concepts + edges) so traversal never goes back to the store.
``networkx.DiGraph`` is used only for integrity checks and metrics.
"""

import logging
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Set

import networkx as nx

from src.models import Concept, PrerequisiteEdge

logger = logging.getLogger(__name__)


class PrerequisiteGraph:
    """Adjacency lists keyed by concept ID, in both directions.

    ``prerequisites[c]`` lists the concepts *c* depends on;
    ``dependents[p]`` lists the concepts that depend on *p*.
    Edge order follows insertion order, duplicates are dropped.
    """

    def __init__(self) -> None:
        self.concepts: Dict[str, Concept] = {}
        self.prerequisites: Dict[str, List[str]] = defaultdict(list)
        self.dependents: Dict[str, List[str]] = defaultdict(list)
        self._edges: Set[tuple] = set()

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def build(
        cls,
        concepts: Iterable[Concept],
        edges: Iterable[PrerequisiteEdge],
    ) -> "PrerequisiteGraph":
        graph = cls()
        for concept in concepts:
            graph.concepts[concept.id] = concept
        for edge in edges:
            graph.add_edge(edge.prerequisite_id, edge.dependent_id)
        logger.debug(
            "Built prerequisite graph: %d concepts, %d edges.",
            len(graph.concepts), len(graph._edges),
        )
        return graph

    def add_edge(self, prerequisite_id: str, dependent_id: str) -> bool:
        """Add one edge. Returns ``False`` for self-loops and duplicates."""
        if prerequisite_id == dependent_id:
            logger.warning("Skipping self-loop on concept %s.", prerequisite_id)
            return False
        key = (prerequisite_id, dependent_id)
        if key in self._edges:
            return False
        self._edges.add(key)
        self.prerequisites[dependent_id].append(prerequisite_id)
        self.dependents[prerequisite_id].append(dependent_id)
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def __contains__(self, concept_id: object) -> bool:
        return concept_id in self.concepts

    def __len__(self) -> int:
        return len(self.concepts)

    @property
    def edge_count(self) -> int:
        return len(self._edges)

    def prerequisites_of(self, concept_id: str) -> List[str]:
        return list(self.prerequisites.get(concept_id, ()))

    def dependents_of(self, concept_id: str) -> List[str]:
        return list(self.dependents.get(concept_id, ()))

    def external_prerequisite_ids(self) -> Set[str]:
        """Prerequisite IDs referenced by edges but not part of the concept set."""
        return {
            prereq
            for dependent in self.concepts
            for prereq in self.prerequisites.get(dependent, ())
            if prereq not in self.concepts
        }

    def prerequisite_closure(self, concept_id: str) -> Set[str]:
        """Return every concept transitively required before *concept_id*.

        Depth-first with a visited set, so shared sub-paths are walked once
        and a cycle terminates instead of recursing forever. The queried
        concept is never part of its own closure.
        """
        visited: Set[str] = {concept_id}
        closure: Set[str] = set()
        stack = [concept_id]
        while stack:
            current = stack.pop()
            for prereq in self.prerequisites.get(current, ()):
                if prereq in visited:
                    continue
                visited.add(prereq)
                closure.add(prereq)
                stack.append(prereq)
        return closure

    def to_networkx(self) -> nx.DiGraph:
        G = nx.DiGraph()
        G.add_nodes_from(self.concepts)
        G.add_edges_from(self._edges)
        return G


# =========================================================================
# Validation
# =========================================================================


def find_cyclic_groups(graph: PrerequisiteGraph) -> List[List[str]]:
    """Return each group of concepts that depend on each other, sorted.

    A group is a strongly connected component with more than one member.
    """
    G = graph.to_networkx()
    groups = [
        sorted(component)
        for component in nx.strongly_connected_components(G)
        if len(component) > 1
    ]
    return sorted(groups)


def validate_dag(graph: PrerequisiteGraph) -> bool:
    """Verify that the prerequisite edges form a DAG (topological sort succeeds)."""
    try:
        list(nx.topological_sort(graph.to_networkx()))
        return True
    except nx.NetworkXUnfeasible:
        return False


def validate_graph(graph: PrerequisiteGraph) -> Dict[str, Any]:
    """Integrity report for curriculum data.

    Returns dict with: is_dag, cyclic_groups, external_prerequisites.
    Cycles are reported, never repaired.
    """
    cyclic_groups = find_cyclic_groups(graph)
    external = sorted(graph.external_prerequisite_ids())
    if cyclic_groups:
        logger.warning(
            "Prerequisite data contains %d cycle(s): %s",
            len(cyclic_groups), cyclic_groups,
        )
    return {
        "is_dag": not cyclic_groups,
        "cyclic_groups": cyclic_groups,
        "external_prerequisites": external,
    }


# =========================================================================
# Metrics
# =========================================================================


def compute_metrics(graph: PrerequisiteGraph) -> Dict[str, Any]:
    """Compute graph summary metrics.

    Returns dict with: total_concepts, total_edges, avg_out_degree,
    max_depth, isolated_nodes_count, root_count.
    """
    G = graph.to_networkx()
    n_concepts = len(graph)
    total_edges = G.number_of_edges()
    nodes_in_graph = G.number_of_nodes()

    avg_out = total_edges / nodes_in_graph if nodes_in_graph > 0 else 0.0

    if total_edges > 0 and nx.is_directed_acyclic_graph(G):
        max_depth = nx.dag_longest_path_length(G)
    else:
        max_depth = 0

    isolated = sum(
        1 for cid in graph.concepts
        if not graph.prerequisites.get(cid) and not graph.dependents.get(cid)
    )
    roots = sum(1 for cid in graph.concepts if not graph.prerequisites.get(cid))

    return {
        "total_concepts": n_concepts,
        "total_edges": total_edges,
        "avg_out_degree": round(avg_out, 4),
        "max_depth": max_depth,
        "isolated_nodes_count": isolated,
        "root_count": roots,
    }

