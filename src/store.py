"""
Read interfaces the scheduler consumes, and their SQLite implementation.
"""

import logging
import os
import sqlite3
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from src import db
from src.models import Concept, MasteryFact, PrerequisiteEdge

logger = logging.getLogger(__name__)


class CurriculumStore(ABC):
    """Curriculum and learner-mastery snapshot reads."""

    @abstractmethod
    def list_concepts(self, subject_id: str) -> List[Concept]:
        """Return the concepts of *subject_id*; empty for an unknown subject."""
        ...

    @abstractmethod
    def list_prerequisite_edges(self, subject_id: str) -> List[PrerequisiteEdge]:
        """Return edges whose dependent concept belongs to *subject_id*."""
        ...

    @abstractmethod
    def get_prerequisite_ids(self, concept_ids: Iterable[str]) -> Dict[str, List[str]]:
        """Return ``{dependent_id: [prerequisite_id, ...]}`` for *concept_ids*.

        Concepts without prerequisites are absent from the mapping.
        """
        ...

    @abstractmethod
    def get_mastery_batch(
        self, learner_id: str, concept_ids: Iterable[str]
    ) -> Dict[str, float]:
        """Return a score in ``[0, 1]`` for every requested concept (0 if absent)."""
        ...

    def get_mastery(self, learner_id: str, concept_id: str) -> float:
        return self.get_mastery_batch(learner_id, [concept_id])[concept_id]

    @abstractmethod
    def list_mastery_facts(
        self, learner_id: str, subject_id: Optional[str] = None
    ) -> List[MasteryFact]:
        """Return recorded facts, ascending by mastery score."""
        ...

    @abstractmethod
    def get_depth_preference(self, learner_id: str) -> Optional[str]:
        """Return the learner's explanation-depth preference, if any."""
        ...


class SqliteCurriculumStore(CurriculumStore):
    """``CurriculumStore`` over an open connection; the caller closes it."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    @classmethod
    def open(cls, db_path: str) -> "SqliteCurriculumStore":
        if not os.path.exists(db_path):
            logger.warning(
                "No database at %s; creating an empty one (run "
                "scripts/seed_curriculum.py to load a curriculum).",
                os.path.abspath(db_path),
            )
        db.migrate_db(db_path)
        return cls(db.get_connection(db_path))

    def close(self) -> None:
        self.conn.close()

    def list_concepts(self, subject_id: str) -> List[Concept]:
        rows = db.get_concepts_by_subject(self.conn, subject_id)
        return [
            Concept(
                id=r["id"],
                title=r["title"],
                subject_id=r["subject_id"],
                difficulty=r["difficulty"],
                estimated_time_minutes=r["estimated_time_minutes"],
                slug=r["slug"],
                description=r["description"],
            )
            for r in rows
        ]

    def list_prerequisite_edges(self, subject_id: str) -> List[PrerequisiteEdge]:
        rows = db.get_prerequisite_edges_by_subject(self.conn, subject_id)
        return [PrerequisiteEdge(**r) for r in rows]

    def get_prerequisite_ids(self, concept_ids: Iterable[str]) -> Dict[str, List[str]]:
        result: Dict[str, List[str]] = defaultdict(list)
        for r in db.get_prerequisite_edges_for(self.conn, list(concept_ids)):
            result[r["dependent_id"]].append(r["prerequisite_id"])
        return dict(result)

    def get_mastery_batch(
        self, learner_id: str, concept_ids: Iterable[str]
    ) -> Dict[str, float]:
        ids = list(dict.fromkeys(concept_ids))
        recorded = db.get_mastery_scores(self.conn, learner_id, ids)
        return {cid: float(recorded.get(cid, 0.0)) for cid in ids}

    def list_mastery_facts(
        self, learner_id: str, subject_id: Optional[str] = None
    ) -> List[MasteryFact]:
        rows = db.get_mastery_rows(self.conn, learner_id, subject_id)
        return [
            MasteryFact(
                learner_id=r["learner_id"],
                concept_id=r["concept_id"],
                mastery_score=r["mastery_score"],
                time_spent_minutes=r["time_spent_minutes"],
                last_studied=_parse_timestamp(r["last_studied"]),
            )
            for r in rows
        ]

    def get_depth_preference(self, learner_id: str) -> Optional[str]:
        row = db.get_learner(self.conn, learner_id)
        return row["depth_preference"] if row else None


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        logger.debug("Unparseable last_studied timestamp %r ignored.", value)
        return None
