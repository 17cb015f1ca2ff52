"""
Database module for the learning path scheduler.

Curriculum: ``Subjects``, ``Concepts`` and ``ConceptPrerequisites`` tables.
Learner state: ``Learners`` and ``LearnerMastery`` tables.

Readers return plain dicts (``sqlite3.Row`` → ``dict``); conversion to
models happens in :mod:`src.store`.
"""

import logging
import os
import sqlite3
import time
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

# =========================================================================
# Schema constants
# =========================================================================

_CREATE_SUBJECTS = """\
CREATE TABLE IF NOT EXISTS Subjects (
    id           TEXT    PRIMARY KEY,
    name         TEXT    UNIQUE NOT NULL,
    description  TEXT,
    created_at   TIMESTAMP
);
"""

_CREATE_CONCEPTS = """\
CREATE TABLE IF NOT EXISTS Concepts (
    id                       TEXT    PRIMARY KEY,
    subject_id               TEXT    NOT NULL,
    title                    TEXT    NOT NULL,
    slug                     TEXT,
    description              TEXT,
    difficulty               REAL    NOT NULL DEFAULT 0,
    estimated_time_minutes   INTEGER NOT NULL DEFAULT 30
                                     CHECK(estimated_time_minutes > 0),
    created_at               TIMESTAMP,
    FOREIGN KEY (subject_id) REFERENCES Subjects(id),
    UNIQUE(subject_id, slug)
);
"""

_CREATE_CONCEPT_PREREQUISITES = """\
CREATE TABLE IF NOT EXISTS ConceptPrerequisites (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    prerequisite_id  TEXT    NOT NULL,
    dependent_id     TEXT    NOT NULL,
    created_at       TIMESTAMP,
    FOREIGN KEY (prerequisite_id) REFERENCES Concepts(id),
    FOREIGN KEY (dependent_id)    REFERENCES Concepts(id),
    UNIQUE(prerequisite_id, dependent_id),
    CHECK(prerequisite_id <> dependent_id)
);
"""

_CREATE_LEARNERS = """\
CREATE TABLE IF NOT EXISTS Learners (
    id                TEXT    PRIMARY KEY,
    depth_preference  TEXT    CHECK(depth_preference IN
                                    ('surface','balanced','deep')),
    created_at        TIMESTAMP
);
"""

_CREATE_LEARNER_MASTERY = """\
CREATE TABLE IF NOT EXISTS LearnerMastery (
    learner_id          TEXT    NOT NULL,
    concept_id          TEXT    NOT NULL,
    mastery_score       REAL    NOT NULL DEFAULT 0
                                CHECK(mastery_score BETWEEN 0 AND 1),
    time_spent_minutes  INTEGER NOT NULL DEFAULT 0,
    last_studied        TIMESTAMP,
    PRIMARY KEY (learner_id, concept_id),
    FOREIGN KEY (concept_id) REFERENCES Concepts(id)
);
"""

_CREATE_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_concepts_subject ON Concepts(subject_id);",
    "CREATE INDEX IF NOT EXISTS idx_prereq_dependent "
    "ON ConceptPrerequisites(dependent_id);",
    "CREATE INDEX IF NOT EXISTS idx_prereq_prerequisite "
    "ON ConceptPrerequisites(prerequisite_id);",
)

# SQLite's default SQLITE_MAX_VARIABLE_NUMBER is 999 on older builds.
_IN_CLAUSE_CHUNK = 500


# =========================================================================
# Connection helper
# =========================================================================


def get_connection(db_path: str) -> sqlite3.Connection:
    """Return a new SQLite connection with WAL mode and row-factory enabled."""
    os.makedirs(os.path.dirname(os.path.abspath(db_path)), exist_ok=True)
    conn = sqlite3.connect(db_path, timeout=10)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL;")
    return conn


# =========================================================================
# Migration
# =========================================================================


def migrate_db(db_path: str) -> None:
    """Create (or verify) curriculum and learner tables + indexes."""
    conn = get_connection(db_path)
    try:
        for ddl in (
            _CREATE_SUBJECTS,
            _CREATE_CONCEPTS,
            _CREATE_CONCEPT_PREREQUISITES,
            _CREATE_LEARNERS,
            _CREATE_LEARNER_MASTERY,
        ):
            conn.execute(ddl)
        for ddl in _CREATE_INDEXES:
            conn.execute(ddl)
        conn.commit()
        logger.info("Migration OK at %s", os.path.abspath(db_path))
    finally:
        conn.close()


# =========================================================================
# Lock-retry helper
# =========================================================================

_SQLITE_LOCK_RETRIES = 5
_SQLITE_LOCK_BASE_DELAY = 0.1


def _retry_on_lock(fn, *args, **kwargs):  # type: ignore[no-untyped-def]
    """Wrap *fn* with SQLite-lock retry."""
    for attempt in range(1, _SQLITE_LOCK_RETRIES + 1):
        try:
            return fn(*args, **kwargs)
        except sqlite3.OperationalError as exc:
            if "locked" in str(exc).lower() and attempt < _SQLITE_LOCK_RETRIES:
                delay = _SQLITE_LOCK_BASE_DELAY * (2 ** (attempt - 1))
                logger.warning(
                    "SQLite locked (attempt %d/%d) — retrying in %.2fs",
                    attempt, _SQLITE_LOCK_RETRIES, delay,
                )
                time.sleep(delay)
            else:
                raise


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _chunks(ids: List[str]) -> Iterable[List[str]]:
    for start in range(0, len(ids), _IN_CLAUSE_CHUNK):
        yield ids[start:start + _IN_CLAUSE_CHUNK]


# =========================================================================
# Curriculum write helpers
# =========================================================================


def insert_subject(
    conn: sqlite3.Connection,
    subject_id: str,
    name: str,
    description: Optional[str] = None,
) -> str:
    """Insert a subject idempotently (``INSERT OR IGNORE``). Returns its ID."""

    def _do_insert() -> str:
        conn.execute(
            """INSERT OR IGNORE INTO Subjects (id, name, description, created_at)
               VALUES (?, ?, ?, ?)""",
            (subject_id, name, description, _now()),
        )
        conn.commit()
        row = conn.execute(
            "SELECT id FROM Subjects WHERE name = ?", (name,)
        ).fetchone()
        return row["id"] if row else subject_id

    return _retry_on_lock(_do_insert)


def insert_concept(
    conn: sqlite3.Connection,
    concept_id: str,
    subject_id: str,
    title: str,
    difficulty: float = 0.0,
    estimated_time_minutes: int = 30,
    slug: Optional[str] = None,
    description: Optional[str] = None,
) -> bool:
    """Insert a concept idempotently. Returns ``True`` if a row was created."""

    def _do_insert() -> bool:
        cursor = conn.execute(
            """
            INSERT OR IGNORE INTO Concepts
                (id, subject_id, title, slug, description, difficulty,
                 estimated_time_minutes, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (concept_id, subject_id, title, slug, description, difficulty,
             estimated_time_minutes, _now()),
        )
        conn.commit()
        return cursor.rowcount == 1

    return _retry_on_lock(_do_insert)


def insert_prerequisite_edges_batch(
    conn: sqlite3.Connection,
    edges: List[Dict[str, Any]],
) -> int:
    """Insert edges in a single transaction. Skips self-loops.

    Each dict: ``{prerequisite_id, dependent_id}``.
    Returns number of rows inserted.
    """
    now = _now()
    count = 0
    for e in edges:
        if e["prerequisite_id"] == e["dependent_id"]:
            logger.warning("Skipping self-loop on %s.", e["dependent_id"])
            continue
        cursor = conn.execute(
            """INSERT OR IGNORE INTO ConceptPrerequisites
                   (prerequisite_id, dependent_id, created_at)
               VALUES (?, ?, ?)""",
            (e["prerequisite_id"], e["dependent_id"], now),
        )
        count += cursor.rowcount
    conn.commit()
    return count


# =========================================================================
# Learner write helpers
# =========================================================================


def upsert_learner(
    conn: sqlite3.Connection,
    learner_id: str,
    depth_preference: Optional[str] = None,
) -> None:
    """Create a learner row, or update its depth preference."""

    def _do_upsert() -> None:
        conn.execute(
            """
            INSERT INTO Learners (id, depth_preference, created_at)
            VALUES (?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET depth_preference = excluded.depth_preference
            """,
            (learner_id, depth_preference, _now()),
        )
        conn.commit()

    _retry_on_lock(_do_upsert)


def upsert_mastery(
    conn: sqlite3.Connection,
    learner_id: str,
    concept_id: str,
    mastery_score: float,
    time_spent_minutes: int = 0,
    last_studied: Optional[str] = None,
) -> None:
    """Record a learner's current mastery score for a concept.

    The score is stored as given; how it is computed is the mastery
    owner's business.
    """

    def _do_upsert() -> None:
        conn.execute(
            """
            INSERT INTO LearnerMastery
                (learner_id, concept_id, mastery_score, time_spent_minutes,
                 last_studied)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(learner_id, concept_id) DO UPDATE SET
                mastery_score      = excluded.mastery_score,
                time_spent_minutes = excluded.time_spent_minutes,
                last_studied       = excluded.last_studied
            """,
            (learner_id, concept_id, mastery_score, time_spent_minutes,
             last_studied),
        )
        conn.commit()

    _retry_on_lock(_do_upsert)


# =========================================================================
# Curriculum read helpers
# =========================================================================


def get_concepts_by_subject(
    conn: sqlite3.Connection, subject_id: str
) -> List[Dict[str, Any]]:
    """Return the ``Concepts`` rows of *subject_id* ordered by ``id``."""
    rows = conn.execute(
        "SELECT * FROM Concepts WHERE subject_id = ? ORDER BY id",
        (subject_id,),
    ).fetchall()
    return [dict(r) for r in rows]


def get_prerequisite_edges_by_subject(
    conn: sqlite3.Connection, subject_id: str
) -> List[Dict[str, Any]]:
    """Return edges whose dependent concept belongs to *subject_id*."""
    rows = conn.execute(
        """SELECT e.prerequisite_id, e.dependent_id
           FROM ConceptPrerequisites e
           JOIN Concepts c ON c.id = e.dependent_id
           WHERE c.subject_id = ?
           ORDER BY e.id""",
        (subject_id,),
    ).fetchall()
    return [dict(r) for r in rows]


def get_prerequisite_edges_for(
    conn: sqlite3.Connection, dependent_ids: List[str]
) -> List[Dict[str, Any]]:
    """Return edges whose dependent is one of *dependent_ids*."""
    result: List[Dict[str, Any]] = []
    for chunk in _chunks(list(dependent_ids)):
        placeholders = ",".join("?" * len(chunk))
        rows = conn.execute(
            f"""SELECT prerequisite_id, dependent_id
                FROM ConceptPrerequisites
                WHERE dependent_id IN ({placeholders})
                ORDER BY id""",
            chunk,
        ).fetchall()
        result.extend(dict(r) for r in rows)
    return result


# =========================================================================
# Learner read helpers
# =========================================================================


def get_mastery_scores(
    conn: sqlite3.Connection, learner_id: str, concept_ids: List[str]
) -> Dict[str, float]:
    """Return ``{concept_id: mastery_score}`` for recorded facts only."""
    result: Dict[str, float] = {}
    for chunk in _chunks(list(concept_ids)):
        placeholders = ",".join("?" * len(chunk))
        rows = conn.execute(
            f"""SELECT concept_id, mastery_score
                FROM LearnerMastery
                WHERE learner_id = ? AND concept_id IN ({placeholders})""",
            [learner_id, *chunk],
        ).fetchall()
        result.update({r["concept_id"]: r["mastery_score"] for r in rows})
    return result


def get_mastery_rows(
    conn: sqlite3.Connection,
    learner_id: str,
    subject_id: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Return ``LearnerMastery`` rows of a learner, optionally for one subject.

    Rows are ordered by ascending ``mastery_score`` then ``concept_id``.
    """
    if subject_id is None:
        rows = conn.execute(
            """SELECT * FROM LearnerMastery
               WHERE learner_id = ?
               ORDER BY mastery_score, concept_id""",
            (learner_id,),
        ).fetchall()
    else:
        rows = conn.execute(
            """SELECT m.* FROM LearnerMastery m
               JOIN Concepts c ON c.id = m.concept_id
               WHERE m.learner_id = ? AND c.subject_id = ?
               ORDER BY m.mastery_score, m.concept_id""",
            (learner_id, subject_id),
        ).fetchall()
    return [dict(r) for r in rows]


def get_learner(
    conn: sqlite3.Connection, learner_id: str
) -> Optional[Dict[str, Any]]:
    """Return the learner row for *learner_id*, or ``None``."""
    row = conn.execute(
        "SELECT * FROM Learners WHERE id = ?", (learner_id,)
    ).fetchone()
    return dict(row) if row else None
