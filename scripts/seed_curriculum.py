"""
Seed the database with the sample Mathematics subject and its concept graph.

Usage::

    python scripts/seed_curriculum.py --db ./data/curriculum.db \\
        [--learner demo --mastery numbers-counting=0.9 addition=0.75]
"""

import argparse
import logging
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from src import db
from src.utils import setup_logging

logger = logging.getLogger(__name__)

SUBJECT_ID = "mathematics"

MATHEMATICS = [
    # (slug, title, difficulty, minutes, prerequisites)
    ("numbers-counting", "Numbers and Counting", 0.5, 30, []),
    ("addition", "Addition", 1.0, 45, ["numbers-counting"]),
    ("subtraction", "Subtraction", 1.5, 45, ["numbers-counting", "addition"]),
    ("multiplication", "Multiplication", 2.0, 60, ["addition"]),
    ("division", "Division", 2.5, 60, ["multiplication", "subtraction"]),
    ("fractions", "Fractions", 3.0, 90, ["division"]),
    ("decimals", "Decimals", 2.5, 60, ["fractions"]),
    ("basic-algebra", "Basic Algebra", 3.5, 120,
     ["addition", "subtraction", "multiplication", "division"]),
]


def seed(db_path: str) -> int:
    """Insert the Mathematics subject idempotently. Returns edges inserted."""
    db.migrate_db(db_path)
    conn = db.get_connection(db_path)
    try:
        db.insert_subject(
            conn, SUBJECT_ID, "Mathematics",
            "Learn mathematics from first principles, starting with "
            "fundamental concepts and building up to advanced topics.",
        )
        for slug, title, difficulty, minutes, _ in MATHEMATICS:
            db.insert_concept(
                conn, slug, SUBJECT_ID, title,
                difficulty=difficulty, estimated_time_minutes=minutes, slug=slug,
            )
        edges = [
            {"prerequisite_id": prereq, "dependent_id": slug}
            for slug, _, _, _, prereqs in MATHEMATICS
            for prereq in prereqs
        ]
        n = db.insert_prerequisite_edges_batch(conn, edges)
        logger.info("Seeded %d concepts, %d new edge(s).", len(MATHEMATICS), n)
        return n
    finally:
        conn.close()


def _parse_mastery(pairs):
    result = {}
    for pair in pairs:
        concept_id, _, score = pair.partition("=")
        result[concept_id] = float(score)
    return result


def main(argv=None):
    setup_logging()
    parser = argparse.ArgumentParser(description="Seed the sample curriculum.")
    parser.add_argument("--db", default="./data/curriculum.db")
    parser.add_argument("--learner", default=None)
    parser.add_argument("--mastery", nargs="*", default=[],
                        help="concept_id=score pairs for --learner.")
    args = parser.parse_args(argv)

    seed(args.db)

    if args.learner:
        conn = db.get_connection(args.db)
        try:
            db.upsert_learner(conn, args.learner)
            for concept_id, score in _parse_mastery(args.mastery).items():
                db.upsert_mastery(conn, args.learner, concept_id, score)
        finally:
            conn.close()
        logger.info("Recorded %d mastery fact(s) for %s.",
                    len(args.mastery), args.learner)


if __name__ == "__main__":
    main()
