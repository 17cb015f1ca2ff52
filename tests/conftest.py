"""
Shared fixtures: temporary SQLite databases seeded from
``sample_curriculum.json``.
"""

import json
import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from src import db


def _load_sample():
    path = os.path.join(os.path.dirname(__file__), "sample_curriculum.json")
    with open(path, "r", encoding="utf-8") as fh:
        return json.load(fh)


@pytest.fixture()
def tmp_db(tmp_path):
    """Return a DB path inside a temporary directory."""
    return str(tmp_path / "test_curriculum.db")


@pytest.fixture()
def seeded_db(tmp_db):
    """DB pre-seeded with the Mathematics/Physics sample and two learners."""
    data = _load_sample()
    db.migrate_db(tmp_db)
    conn = db.get_connection(tmp_db)
    try:
        for s in data["subjects"]:
            db.insert_subject(conn, s["id"], s["name"])
        for c in data["concepts"]:
            db.insert_concept(
                conn, c["id"], c["subject_id"], c["title"],
                difficulty=c["difficulty"],
                estimated_time_minutes=c["estimated_time_minutes"],
                slug=c["id"],
            )
        db.insert_prerequisite_edges_batch(conn, [
            {"prerequisite_id": p, "dependent_id": c["id"]}
            for c in data["concepts"]
            for p in c["prerequisites"]
        ])
        for learner in data["learners"]:
            db.upsert_learner(conn, learner["id"], learner["depth_preference"])
            for m in learner["mastery"]:
                db.upsert_mastery(
                    conn, learner["id"], m["concept_id"], m["score"],
                    time_spent_minutes=m["time_spent_minutes"],
                    last_studied=m["last_studied"],
                )
    finally:
        conn.close()
    return tmp_db
