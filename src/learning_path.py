"""
CLI: personalised learning path for one learner and subject.

Usage::

    python -m src.learning_path \\
        --db ./data/curriculum.db \\
        --subject mathematics --learner learner-1 \\
        --threshold 0.7 [--priority fractions ...] [--adapt] \\
        [--validate] [--summary-out ./data/path_summary.json]

Loads the subject's concept graph and the learner's mastery snapshot,
prints the scheduled path as JSON, and optionally writes a summary.
"""

import argparse
import json
import logging
import sys

from src.adaptation import AdaptationLoop
from src.config import DEFAULT_DB_PATH, load_config, save_config
from src.errors import DependencyUnavailable, InvalidThreshold
from src.knowledge_graph import STORE_ERRORS, KnowledgeGraphService
from src.models import AdaptationConfig
from src.path_report import summarize_path, write_summary
from src.prerequisite_graph import compute_metrics, validate_graph
from src.store import SqliteCurriculumStore
from src.utils import setup_logging

logger = logging.getLogger(__name__)

EXIT_INVALID_THRESHOLD = 2
EXIT_STORE_UNAVAILABLE = 3


def _parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="python -m src.learning_path",
        description="Generate a prerequisite-ordered learning path.",
    )
    parser.add_argument("--db", default=None,
                        help=f"SQLite database (default: {DEFAULT_DB_PATH}).")
    parser.add_argument("--subject", required=True)
    parser.add_argument("--learner", required=True)
    parser.add_argument("--threshold", type=float, default=None,
                        help="Mastery threshold in [0, 1] (default: 0.7).")
    parser.add_argument("--priority", nargs="*", default=[],
                        help="Concept IDs to pull forward in the path.")
    parser.add_argument("--adapt", action="store_true",
                        help="Run the adaptation loop instead of a plain path.")
    parser.add_argument("--validate", action="store_true",
                        help="Log an integrity report of the subject graph.")
    parser.add_argument("--summary-out", type=str, default=None)
    parser.add_argument("--config", type=str, default=None,
                        help="JSON config file; flags override it.")
    parser.add_argument("--save-config", type=str, default=None,
                        help="Save the effective settings to a config JSON.")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """CLI entry-point. Returns the process exit code."""
    args = _parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    config = load_config(args.config, db_path=args.db, mastery_threshold=args.threshold)
    if args.save_config:
        save_config(config, args.save_config)

    logger.info(
        "Learning path starting — db=%s, subject=%s, learner=%s, threshold=%s",
        config.db_path, args.subject, args.learner, config.mastery_threshold,
    )

    try:
        store = SqliteCurriculumStore.open(config.db_path)
    except STORE_ERRORS as exc:
        logger.error(
            "Curriculum store unavailable: %s", DependencyUnavailable("open", exc)
        )
        return EXIT_STORE_UNAVAILABLE

    try:
        service = KnowledgeGraphService(store)

        if args.validate:
            graph = service.load_subject_graph(args.subject)
            report = validate_graph(graph)
            report.update(compute_metrics(graph))
            logger.info("Integrity report: %s", json.dumps(report))

        if args.adapt:
            result = AdaptationLoop(service).adapt(
                args.learner,
                args.subject,
                AdaptationConfig(
                    mastery_threshold=config.mastery_threshold,
                    review_threshold=config.review_threshold,
                ),
            )
            path = result.updated_path
            output = result.model_dump_json(indent=2)
        else:
            path = service.generate_path(
                args.subject, args.learner, config.mastery_threshold
            )
            if args.priority:
                path = service.reorder_path(path, args.priority)
            output = path.model_dump_json(indent=2)
    except InvalidThreshold as exc:
        logger.error("%s", exc)
        return EXIT_INVALID_THRESHOLD
    except DependencyUnavailable as exc:
        logger.error("Curriculum store unavailable: %s", exc)
        return EXIT_STORE_UNAVAILABLE
    finally:
        store.close()

    print(output)

    if args.summary_out:
        write_summary(summarize_path(path), args.summary_out)

    logger.info(
        "✅ Path complete — concepts=%d, gaps=%d, minutes=%d",
        len(path.ordered_concepts), len(path.gap_concept_ids),
        path.total_estimated_time_minutes,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
