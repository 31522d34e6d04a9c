#!/usr/bin/env python3
"""Grade a slate of events and print the recommendations."""

import argparse
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import logging

log = logging.getLogger(__name__)


def _print_recommendations(event_id, recs):
    if not recs:
        print(f"{event_id}: no recommendations")
        return
    for r in recs:
        tag = " [historical]" if r.historical else ""
        print(
            f"{event_id}: {r.grade.value:<2} {r.selection} {r.odds:+d} "
            f"edge={r.edge * 100:+.1f}pts EV={r.expected_value:+.1f}% "
            f"kelly={r.kelly_fraction:.3f} ({r.bookmaker}){tag}"
        )
        print(f"    {r.reasoning}")


def _print_distribution(scores):
    from gradebot.scoring.grades import distribution_report

    print(f"\nGrade distribution over {len(scores)} selections:")
    for row in distribution_report(scores):
        flag = "" if row.within_target else "  <-- outside target"
        print(f"  {row.grade.value:<2} {row.count:>3}  (target {row.target_lo}-{row.target_hi}){flag}")


def main():
    from gradebot.config import settings
    from gradebot.engine.service import GradeEngine
    from gradebot.engine.sources import load_slate
    from gradebot.logging_config import setup_logging
    from gradebot.store.grade_store import build_store

    parser = argparse.ArgumentParser(description="Moneyline grade engine")
    parser.add_argument("--events", required=True, help="JSON slate file")
    parser.add_argument("--full", action="store_true", help="Full spectrum (no edge/grade filter)")
    parser.add_argument("--db", type=str, default=None, help="SQLite grade cache path (overrides GRADE_CACHE_DB_PATH)")
    parser.add_argument("--distribution", action="store_true", help="Print grade distribution report")
    parser.add_argument("--json", action="store_true", help="Emit JSON instead of text")
    args = parser.parse_args()

    run_id = setup_logging()
    log.info("evaluate run %s", run_id)

    source = load_slate(args.events)
    config = settings
    if args.db:
        config = settings.model_copy(update={"grade_cache_db_path": args.db})
    store = build_store(config)

    results = {}
    with GradeEngine(source, store=store, config=config) as engine:
        for event_id in source.event_ids():
            if args.full:
                results[event_id] = engine.evaluate_full_spectrum(event_id)
            else:
                results[event_id] = engine.evaluate(event_id)
        stats = engine.stats()

    if args.json:
        payload = {eid: [r.to_dict() for r in recs] for eid, recs in results.items()}
        print(json.dumps(payload, indent=2, ensure_ascii=False))
    else:
        for event_id, recs in results.items():
            _print_recommendations(event_id, recs)
        log.info(
            "Cache: %d entries over %d events (%d closed)",
            stats.entries, stats.events, stats.terminal_events,
        )

    if args.distribution:
        scores = [r.weighted_score for recs in results.values() for r in recs]
        if scores:
            _print_distribution(scores)
        else:
            print("No selections graded; nothing to report.")


if __name__ == "__main__":
    main()
