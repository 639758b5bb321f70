#!/usr/bin/env python3
"""
TA Allocation Runner
====================
Runs the two-round allocation and prints the merged matching.

Usage:
    python scripts/run_allocation.py                       # download from ALLOCATION_API_URL
    python scripts/run_allocation.py --input records.json  # local records
    python scripts/run_allocation.py --verbose --save

Or import and call:
    from scripts.run_allocation import main
    main(["--input", "records.json"])
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from ta_allocation import config  # noqa: E402
from ta_allocation.integrations.source_client import AllocationSourceClient  # noqa: E402
from ta_allocation.matching.compile import parse_records  # noqa: E402
from ta_allocation.matching.errors import AllocationError, RecordValidationError  # noqa: E402
from ta_allocation.matching.rounds import run_allocation  # noqa: E402
from ta_allocation.storage.outcome_store import save_matching  # noqa: E402

logger = logging.getLogger("run_allocation")


def get_switches(argv=None):
    parser = argparse.ArgumentParser(description="Deferred acceptance TA allocation")
    parser.add_argument("--verbose", action="store_true",
                        help="print the per-agent matching report for each round")
    parser.add_argument("--save", action="store_true",
                        help="replace the outcome table with the matching")
    parser.add_argument("--input", type=Path, default=None,
                        help="JSON file with students, courses, student_preferences, course_preferences")
    parser.add_argument("--strict", action="store_true",
                        help="exit with status 1 if a round is unstable")
    return parser.parse_args(argv)


def load_records(path):
    if path is not None:
        try:
            with open(path, encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise RecordValidationError(f"cannot read records from {path}: {e}") from e
        return parse_records(raw)
    return AllocationSourceClient().fetch_records()


def main(argv=None) -> int:
    args = get_switches(argv)
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", config.LOG_LEVEL),
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    try:
        records = load_records(args.input)
        result = run_allocation(records, verbose=args.verbose, require_stable=args.strict)
    except AllocationError as e:
        logger.error(f"Allocation failed: {e}")
        return 1

    if args.verbose:
        for round_result in (result.first_round, result.second_round):
            print(round_result.report)

    print(result.as_tuples())

    if args.save:
        try:
            save_matching(result.pairs)
        except AllocationError as e:
            logger.error(f"Saving failed: {e}")
            return 1
        print("done saving to table")

    return 0


if __name__ == "__main__":
    sys.exit(main())
