"""Batch runner for LCD compliance assessment.

Assesses one or more JSON case files as of a given date:

    python -m wound_src.runner cases/ep-001.json cases/ep-002.json --as-of 2024-02-05

A case file holds one case object or a list of them:

    {"episode": {...}, "encounters": [...], "exceptions": [...]}

Cases whose episode cannot be assessed (for example an unparsable start
date) are reported as "assessment unavailable" and make the exit code 2.
"""

import argparse
import json
import logging
import sys
from datetime import date, datetime

from . import ComplianceAssessor
from .config import config
from .models import DocumentedException, Encounter, Episode, EpisodeValidationError
from .rules.schemas import ComplianceResult
from .summary import results_to_frame, summarize_by_category

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_INVALID_CASES = 2


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def parse_as_of(value: str) -> datetime:
    """argparse type for --as-of (YYYY-MM-DD)."""
    try:
        return datetime.combine(date.fromisoformat(value), datetime.min.time())
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date (expected YYYY-MM-DD): {value}")


def load_case(data) -> tuple[Episode, list[Encounter], list[DocumentedException]]:
    """Build input models from one case object.

    Raises:
        EpisodeValidationError: If the case or its episode is invalid
    """
    if not isinstance(data, dict):
        raise EpisodeValidationError(f"Case must be an object, got {type(data).__name__}")

    episode = Episode.from_dict(data.get("episode"))

    encounters = []
    for raw in data.get("encounters") or []:
        if not isinstance(raw, dict):
            logger.warning(f"Episode {episode.id}: ignoring malformed encounter {raw!r}")
            continue
        encounters.append(Encounter.from_dict(raw))

    exceptions = []
    for raw in data.get("exceptions") or []:
        if not isinstance(raw, dict):
            logger.warning(f"Episode {episode.id}: ignoring malformed exception {raw!r}")
            continue
        exceptions.append(DocumentedException.from_dict(raw))

    return episode, encounters, exceptions


def load_case_file(path: str) -> list:
    """Read a case file and return its case objects."""
    with open(path) as f:
        data = json.load(f)
    if isinstance(data, list):
        return data
    return [data]


def run_cases(
    paths: list[str],
    as_of: datetime,
    assessor: ComplianceAssessor,
) -> tuple[list[ComplianceResult], list[dict]]:
    """Assess every case in the given files.

    Returns:
        (results, unavailable) where unavailable lists the cases that
        could not be assessed with the reason
    """
    results = []
    unavailable = []
    for path in paths:
        try:
            cases = load_case_file(path)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"{path}: could not read case file: {e}")
            unavailable.append({"source": path, "error": str(e)})
            continue

        for index, case in enumerate(cases):
            source = f"{path}[{index}]"
            try:
                episode, encounters, exceptions = load_case(case)
                result = assessor.assess(episode, encounters, as_of, exceptions)
            except EpisodeValidationError as e:
                logger.error(f"{source}: assessment unavailable: {e}")
                unavailable.append({"source": source, "error": str(e)})
                continue
            results.append(result)

    return results, unavailable


def print_result(result: ComplianceResult) -> None:
    """Print one result in human-readable form."""
    reduction = result.wound_reduction
    reduction_text = "n/a" if reduction.insufficient_data else f"{reduction.reduction_pct:.1f}%"
    print(
        f"\n{result.episode_id} [{result.classification.category.value.upper()}] "
        f"{result.traffic_light.value.upper()} score {result.score} "
        f"({result.overall_status.value})"
    )
    print(
        f"  Day {result.conservative_care_days}, weekly coverage "
        f"{result.weekly_coverage_pct:.1f}%, area reduction {reduction_text}"
    )
    for alert in result.alerts:
        due = f" (due {alert.due_date.date().isoformat()})" if alert.due_date else ""
        print(f"  [{alert.severity.value}] {alert.message}{due}")
        print(f"      -> {alert.recommendation}")
    for note in result.notes:
        print(f"  Note: {note}")


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Assess wound-care episodes for Medicare LCD L33831 compliance."
    )
    parser.add_argument(
        "cases",
        nargs="+",
        help="JSON case file(s)",
    )
    parser.add_argument(
        "--as-of",
        type=parse_as_of,
        default=None,
        help="Assessment date YYYY-MM-DD (default: today)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print results as JSON",
    )
    parser.add_argument(
        "--csv",
        metavar="PATH",
        nargs="?",
        const="",
        default=None,
        help="Write a one-row-per-episode CSV summary (default path under DEFAULT_OUTPUT_DIR)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    as_of = args.as_of or datetime.combine(date.today(), datetime.min.time())
    policy = config.build_policy()
    logger.info(f"Assessing {len(args.cases)} case file(s) as of {as_of.date().isoformat()}")

    results, unavailable = run_cases(args.cases, as_of, ComplianceAssessor(policy))

    if args.json:
        payload = [r.to_dict() for r in results]
        payload += [
            {"source": u["source"], "status": "assessment unavailable", "error": u["error"]}
            for u in unavailable
        ]
        print(json.dumps(payload, indent=2))
    else:
        for result in results:
            print_result(result)
        for u in unavailable:
            print(f"\n{u['source']}: assessment unavailable ({u['error']})")
        if results:
            print("\nBy wound category:")
            print(summarize_by_category(results_to_frame(results)).to_string(index=False))

    if args.csv is not None:
        csv_path = args.csv or str(
            config.get_output_dir() / f"lcd_compliance_{as_of.date().isoformat()}.csv"
        )
        results_to_frame(results).to_csv(csv_path, index=False)
        logger.info(f"Wrote {len(results)} row(s) to {csv_path}")

    return EXIT_INVALID_CASES if unavailable else EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
