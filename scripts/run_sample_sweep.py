#!/usr/bin/env python3
"""Sample sweep harness for end-to-end validation.

Seeds a database with sample opportunities and applicants, runs one
matching sweep, prints the resulting matches and then walks the best match
through apply, award and fund. No pytest required.

Usage:
    # Run against a throwaway in-memory database
    python scripts/run_sample_sweep.py

    # Keep the results in a SQLite file
    python scripts/run_sample_sweep.py --database data/sample_sweep.db

    # Custom sample data
    python scripts/run_sample_sweep.py --data tests/fixtures/sample_data.yaml
"""

import argparse
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import yaml
from dotenv import load_dotenv

from fundmatch.domain.models import Actor, ApplicantProfile, Role, parse_opportunity
from fundmatch.logging.config import configure_logging
from fundmatch.persistence import (
    ApplicantRepository,
    OpportunityRepository,
    close_database,
    get_session,
    init_database,
)
from fundmatch.pipeline import MatchingSweep
from fundmatch.services import MatchService

ADMIN = Actor(user_id=1, role=Role.ADMIN)


def print_header(title: str):
    width = 80
    print("\n" + "=" * width)
    print(f" {title}")
    print("=" * width + "\n")


def print_summary_table(result):
    """Print a formatted summary table of sweep results."""
    print_header("Sweep Summary")

    metrics = [
        ("Pairs Evaluated", result.total_evaluated),
        ("Matches Created", result.total_created),
        ("Matches Rescored", result.total_rescored),
        ("Pairs Skipped", result.total_skipped),
        ("Opportunities Without Criteria", result.opportunities_without_criteria),
        ("Errors", result.total_errors),
        ("Duration (seconds)", f"{result.total_duration_seconds:.2f}"),
    ]
    label_width = max(len(label) for label, _ in metrics)

    print("┌" + "─" * (label_width + 2) + "┬" + "─" * 12 + "┐")
    for label, value in metrics:
        print(f"│ {label:<{label_width}} │ {str(value):<10} │")
    print("└" + "─" * (label_width + 2) + "┴" + "─" * 12 + "┘")


def print_matches(service: MatchService, opportunity_ids):
    print_header("Matches")
    for opportunity_id in opportunity_ids:
        for match in service.list_by_opportunity(opportunity_id):
            print(
                f"Opportunity {match.opportunity_id} / survivor {match.survivor_id}: "
                f"score {match.match_score}, {match.status.value}"
            )
            for detail in match.match_criteria:
                outcome = "match" if detail["matches"] else detail.get("detail")
                print(f"    [{detail['index']}] {detail['type']}: {outcome}")
                for warning in detail.get("warnings") or []:
                    print(f"        warning: {warning}")


def seed(data_file: Path):
    with open(data_file, "r") as f:
        data = yaml.safe_load(f) or {}

    opportunities = [parse_opportunity(item) for item in data.get("opportunities", [])]
    applicants = [ApplicantProfile(**item) for item in data.get("applicants", [])]

    with get_session() as session:
        for opportunity in opportunities:
            OpportunityRepository(session).upsert(opportunity)
        for applicant in applicants:
            ApplicantRepository(session).upsert(applicant)

    return opportunities, applicants


def main():
    parser = argparse.ArgumentParser(
        description="Run a sample matching sweep",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--data",
        type=Path,
        default=Path("tests/fixtures/sample_data.yaml"),
        help="Sample opportunities and applicants (default: tests/fixtures/sample_data.yaml)",
    )
    parser.add_argument(
        "--database",
        type=Path,
        default=None,
        help="SQLite database file (default: in-memory)",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (default: WARNING)",
    )
    args = parser.parse_args()

    load_dotenv()

    if not args.data.exists():
        print(f"\n❌ Error: Sample data file not found: {args.data}")
        return 1

    database_url = f"sqlite:///{args.database.absolute()}" if args.database else "sqlite:///:memory:"

    print_header("Funding Opportunity Matcher - Sample Sweep")
    print(f"Sample data: {args.data}")
    print(f"Database: {database_url}")

    configure_logging(level=args.log_level, format_type="key-value", environment="validation")

    try:
        init_database(database_url)
        opportunities, applicants = seed(args.data)
        print(f"✓ Seeded {len(opportunities)} opportunities and {len(applicants)} applicants")

        events = []
        service = MatchService()
        service.add_listener(events.append)
        result = MatchingSweep(service).run_once()

        print_summary_table(result)
        print_matches(service, [o.id for o in opportunities])

        best = max(
            (m for o in opportunities for m in service.list_by_opportunity(o.id)),
            key=lambda m: m.match_score,
            default=None,
        )
        if best is not None:
            print_header(f"Workflow: opportunity {best.opportunity_id} / survivor {best.survivor_id}")
            applicant = Actor(user_id=best.survivor_id, role=Role.USER)
            match = service.transition(best, "apply", applicant)
            match = service.transition(match, "award", ADMIN, {"award_amount": "2500.00"})
            match = service.transition(match, "fund", ADMIN)
            for change in match.status_history:
                print(f"  {change.from_status.value} -> {change.to_status.value} ({change.event})")
            print(f"\nEvents emitted: {', '.join(e.kind for e in events)}")

        return 1 if result.had_errors else 0

    except Exception as e:
        print(f"\n❌ Fatal error: {e}")
        import traceback
        traceback.print_exc()
        return 1
    finally:
        close_database()


if __name__ == "__main__":
    sys.exit(main())
