#!/usr/bin/env python
"""
Feedback Analyzer CLI - query analysis results and manage the database.

Usage:
    feedback-analyzer init-db            # Create tables
    feedback-analyzer run [--source S]   # Run the pipeline
    feedback-analyzer summary            # Latest insight + source summaries
    feedback-analyzer stats              # Totals and sentiment counts
    feedback-analyzer feedback           # Recent feedback items
    feedback-analyzer runs               # Recent pipeline runs
    feedback-analyzer unlock             # Clear a lock left by a crashed run
"""

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from feedback_analyzer.db.connection import get_connection, init_db
from feedback_analyzer.db.feedback_storage import FeedbackStorage
from feedback_analyzer.db.run_storage import PipelineRunStorage
from feedback_analyzer.logging_utils import configure_safe_logging
from feedback_analyzer.pipeline import PipelineAlreadyRunningError, run_pipeline


def cmd_init_db(args):
    """Create the schema."""
    init_db()
    print("Database schema initialized.")


def cmd_run(args):
    """Run the pipeline and print the result."""
    configure_safe_logging(logging.INFO)
    try:
        result = run_pipeline(source=args.source, resume=not args.no_resume)
    except PipelineAlreadyRunningError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    print(result.model_dump_json(indent=2))
    return 0


def cmd_summary(args):
    """Show the latest aggregated insight and per-source summaries."""
    with get_connection() as conn:
        storage = FeedbackStorage(conn)
        insight = storage.get_latest_insight()
        summaries = storage.get_recent_source_summaries(limit=args.limit)

    print("\n# Overall Insights\n")
    if insight is None:
        print("No aggregated insights yet.")
    else:
        print(f"Sentiment: {insight.overall_sentiment}")
        print(f"\n{insight.overall_summary}\n")
        if insight.top_themes:
            print("Top themes:")
            for theme in insight.top_themes:
                print(f"  - {theme}")
        if insight.urgent_items:
            print("Urgent:")
            for item in insight.urgent_items:
                print(f"  ! {item}")

    print("\n# Per-Source Analysis\n")
    if not summaries:
        print("No source summaries yet.")
    for s in summaries:
        b = s.sentiment_breakdown
        print(f"## {s.source}  (+{b.positive} / -{b.negative} / ~{b.neutral})")
        print(f"{s.summary}")
        if s.themes:
            print(f"Themes: {', '.join(s.themes)}")
        print()


def cmd_stats(args):
    """Show feedback totals and the sentiment label distribution."""
    with get_connection() as conn:
        stats = FeedbackStorage(conn).get_stats()

    print(f"\nTotal feedback:   {stats['total']}")
    print(f"Processed:        {stats['processed']}")
    print(f"Pending analysis: {stats['total'] - stats['processed']}")
    if stats["sentiment_breakdown"]:
        print("\nSentiment:")
        for row in stats["sentiment_breakdown"]:
            print(f"  {str(row['sentiment']):<12} {row['count']}")
    print()


def cmd_feedback(args):
    """List recent feedback."""
    with get_connection() as conn:
        items = FeedbackStorage(conn).list_recent_feedback(limit=args.limit)

    if not items:
        print("No feedback found.")
        return

    print(f"\n{'ID':<6} {'Source':<12} {'Done':<5} Content")
    print("-" * 80)
    for item in items:
        content = item.content.replace("\n", " ")
        if len(content) > 55:
            content = content[:52] + "..."
        print(f"{item.id:<6} {item.source:<12} {'yes' if item.processed else 'no':<5} {content}")
    print()


def cmd_runs(args):
    """List recent pipeline runs."""
    with get_connection() as conn:
        runs = PipelineRunStorage(conn).list_runs(limit=args.limit)

    if not runs:
        print("No pipeline runs found.")
        return

    print(f"\n{'ID':<6} {'Status':<10} {'Source':<12} {'Step':<20} {'Processed':<9}")
    print("-" * 60)
    for run in runs:
        print(
            f"{run.id:<6} {run.status:<10} {run.source_filter or 'all':<12} "
            f"{run.current_step or '-':<20} {run.processed_count:<9}"
        )
    print()


def cmd_unlock(args):
    """Clear the pipeline lock."""
    with get_connection() as conn:
        PipelineRunStorage(conn).force_release_lock()
    print("Pipeline lock released.")


def main():
    env_path = Path(__file__).parent.parent / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    logging.basicConfig(level=logging.WARNING)

    parser = argparse.ArgumentParser(description="Feedback Analyzer CLI")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("init-db", help="Create database tables")

    run_parser = subparsers.add_parser("run", help="Run the analysis pipeline")
    run_parser.add_argument("--source", help="Only process this source")
    run_parser.add_argument("--no-resume", action="store_true", help="Always start a new run")

    summary_parser = subparsers.add_parser("summary", help="Show latest insights")
    summary_parser.add_argument("--limit", type=int, default=10, help="Source summaries to show")

    subparsers.add_parser("stats", help="Show feedback stats")

    feedback_parser = subparsers.add_parser("feedback", help="List recent feedback")
    feedback_parser.add_argument("--limit", type=int, default=50, help="Max items to show")

    runs_parser = subparsers.add_parser("runs", help="List pipeline runs")
    runs_parser.add_argument("--limit", type=int, default=20, help="Max runs to show")

    subparsers.add_parser("unlock", help="Clear a lock left by a crashed run")

    args = parser.parse_args()

    commands = {
        "init-db": cmd_init_db,
        "run": cmd_run,
        "summary": cmd_summary,
        "stats": cmd_stats,
        "feedback": cmd_feedback,
        "runs": cmd_runs,
        "unlock": cmd_unlock,
    }

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    exit_code = commands[args.command](args)
    sys.exit(exit_code or 0)


if __name__ == "__main__":
    main()
