"""Command-line entry point for the buyer/property matcher."""

import argparse
import json
import os
import signal
import sys
import threading
import time
from pathlib import Path
from typing import List, Optional, Tuple

from dotenv import load_dotenv

from app.adapters.exceptions import AdapterError
from app.adapters.factory import build_geocoder, build_record_store
from app.cache.ttl import TTLCache
from app.config.environment import EnvironmentConfig
from app.config.exceptions import ConfigurationError
from app.config.loader import load_config, validate_config_file
from app.config.models import AppConfig
from app.geocoding.service import GeocodingService
from app.logging import get_logger
from app.logging.config import configure_logging
from app.matching.models import BuyerRanking, LinkedMatch, MatchOverview, ScoredProperty
from app.matching.scorer import MatchScorer
from app.matching.utils import (
    build_score_summary,
    format_score_breakdown,
    parse_score_breakdown,
    parse_score_header,
)
from app.persistence import MatchRunRepository, close_database, get_session, init_database
from app.pipeline import MatchingPipeline, PipelineError
from app.scheduler import SchedulerService

logger = get_logger(__name__, component="cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m app.main",
        description="Buyer/Property Matcher - score buyers against properties and keep the match table in sync",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml or config/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    def add_run_options(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("--min-score", type=int, default=None, help="Minimum score to store (0-100)")
        sub.add_argument(
            "--refresh-all",
            action="store_true",
            default=None,
            help="Re-score pairs that already have a match record",
        )

    add_run_options(commands.add_parser("run", help="Match every buyer against every property"))

    run_buyer = commands.add_parser("run-buyer", help="Match one buyer against every property")
    run_buyer.add_argument("buyer_id", help="Buyer record id or Contact ID")
    add_run_options(run_buyer)

    run_property = commands.add_parser("run-property", help="Match every buyer against one property")
    run_property.add_argument("property_id", help="Property record id or Property Code")
    add_run_options(run_property)

    rank = commands.add_parser("rank", help="Show every property ranked for one buyer (nothing is stored)")
    rank.add_argument("buyer_id", help="Buyer record id or Contact ID")
    rank.add_argument("--limit", type=int, default=None, help="Show at most N properties per section")
    rank.add_argument("--details", action="store_true", help="Print the score breakdown of each property")
    rank.add_argument("--zip-only", action="store_true", help="Only properties in a preferred ZIP")
    rank.add_argument("--within", type=float, default=None, metavar="MILES", help="Only properties within MILES")
    rank.add_argument("--json", action="store_true", help="Print the ranking as JSON")

    matches = commands.add_parser("matches", help="Show stored matches of a buyer or a property")
    matches.add_argument("record_id", help="Buyer record id or Contact ID, or property record id or Property Code")
    matches.add_argument("--details", action="store_true", help="Print the stored score breakdown")
    matches.add_argument("--json", action="store_true", help="Print the matches as JSON")

    set_stage = commands.add_parser("set-stage", help="Move a match to a pipeline stage")
    set_stage.add_argument("match_id", help="Match record id")
    set_stage.add_argument("stage", help='Stage name, e.g. "Showing Scheduled"')

    clear = commands.add_parser("clear", help="Delete every match record (irreversible)")
    clear.add_argument("--yes", action="store_true", help="Confirm deletion of all match records")

    history = commands.add_parser("history", help="Show recent runs")
    history.add_argument("--limit", type=int, default=10)

    commands.add_parser("daemon", help="Run full matching on the configured interval")
    commands.add_parser("check-config", help="Validate the configuration file and exit")
    return parser


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load configuration and settle the effective log level.

    Log level priority: CLI > LOG_LEVEL environment variable > config file.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path)

    if log_level_override:
        env_config.log_level = log_level_override
    elif not env_config.log_level:
        env_config.log_level = app_config.logging.level or "INFO"

    return app_config, env_config


def build_pipeline(app_config: AppConfig, env_config: EnvironmentConfig) -> MatchingPipeline:
    """Wire the record store, geocoding and cache into a pipeline."""
    store = build_record_store(app_config, env_config)

    geocoding = None
    geocoder = build_geocoder(app_config, env_config)
    if geocoder is not None:
        geocoding = GeocodingService(
            geocoder,
            cache_ttl_seconds=app_config.geocoding.cache_ttl_seconds,
            default_state=app_config.geocoding.default_state,
            pacing_ms=app_config.geocoding.pacing_ms,
            write_back=app_config.geocoding.write_back,
        )

    return MatchingPipeline(
        store=store,
        scorer=MatchScorer(),
        matching=app_config.matching,
        cache=TTLCache(app_config.matching.cache_ttl_seconds),
        geocoding=geocoding,
    )


def print_ranking(ranking: BuyerRanking, limit: Optional[int], details: bool) -> None:
    print(f"Properties for {ranking.buyer.display_name} ({ranking.total_count} scored)")
    for title, items in (("Priority", ranking.priority), ("Explore", ranking.explore)):
        shown = items[:limit] if limit else items
        print(f"\n{title} ({len(items)}):")
        for item in shown:
            print(f"  {_ranking_line(item)}")
            if details:
                for line in format_score_breakdown(item.score).splitlines():
                    print(f"      {line}")


def _ranking_line(item: ScoredProperty) -> str:
    distance = item.score.distance_miles
    suffix = f"  {distance:.1f} mi" if distance is not None else ""
    return f"{item.score.score:>3}  {item.property.label}{suffix}"


def ranking_as_dict(ranking: BuyerRanking, limit: Optional[int]) -> dict:
    def section(items: List[ScoredProperty]) -> list:
        shown = items[:limit] if limit else items
        return [
            {"property_id": item.property.record_id, "label": item.property.label, **build_score_summary(item.score)}
            for item in shown
        ]

    return {
        "buyer_id": ranking.buyer.record_id,
        "buyer": ranking.buyer.display_name,
        "total_count": ranking.total_count,
        "priority": section(ranking.priority),
        "explore": section(ranking.explore),
    }


def print_overview(overview: MatchOverview, details: bool) -> None:
    print(f"{overview.title} ({len(overview.matches)} stored)")
    for item in overview.matches:
        print(f"  {_overview_line(overview, item)}")
        if details:
            for category, (points, maximum, reason) in parse_score_breakdown(item.match.notes or "").items():
                suffix = f" ({reason})" if reason else ""
                print(f"      {category}: {points}/{maximum}{suffix}")


def _overview_line(overview: MatchOverview, item: LinkedMatch) -> str:
    if overview.buyer is not None:
        other = item.property.label if item.property else item.property_id
    else:
        other = item.buyer.display_name if item.buyer else item.buyer_id
    header = parse_score_header(item.match.notes or "")
    label = header["label"] if header else ""
    stage = item.match.stage.value if item.match.stage else "-"
    flag = "*" if item.match.is_priority else " "
    return f"{item.match.score:>3}{flag} {label:<15} {stage:<18} {other}"


def overview_as_dict(overview: MatchOverview) -> dict:
    return {
        "buyer_id": overview.buyer.record_id if overview.buyer else None,
        "property_id": overview.property.record_id if overview.property else None,
        "total_matches": len(overview.matches),
        "matches": [
            {
                "match_id": item.match.record_id,
                "buyer_id": item.buyer_id,
                "property_id": item.property_id,
                "buyer": item.buyer.display_name if item.buyer else None,
                "property": item.property.label if item.property else None,
                "score": item.match.score,
                "is_priority": item.match.is_priority,
                "stage": item.match.stage.value if item.match.stage else None,
                "status": item.match.status,
                "distance_miles": item.match.distance_miles,
                "breakdown": {
                    category: {"points": points, "max": maximum, "reason": reason}
                    for category, (points, maximum, reason) in parse_score_breakdown(item.match.notes or "").items()
                },
            }
            for item in overview.matches
        ],
    }


def run_daemon(pipeline: MatchingPipeline, app_config: AppConfig) -> int:
    shutdown_event = threading.Event()
    scheduler_service = SchedulerService(
        run_callable=pipeline.run_all,
        interval_seconds=app_config.run_interval_seconds,
        shutdown_event=shutdown_event,
    )

    def signal_handler(signum, frame):
        logger.info(
            f"Received signal {signum}, shutting down",
            extra={"event": "service.signal_received", "signal": signum},
        )
        scheduler_service.shutdown(wait=False)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    if pipeline.geocoding is not None:
        pipeline.geocoding.purge_expired()

    scheduler_service.start()
    logger.info("Scheduler started. Press Ctrl+C to stop", extra={"event": "service.daemon_mode.started"})

    try:
        shutdown_event.wait()
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received, shutting down", extra={"event": "service.keyboard_interrupt"})
        scheduler_service.shutdown(wait=False)
    return 0


def dispatch(args: argparse.Namespace, pipeline: MatchingPipeline, app_config: AppConfig) -> int:
    """Run one CLI command; returns the exit code."""
    if args.command == "run":
        result = pipeline.run_all(min_score=args.min_score, refresh_all=args.refresh_all)
    elif args.command == "run-buyer":
        result = pipeline.run_for_buyer(args.buyer_id, min_score=args.min_score, refresh_all=args.refresh_all)
    elif args.command == "run-property":
        result = pipeline.run_for_property(
            args.property_id, min_score=args.min_score, refresh_all=args.refresh_all
        )
    elif args.command == "rank":
        ranking = pipeline.rank_properties_for_buyer(
            args.buyer_id, zip_only=args.zip_only, within_miles=args.within
        )
        if ranking is None:
            print(f"Buyer not found: {args.buyer_id}", file=sys.stderr)
            return 1
        if args.json:
            print(json.dumps(ranking_as_dict(ranking, args.limit), indent=2))
        else:
            print_ranking(ranking, args.limit, args.details)
        return 0
    elif args.command == "matches":
        overview = pipeline.matches_for(args.record_id)
        if overview is None:
            print(f"No buyer or property found: {args.record_id}", file=sys.stderr)
            return 1
        if args.json:
            print(json.dumps(overview_as_dict(overview), indent=2))
        else:
            print_overview(overview, args.details)
        return 0
    elif args.command == "set-stage":
        try:
            match = pipeline.set_stage(args.match_id, args.stage)
        except PipelineError as e:
            print(str(e), file=sys.stderr)
            return 1
        print(f"Match {match.record_id} is now in stage: {match.stage.value if match.stage else args.stage}")
        return 0
    elif args.command == "clear":
        if not args.yes:
            print("Refusing to delete every match record without --yes", file=sys.stderr)
            return 1
        clear_result = pipeline.clear_all()
        print(clear_result.message)
        return 1 if clear_result.had_errors else 0
    elif args.command == "history":
        with get_session() as session:
            runs = MatchRunRepository(session).latest(args.limit)
        for run in runs:
            status = "failed" if run.failed else ("skipped" if run.skipped else "ok")
            print(
                f"{run.started_at:%Y-%m-%d %H:%M:%S}  {run.mode:<8}  {status:<7}  "
                f"created={run.matches_created} updated={run.matches_updated} "
                f"skipped={run.duplicates_skipped} errors={run.error_count}"
            )
        return 0
    elif args.command == "daemon":
        return run_daemon(pipeline, app_config)
    else:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    print(result.message)
    if result.error_count:
        print(f"{result.error_count} errors during the run (see logs)", file=sys.stderr)
    return 1 if result.had_errors else 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code: 0 on success, 1 on configuration errors, failed runs or
        runs with errors.
    """
    start_time = time.time()
    args = build_parser().parse_args(argv)

    if args.command == "check-config":
        return 0 if validate_config_file(args.config or Path("config.yaml")) else 1

    load_dotenv()

    try:
        app_config, env_config = load_runtime_config(args.config, args.log_level)

        configure_logging(
            level=env_config.log_level,
            format_type=app_config.logging.format,
            environment=os.environ.get("ENVIRONMENT", "local"),
        )
        logger.info(
            "Buyer/Property Matcher starting",
            extra={
                "event": "service.starting",
                "command": args.command,
                "log_level": env_config.log_level,
            },
        )

        init_database(env_config.database_url)
        try:
            pipeline = build_pipeline(app_config, env_config)
            exit_code = dispatch(args, pipeline, app_config)
        finally:
            close_database()

        logger.info(
            "Buyer/Property Matcher stopped",
            extra={
                "event": "service.stopping",
                "exit_code": exit_code,
                "uptime_seconds": round(time.time() - start_time, 2),
            },
        )
        return exit_code

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        return 1
    except AdapterError as e:
        print(f"Backing store error: {e}", file=sys.stderr)
        logger.error(
            f"Backing store error: {e}",
            extra={"event": "service.adapter_error", "error_type": type(e).__name__},
        )
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error",
            extra={"event": "service.failed", "error_type": type(e).__name__, "error": str(e)},
            exc_info=True,
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())
