"""Main entry point for the funding opportunity matching service."""

from dotenv import load_dotenv
load_dotenv()

import argparse
import signal
import sys
import threading
import time
from pathlib import Path
from typing import List, Optional, Tuple

from fundmatch.config.environment import EnvironmentConfig
from fundmatch.config.exceptions import ConfigurationError
from fundmatch.config.loader import load_config
from fundmatch.config.models import AppConfig
from fundmatch.logging import get_logger
from fundmatch.logging.config import configure_logging
from fundmatch.persistence.database import close_database, init_database
from fundmatch.persistence.exceptions import PersistenceError
from fundmatch.pipeline import MatchingSweep
from fundmatch.scheduler import SchedulerService
from fundmatch.services import MatchService

logger = get_logger(__name__, component="cli")


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load configuration and settle the effective log level.

    Log level priority: CLI flag, then LOG_LEVEL, then the config file.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path)

    if log_level_override:
        env_config.log_level = log_level_override
    elif not env_config.log_level:
        env_config.log_level = app_config.logging.level

    return app_config, env_config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Funding opportunity matcher - scores applicants against eligibility criteria"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml or config/config.yaml)",
    )
    parser.add_argument(
        "--run-once",
        action="store_true",
        help="Run a single matching sweep and exit",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Run the matching service.

    Returns:
        Exit code: 0 on success, 1 on configuration or startup failure, or
        when a ``--run-once`` sweep recorded errors.
    """
    start_time = time.time()
    args = build_parser().parse_args(argv)

    try:
        app_config, env_config = load_runtime_config(args.config, args.log_level)
        configure_logging(
            level=env_config.log_level,
            format_type=app_config.logging.format,
            environment=env_config.environment,
        )

        logger.info(
            "Funding opportunity matcher starting",
            extra={
                "event": "service.starting",
                "config_path": str(args.config) if args.config else None,
                "log_level": env_config.log_level,
                "run_once": args.run_once,
            },
        )

        init_database(env_config.database_url)

        logger.info(
            "Configuration loaded",
            extra={
                "event": "config.loaded",
                "interval_seconds": app_config.matching.interval_seconds,
                "min_score": app_config.matching.min_score,
                "opportunity_statuses": ",".join(app_config.matching.opportunity_statuses),
                "log_format": app_config.logging.format,
            },
        )

        match_service = MatchService(min_score=app_config.matching.min_score)
        sweep = MatchingSweep(
            match_service, opportunity_statuses=app_config.matching.opportunity_statuses
        )

        if args.run_once:
            return _run_once(sweep, start_time)
        return _run_daemon(sweep, app_config, start_time)

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        logger.error(
            f"Configuration error: {e}",
            extra={"event": "config.error", "error_type": "ConfigurationError"},
        )
        return 1
    except PersistenceError as e:
        print(f"Database Error: {e}", file=sys.stderr)
        logger.critical(
            "Database unavailable during startup",
            extra={"event": "service.startup.failed", "error_type": type(e).__name__},
            exc_info=True,
        )
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        close_database()
        return 0


def _run_once(sweep: MatchingSweep, start_time: float) -> int:
    logger.info("Executing single matching sweep", extra={"event": "service.run_once.starting"})
    result = sweep.run_once()

    logger.info(
        f"Matching sweep completed: "
        f"{result.total_evaluated} evaluated, "
        f"{result.total_created} created, "
        f"{result.total_rescored} rescored, "
        f"{result.total_errors} errors",
        extra={
            "event": "service.run_once.completed",
            "duration_seconds": result.total_duration_seconds,
            "had_errors": result.had_errors,
        },
    )

    close_database()
    logger.info(
        "Funding opportunity matcher stopped",
        extra={"event": "service.stopping", "uptime_seconds": round(time.time() - start_time, 2)},
    )
    return 1 if result.had_errors else 0


def _run_daemon(sweep: MatchingSweep, app_config: AppConfig, start_time: float) -> int:
    shutdown_event = threading.Event()
    scheduler_service = SchedulerService(
        sweep_callable=sweep.run_once,
        interval_seconds=app_config.matching.interval_seconds,
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

    scheduler_service.start()
    logger.info(
        "Scheduler started. Press Ctrl+C to stop",
        extra={"event": "service.daemon_mode.started"},
    )

    try:
        shutdown_event.wait()
    except KeyboardInterrupt:
        logger.info(
            "Keyboard interrupt received, shutting down",
            extra={"event": "service.keyboard_interrupt"},
        )
        scheduler_service.shutdown(wait=False)

    close_database()
    logger.info(
        "Funding opportunity matcher stopped",
        extra={"event": "service.stopping", "uptime_seconds": round(time.time() - start_time, 2)},
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
