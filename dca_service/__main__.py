"""Command line entry point: python -m dca_service (or the dca-service script).

Server options go to uvicorn. Scheduler options override the scheduler
section of service.yaml; they are handed to the application through
environment variables so they also reach uvicorn's reload worker.
"""

import argparse
import os
import sys
from typing import Optional, Sequence

import uvicorn

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

# CLI option -> environment variable read by dca_service.config
SCHEDULER_ENV = {
    "tick_interval": "SCHEDULER_TICK_INTERVAL_SECONDS",
    "drain_timeout": "SCHEDULER_DRAIN_TIMEOUT_SECONDS",
}


def positive_seconds(value: str) -> float:
    seconds = float(value)
    if seconds <= 0:
        raise argparse.ArgumentTypeError(f"must be greater than zero, got {value}")
    return seconds


def non_negative_seconds(value: str) -> float:
    seconds = float(value)
    if seconds < 0:
        raise argparse.ArgumentTypeError(f"cannot be negative, got {value}")
    return seconds


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dca-service",
        description="DCA scheduler service: recurring purchases on a fixed interval",
    )

    server = parser.add_argument_group("server")
    server.add_argument("--host", default=os.getenv("HOST", "0.0.0.0"))
    server.add_argument("--port", type=int, default=int(os.getenv("PORT", "8080")))
    server.add_argument(
        "--reload",
        action="store_true",
        default=os.getenv("RELOAD", "false").lower() == "true",
        help="Restart on code changes (development only)",
    )

    logs = parser.add_argument_group("logging")
    logs.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        default=os.getenv("LOG_LEVEL", "INFO").upper(),
        help="DEBUG also shows the per-subscription due checks of every tick",
    )
    logs.add_argument(
        "--log-format",
        choices=["json", "console"],
        default=os.getenv("LOG_FORMAT", "json"),
    )

    scheduler = parser.add_argument_group(
        "scheduler", "Override the scheduler section of the configuration file"
    )
    scheduler.add_argument(
        "--config",
        default=os.getenv("CONFIG_PATH", "config/service.yaml"),
        help="Path to service.yaml (default: config/service.yaml)",
    )
    scheduler.add_argument(
        "--no-scheduler",
        dest="scheduler_enabled",
        action="store_false",
        default=None,
        help="Serve the REST API without starting the tick loop",
    )
    scheduler.add_argument(
        "--tick-interval",
        type=positive_seconds,
        metavar="SECONDS",
        help="Delay between the start of consecutive ticks",
    )
    scheduler.add_argument(
        "--drain-timeout",
        type=non_negative_seconds,
        metavar="SECONDS",
        help="How long shutdown waits for in-flight purchases",
    )
    return parser


def environment_for(args: argparse.Namespace) -> dict[str, str]:
    """Environment variables carrying the parsed options to the application."""
    env = {
        "LOG_LEVEL": args.log_level,
        "LOG_FORMAT": args.log_format,
        "CONFIG_PATH": args.config,
    }
    if args.scheduler_enabled is False:
        env["SCHEDULER_ENABLED"] = "false"
    for option, variable in SCHEDULER_ENV.items():
        value = getattr(args, option)
        if value is not None:
            env[variable] = str(value)
    return env


def print_banner(args: argparse.Namespace) -> None:
    def describe(value: Optional[float]) -> str:
        return "from config" if value is None else f"{value}s"

    print("=" * 60)
    print("DCA Scheduler Service")
    print("=" * 60)
    print(f"Listening:     http://{args.host}:{args.port}")
    print(f"Config:        {args.config}")
    print(f"Scheduler:     {'disabled' if args.scheduler_enabled is False else 'enabled'}")
    print(f"Tick interval: {describe(args.tick_interval)}")
    print(f"Drain timeout: {describe(args.drain_timeout)}")
    print("=" * 60)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    os.environ.update(environment_for(args))

    if args.log_format == "console":
        print_banner(args)

    try:
        uvicorn.run(
            "dca_service.main:app",
            host=args.host,
            port=args.port,
            log_level=args.log_level.lower(),
            reload=args.reload,
            access_log=False,  # RequestLoggingMiddleware logs requests
        )
    except KeyboardInterrupt:
        sys.exit(0)
    except Exception as e:
        print(f"dca-service failed to start: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
