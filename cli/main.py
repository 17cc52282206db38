"""loadramp CLI - Command line interface."""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional

from common.errors import ConfigurationError
from common.models.run import RunConfig
from common.utils import format_duration
from controller.config import Settings, get_settings, init_settings, load_run_config
from controller.core.report import ExitCode, exit_code, render_summary, write_summary_json
from controller.core.run_controller import RunController
from controller.core.scheduler import desired_vus
from vusers.core.cancellation import CancellationToken

logger = logging.getLogger(__name__)


def setup_logging(settings: Settings, level: Optional[str] = None) -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format=settings.log_format,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )


async def run_with_signals(controller: RunController, config: RunConfig):
    """Execute a run, draining gracefully on SIGINT/SIGTERM."""
    cancel = CancellationToken()
    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, cancel.cancel, sig.name)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            logger.debug(f"Cannot install handler for {sig.name} on this platform")

    try:
        return await controller.execute(config, cancel=cancel)
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


def print_plan(config: RunConfig, thresholds: list) -> None:
    print(f"Run: {config.name}")
    if config.description:
        print(f"  {config.description}")
    print(f"Target: {config.target.method} {config.target.url}")
    if config.target.params:
        params = ", ".join(f"{k}={v}" for k, v in config.target.params.items())
        print(f"  params: {params}")

    print(f"\nStages ({config.ramp_policy.value}, total {format_duration(config.total_duration)}):")
    elapsed = 0.0
    for i, stage in enumerate(config.stages, start=1):
        start_vus = desired_vus(config.stages, elapsed, config.ramp_policy)
        print(f"  {i}. {stage.describe()}  (from {start_vus} VUs)")
        elapsed += stage.duration

    print("\nThresholds:")
    if thresholds:
        for t in thresholds:
            print(f"  - {t}")
    else:
        print("  (none)")


def cmd_run(args) -> int:
    """Run a load test and report its verdict."""
    overrides = {}
    if args.tick is not None:
        overrides["tick_interval"] = args.tick
    settings = init_settings(**overrides) if overrides else get_settings()

    config = load_run_config(args.config, target_url=args.target_url)
    controller = RunController(settings)

    verdict = asyncio.run(run_with_signals(controller, config))

    print()
    print(render_summary(verdict))
    if args.summary_json:
        write_summary_json(verdict, args.summary_json)

    return int(exit_code(verdict))


def cmd_validate(args) -> int:
    """Validate a run file without running it."""
    config = load_run_config(args.config, target_url=args.target_url)
    thresholds = RunController(get_settings()).validate(config)
    print_plan(config, thresholds)
    print("\nConfiguration OK")
    return int(ExitCode.OK)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="loadramp",
        description="Staged-ramp HTTP load testing",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (default: LOADRAMP_LOG_LEVEL or INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # run
    run_parser = subparsers.add_parser("run", help="Run a load test")
    run_parser.add_argument("config", help="YAML run file")
    run_parser.add_argument("--target-url", help="Override target.base_url")
    run_parser.add_argument("--summary-json", help="Write the verdict as JSON to this path")
    run_parser.add_argument("--log-level", dest="run_log_level", default=None, help="Log level")
    run_parser.add_argument("--tick", type=float, default=None, help="Scheduler tick in seconds")
    run_parser.set_defaults(func=cmd_run)

    # validate
    validate_parser = subparsers.add_parser("validate", help="Validate a run file")
    validate_parser.add_argument("config", help="YAML run file")
    validate_parser.add_argument("--target-url", help="Override target.base_url")
    validate_parser.set_defaults(func=cmd_validate)

    return parser


def main(argv: Optional[list[str]] = None):
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        setup_logging(get_settings(), getattr(args, "run_log_level", None) or args.log_level)
        code = args.func(args)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        print(f"Error: {e}", file=sys.stderr)
        code = int(ExitCode.CONFIG_ERROR)

    sys.exit(code)


if __name__ == "__main__":
    main()
