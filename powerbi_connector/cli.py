"""
Power BI Connector - Command Line Interface.

============================================================
USAGE
============================================================
powerbi-connector workspaces
powerbi-connector reports WORKSPACE
powerbi-connector embed WORKSPACE REPORT [--dataset ID ...]
powerbi-connector export WORKSPACE REPORT --format XLSX \\
    [--param NAME=VALUE ...] [--setting KEY=VALUE ...] \\
    [--timeout MINUTES] [--output DIR]

Options:
  --env-file PATH    Load settings from a .env file
  --config PATH      Load settings from a YAML file
  -v, --verbose      Debug logging

Exit codes: 0 ok, 1 error, 2 export failed, 3 timed out, 130 cancelled
============================================================
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from typing import Optional, Sequence

from powerbi_connector.config import PowerBIConfig
from powerbi_connector.exceptions import PowerBIError
from powerbi_connector.models import ExportOutcome, FileFormat, ParameterValue, ReportCoordinate
from powerbi_connector.service import PowerBIService


logger = logging.getLogger(__name__)


EXIT_OK = 0
EXIT_ERROR = 1
EXIT_EXPORT_FAILED = 2
EXIT_TIMED_OUT = 3
EXIT_CANCELLED = 130

OUTCOME_EXIT_CODES = {
    ExportOutcome.SUCCEEDED: EXIT_OK,
    ExportOutcome.FAILED: EXIT_EXPORT_FAILED,
    ExportOutcome.TIMED_OUT: EXIT_TIMED_OUT,
    ExportOutcome.CANCELLED: EXIT_CANCELLED,
}


def _key_value(text: str) -> tuple[str, str]:
    if "=" not in text:
        raise argparse.ArgumentTypeError(f"expected NAME=VALUE, got '{text}'")
    key, value = text.split("=", 1)
    if not key:
        raise argparse.ArgumentTypeError(f"empty name in '{text}'")
    return key, value


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        prog="powerbi-connector",
        description="Embed and export Power BI reports",
    )
    parser.add_argument("--env-file", help="Load settings from a .env file")
    parser.add_argument("--config", help="Load settings from a YAML file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("workspaces", help="List workspaces")

    reports = commands.add_parser("reports", help="List reports in a workspace")
    reports.add_argument("workspace")

    embed = commands.add_parser("embed", help="Print embed info for a report")
    embed.add_argument("workspace")
    embed.add_argument("report")
    embed.add_argument(
        "--dataset",
        action="append",
        default=[],
        help="Dataset id (repeat; makes a paginated embed token)",
    )

    export = commands.add_parser("export", help="Export a paginated report to a file")
    export.add_argument("workspace")
    export.add_argument("report")
    export.add_argument(
        "--format",
        default=FileFormat.XLSX.value,
        choices=[f.value for f in FileFormat],
        type=str.upper,
    )
    export.add_argument("--param", action="append", default=[], type=_key_value, help="NAME=VALUE")
    export.add_argument("--setting", action="append", default=[], type=_key_value, help="KEY=VALUE")
    export.add_argument("--timeout", type=float, default=None, help="Timeout in minutes")
    export.add_argument("--output", default=".", help="Output directory")

    return parser


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s | %(levelname)-5s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def load_config(args: argparse.Namespace) -> PowerBIConfig:
    if args.config:
        return PowerBIConfig.from_yaml(args.config)
    return PowerBIConfig.from_env(dotenv_path=args.env_file)


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


async def run_command(args: argparse.Namespace, service: PowerBIService) -> int:
    """Run one CLI command against the service."""
    if args.command == "workspaces":
        _print_json([w.to_dict() for w in await service.list_workspaces()])
        return EXIT_OK

    if args.command == "reports":
        _print_json([r.to_dict() for r in await service.list_reports(args.workspace)])
        return EXIT_OK

    coordinate = ReportCoordinate(workspace_id=args.workspace, report_id=args.report)

    if args.command == "embed":
        if args.dataset:
            credential = await service.get_embed_info_paginated(coordinate, args.dataset)
        else:
            credential = await service.get_embed_info(coordinate)
        _print_json(credential.to_dict())
        return EXIT_OK

    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
    except (NotImplementedError, RuntimeError, ValueError):
        # Not available on this platform; Ctrl+C falls back to KeyboardInterrupt
        pass

    try:
        result = await service.export_paginated(
            coordinate,
            args.format,
            parameters=[ParameterValue(name, value) for name, value in args.param],
            format_settings=dict(args.setting),
            timeout_minutes=args.timeout,
            cancel_event=cancel_event,
        )
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError, ValueError):
            pass

    if result.ok and result.file is not None:
        path = result.file.save(args.output)
        print(f"Saved {path}")
    else:
        print(f"Export {result.export_id}: {result.outcome.value}", file=sys.stderr)
    return OUTCOME_EXIT_CODES[result.outcome]


async def run_application(args: argparse.Namespace) -> int:
    try:
        config = load_config(args)
        async with PowerBIService.from_config(config) as service:
            return await run_command(args, service)
    except PowerBIError as e:
        logger.error(f"{e}")
        return EXIT_ERROR


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)
    try:
        return asyncio.run(run_application(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return EXIT_CANCELLED


if __name__ == "__main__":
    sys.exit(main())
