import argparse
import logging

from labexport.config import ConfigError, load_settings
from labexport.converter import build_converter
from labexport.database import DatabaseError, DriverMissingError, QueryExecutor
from labexport.formatter import OpenpyxlSpreadsheetFormatter
from labexport.logging_setup import configure_logging
from labexport.pipeline import PipelineRunner
from labexport.scheduler import start_scheduler
from labexport.schemas import STATUS_FAILED


logger = logging.getLogger(__name__)

DATE_PROMPT = "Report date (DD-MM-YYYY, empty for today): "


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", required=False, help="Path to the JSON settings file")

    parser = argparse.ArgumentParser(description="Export laboratory results for one day to CSV and Excel")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", parents=[common], help="export one day of results")
    run_parser.add_argument("--date", required=False, help="Report date in DD-MM-YYYY format; prompts when omitted")

    schedule_parser = subparsers.add_parser("schedule", parents=[common], help="start daily export scheduler")
    schedule_parser.add_argument("--run-now", action="store_true", help="also export once immediately")

    return parser.parse_args(argv)


def prompt_for_date() -> str:
    try:
        return input(DATE_PROMPT)
    except EOFError:
        return ""


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)

    try:
        settings = load_settings(args.config)
    except ConfigError as exc:
        print(f"error: {exc}")
        raise SystemExit(1)

    configure_logging(settings)

    try:
        executor = QueryExecutor.from_settings(settings)
        executor.probe()
    except DriverMissingError as exc:
        logger.error("database driver missing", extra={"error": str(exc)})
        print(f"error: {exc}")
        raise SystemExit(1)
    except DatabaseError as exc:
        logger.error("database unreachable", extra={"error": str(exc)})
        print(f"error: database unreachable: {exc}")
        raise SystemExit(1)

    runner = PipelineRunner(
        executor,
        settings.export_dir,
        converter=build_converter(settings),
        formatter=OpenpyxlSpreadsheetFormatter(),
    )
    if args.command == "schedule":
        start_scheduler(settings, runner, run_now=args.run_now)
        return

    requested_date_text = args.date if args.date is not None else prompt_for_date()
    result = runner.run(requested_date_text)

    if result.resolution.input_warning:
        print(f"warning: {result.resolution.input_warning}")
    if result.no_data:
        print("no data: nothing exported")

    print(
        " ".join(
            [
                f"date={result.resolution.display_date}",
                f"filter={result.request.resolved_date_filter}",
                f"fallback={result.resolution.fallback_used}",
                f"rows={result.row_count}",
            ]
            + [f"{stage.name}={stage.status}" for stage in result.stages]
            + [f"csv={result.csv_path}", f"xlsx={result.spreadsheet_path}"]
        )
    )
    for stage in result.stages:
        if stage.status == STATUS_FAILED:
            print(f"{stage.name} failed: {stage.message}")


if __name__ == "__main__":
    main()
