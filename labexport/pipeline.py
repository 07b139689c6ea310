from collections.abc import Callable
from dataclasses import replace
from datetime import date
import logging
from pathlib import Path
import time

from labexport.converter import SpreadsheetConverter
from labexport.database import QueryExecutor
from labexport.date_resolver import DateResolver, parse_requested_date, to_display, to_filter
from labexport.formatter import SpreadsheetFormatter
from labexport.report_export import ReportExporter, report_csv_path
from labexport.schemas import (
    STATUS_FAILED,
    STATUS_SKIPPED,
    STATUS_SUCCEEDED,
    DateResolution,
    ExportRequest,
    PipelineResult,
    StageResult,
)


logger = logging.getLogger(__name__)


class PipelineRunner:
    def __init__(
        self,
        executor: QueryExecutor,
        export_folder: str | Path,
        converter: SpreadsheetConverter,
        formatter: SpreadsheetFormatter,
    ) -> None:
        self.export_folder = Path(export_folder)
        self.resolver = DateResolver(executor)
        self.exporter = ReportExporter(executor)
        self.converter = converter
        self.formatter = formatter

    def run(self, requested_date_text: str | None, *, today: date | None = None) -> PipelineResult:
        today = today or date.today()
        requested, warning = parse_requested_date(requested_date_text, today)
        request = ExportRequest(
            requested_date=requested,
            resolved_date_filter=to_filter(requested),
            export_folder=self.export_folder,
        )
        stages: list[StageResult] = []

        resolution = DateResolution(
            date_filter=request.resolved_date_filter,
            display_date=to_display(requested),
            requested_date=requested,
            input_warning=warning,
        )
        resolve_stage, resolution = self._resolve(requested_date_text, today, default=resolution)
        stages.append(resolve_stage)
        request = replace(request, resolved_date_filter=resolution.date_filter)

        csv_path = report_csv_path(self.export_folder, resolution.display_date)
        export_stage = self._run_stage("export", lambda: self._export(request, csv_path))
        stages.append(export_stage)

        if export_stage.succeeded:
            convert_stage = self._run_stage("convert", lambda: self._convert(Path(export_stage.path)))
        else:
            convert_stage = StageResult(name="convert", status=STATUS_SKIPPED, message="no csv to convert")
        stages.append(convert_stage)

        if convert_stage.succeeded:
            format_stage = self._run_stage("format", lambda: self._format(Path(convert_stage.path)))
        else:
            format_stage = StageResult(name="format", status=STATUS_SKIPPED, message="no spreadsheet to format")
        stages.append(format_stage)

        result = PipelineResult(request=request, resolution=resolution, stages=stages)
        self._log_summary(result)
        return result

    def _run_stage(self, stage_name: str, fn: Callable[[], StageResult]) -> StageResult:
        started = time.perf_counter()
        try:
            stage = fn()
        except Exception as exc:
            logger.exception("pipeline stage failed", extra={"stage": stage_name})
            stage = StageResult(name=stage_name, status=STATUS_FAILED, message=str(exc))
        return replace(stage, duration_ms=(time.perf_counter() - started) * 1000)

    def _resolve(
        self,
        requested_date_text: str | None,
        today: date,
        *,
        default: DateResolution,
    ) -> tuple[StageResult, DateResolution]:
        resolved: list[DateResolution] = []

        def resolve() -> StageResult:
            resolution = self.resolver.resolve(requested_date_text, today)
            resolved.append(resolution)
            message = None
            if not resolution.data_available:
                message = "no data available"
            elif resolution.fallback_used:
                message = f"no data for requested date, using {resolution.display_date}"
            return StageResult(name="resolve_date", status=STATUS_SUCCEEDED, message=message)

        stage = self._run_stage("resolve_date", resolve)
        # A failed probe still exports the requested date.
        return stage, resolved[0] if resolved else default

    def _export(self, request: ExportRequest, csv_path: Path) -> StageResult:
        request.export_folder.mkdir(parents=True, exist_ok=True)
        return self.exporter.export_report(request.resolved_date_filter, csv_path)

    def _convert(self, csv_path: Path) -> StageResult:
        spreadsheet_path = self.converter.convert(csv_path)
        return StageResult(name="convert", status=STATUS_SUCCEEDED, path=str(spreadsheet_path))

    def _format(self, spreadsheet_path: Path) -> StageResult:
        if not self.formatter.format(spreadsheet_path):
            return StageResult(name="format", status=STATUS_SKIPPED, message="spreadsheet not found")
        return StageResult(name="format", status=STATUS_SUCCEEDED, path=str(spreadsheet_path))

    def _log_summary(self, result: PipelineResult) -> None:
        summary = {stage.name: stage.status for stage in result.stages}
        if result.no_data:
            logger.warning("no data exported", extra={"date_filter": result.request.resolved_date_filter})
        logger.info(
            "pipeline run finished",
            extra={
                "display_date": result.resolution.display_date,
                "date_filter": result.request.resolved_date_filter,
                "rows": result.row_count,
                "stages": summary,
            },
        )
