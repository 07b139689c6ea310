import csv
import logging
from pathlib import Path

from sqlalchemy import Integer, Select, cast, func, select

from labexport.database import QueryExecutor
from labexport.db_models import LabResult, Patient, substr
from labexport.schemas import (
    CSV_HEADER,
    STATUS_FAILED,
    STATUS_SKIPPED,
    STATUS_SUCCEEDED,
    ResultRow,
    StageResult,
    TabularResult,
)


logger = logging.getLogger(__name__)

REPORT_SUFFIX = "_Full_Report_Patients_Results"


def report_csv_path(export_folder: Path, display_date: str) -> Path:
    return export_folder / f"{display_date}{REPORT_SUFFIX}.csv"


def build_report_query(date_filter: str) -> Select:
    check_date = (
        substr(Patient.id, 7, 2) + "-" + substr(Patient.id, 5, 2) + "-" + substr(Patient.id, 1, 4)
    ).label("check_date")
    result_number = cast(substr(Patient.id, 9, func.length(Patient.id) - 8), Integer).label("result_number")

    return (
        select(
            check_date,
            result_number,
            Patient.name.label("patient_name"),
            func.nullif(Patient.birth_year, 0).label("birth_year"),
            LabResult.test_name.label("test_name"),
            LabResult.test_result.label("test_result"),
            LabResult.test_unit.label("test_unit"),
            Patient.doctor.label("doctor"),
        )
        .select_from(Patient)
        .join(LabResult, LabResult.patient_id == Patient.id)
        .where(Patient.id.like(f"{date_filter}%"))
        .order_by(Patient.id, LabResult.test_name)
    )


def decode_rows(result: TabularResult) -> list[ResultRow]:
    return [ResultRow.from_mapping(row) for row in result.mappings()]


def write_csv(path: Path, rows: list[ResultRow]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    # Plain utf-8 (no BOM) for the converter tool.
    with path.open("w", encoding="utf-8", newline="") as outfile:
        writer = csv.writer(outfile)
        writer.writerow(CSV_HEADER)
        for row in rows:
            writer.writerow(row.as_csv_row())


class ReportExporter:
    def __init__(self, executor: QueryExecutor) -> None:
        self.executor = executor

    def fetch_rows(self, date_filter: str) -> list[ResultRow]:
        result = self.executor.execute(build_report_query(date_filter), expect_result=True)
        return decode_rows(result)

    def export_report(self, date_filter: str, output_path: str | Path) -> StageResult:
        output_path = Path(output_path)
        try:
            rows = self.fetch_rows(date_filter)
            if not rows:
                logger.warning("no rows to export", extra={"date_filter": date_filter})
                return StageResult(name="export", status=STATUS_SKIPPED, message="no data for date filter")

            write_csv(output_path, rows)
        except Exception as exc:
            logger.exception(
                "report export failed",
                extra={"date_filter": date_filter, "output_path": str(output_path)},
            )
            return StageResult(name="export", status=STATUS_FAILED, message=str(exc))

        logger.info(
            "report exported",
            extra={"date_filter": date_filter, "output_path": str(output_path), "rows": len(rows)},
        )
        return StageResult(name="export", status=STATUS_SUCCEEDED, path=str(output_path), row_count=len(rows))
