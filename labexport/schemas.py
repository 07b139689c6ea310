from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path


STATUS_SUCCEEDED = "succeeded"
STATUS_SKIPPED = "skipped"
STATUS_FAILED = "failed"

CSV_HEADER = (
    "CheckDate",
    "ResultNo",
    "PatientName",
    "BirthYear",
    "TestName",
    "TestResult",
    "TestUnit",
    "Doctor",
)


@dataclass(frozen=True)
class ExportRequest:
    requested_date: date
    resolved_date_filter: str
    export_folder: Path


@dataclass(frozen=True)
class TabularResult:
    columns: list[str]
    rows: list[tuple]

    def __len__(self) -> int:
        return len(self.rows)

    def scalar(self) -> object:
        if not self.rows:
            return None
        return self.rows[0][0]

    def mappings(self) -> list[dict[str, object]]:
        return [dict(zip(self.columns, row)) for row in self.rows]


@dataclass(frozen=True)
class ResultRow:
    check_date: str | None
    result_number: int | None
    patient_name: str | None
    birth_year: int | None
    test_name: str | None
    test_result: str | None
    test_unit: str | None
    doctor: str | None

    @classmethod
    def from_mapping(cls, row: Mapping[str, object]) -> "ResultRow":
        def text(key: str) -> str | None:
            value = row.get(key)
            return None if value is None else str(value)

        def number(key: str) -> int | None:
            value = row.get(key)
            return None if value is None else int(value)

        return cls(
            check_date=text("check_date"),
            result_number=number("result_number"),
            patient_name=text("patient_name"),
            birth_year=number("birth_year"),
            test_name=text("test_name"),
            test_result=text("test_result"),
            test_unit=text("test_unit"),
            doctor=text("doctor"),
        )

    def as_csv_row(self) -> list[str]:
        values = (
            self.check_date,
            self.result_number,
            self.patient_name,
            self.birth_year,
            self.test_name,
            self.test_result,
            self.test_unit,
            self.doctor,
        )
        return ["" if value is None else str(value) for value in values]


@dataclass(frozen=True)
class DateResolution:
    date_filter: str
    display_date: str
    requested_date: date
    fallback_used: bool = False
    data_available: bool = True
    input_warning: str | None = None


@dataclass(frozen=True)
class StageResult:
    name: str
    status: str
    message: str | None = None
    path: str | None = None
    row_count: int = 0
    duration_ms: float | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == STATUS_SUCCEEDED


@dataclass(frozen=True)
class PipelineResult:
    request: ExportRequest
    resolution: DateResolution
    stages: list[StageResult] = field(default_factory=list)

    def stage(self, name: str) -> StageResult | None:
        for stage in self.stages:
            if stage.name == name:
                return stage
        return None

    @property
    def csv_path(self) -> str | None:
        export = self.stage("export")
        return export.path if export and export.succeeded else None

    @property
    def spreadsheet_path(self) -> str | None:
        convert = self.stage("convert")
        return convert.path if convert and convert.succeeded else None

    @property
    def row_count(self) -> int:
        export = self.stage("export")
        return export.row_count if export else 0

    @property
    def no_data(self) -> bool:
        export = self.stage("export")
        return export is not None and export.status == STATUS_SKIPPED
