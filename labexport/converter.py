import csv
import logging
from pathlib import Path
import re
import subprocess
from typing import Protocol

from openpyxl import Workbook

from labexport.config import Settings


logger = logging.getLogger(__name__)

SPREADSHEET_SUFFIX = ".xlsx"

INTEGER_PATTERN = re.compile(r"^-?(0|[1-9]\d*)$")

# Only these columns hold numbers; test results keep their text precision.
INTEGER_COLUMNS = frozenset({"ResultNo", "BirthYear"})


class ToolMissingError(FileNotFoundError):
    pass


class ConversionError(RuntimeError):
    def __init__(self, status: int, message: str | None = None) -> None:
        super().__init__(message or f"conversion exited with status {status}")
        self.status = status


def spreadsheet_path_for(csv_path: str | Path) -> Path:
    return Path(csv_path).with_suffix(SPREADSHEET_SUFFIX)


def remove_existing(path: Path) -> None:
    if path.exists():
        logger.info("removing existing spreadsheet", extra={"path": str(path)})
        path.unlink()


class SpreadsheetConverter(Protocol):
    def convert(self, csv_path: str | Path) -> Path: ...


class ExternalSpreadsheetConverter:
    def __init__(self, tool_path: str | Path) -> None:
        self.tool_path = Path(tool_path)

    def command(self, csv_path: Path, output_path: Path) -> list[str]:
        return [str(self.tool_path), "-i", str(csv_path), "-o", str(output_path)]

    def convert(self, csv_path: str | Path) -> Path:
        if not self.tool_path.is_file():
            raise ToolMissingError(f"conversion tool not found: {self.tool_path}")

        csv_path = Path(csv_path)
        output_path = spreadsheet_path_for(csv_path)
        remove_existing(output_path)

        proc = subprocess.run(
            self.command(csv_path, output_path),
            check=False,
            capture_output=True,
            text=True,
        )
        if proc.returncode != 0:
            detail = (proc.stderr or proc.stdout or "").strip()
            message = f"conversion exited with status {proc.returncode}"
            if detail:
                message = f"{message}: {detail}"
            raise ConversionError(proc.returncode, message)

        logger.info("spreadsheet converted", extra={"tool": str(self.tool_path), "output_path": str(output_path)})
        return output_path


def coerce_cell(value: str, integer_column: bool = False) -> object:
    if value == "":
        return None
    if integer_column and INTEGER_PATTERN.match(value):
        return int(value)
    return value


def keep_as_text(cells) -> None:
    for cell in cells:
        if isinstance(cell.value, str) and cell.value.startswith("="):
            cell.data_type = "s"


class OpenpyxlSpreadsheetConverter:
    def __init__(self, sheet_title: str = "Results") -> None:
        self.sheet_title = sheet_title

    def convert(self, csv_path: str | Path) -> Path:
        csv_path = Path(csv_path)
        output_path = spreadsheet_path_for(csv_path)
        remove_existing(output_path)

        wb = Workbook()
        ws = wb.active
        ws.title = self.sheet_title
        with csv_path.open("r", encoding="utf-8", newline="") as infile:
            reader = csv.reader(infile)
            header = next(reader, None) or []
            integer_columns = [name in INTEGER_COLUMNS for name in header]
            if header:
                ws.append(header)
                keep_as_text(ws[ws.max_row])
            for row in reader:
                if not row:
                    continue
                flags = integer_columns + [False] * (len(row) - len(integer_columns))
                ws.append([coerce_cell(value, flag) for value, flag in zip(row, flags)])
                keep_as_text(ws[ws.max_row])

        wb.save(output_path)
        logger.info("spreadsheet written", extra={"output_path": str(output_path), "rows": ws.max_row - 1})
        return output_path


def build_converter(settings: Settings) -> SpreadsheetConverter:
    if settings.converter == "openpyxl":
        return OpenpyxlSpreadsheetConverter()
    if settings.converter != "external":
        logger.warning("unknown spreadsheet converter, using external tool", extra={"converter": settings.converter})
    return ExternalSpreadsheetConverter(settings.converter_path)
