import logging
from pathlib import Path
from typing import Protocol

from openpyxl import load_workbook
from openpyxl.styles import Font


logger = logging.getLogger(__name__)

# Report layout: A is the check date, C is the patient name.
COLUMN_WIDTHS = {"A": 12, "C": 35}


class SpreadsheetFormatter(Protocol):
    def format(self, spreadsheet_path: str | Path) -> bool: ...


class OpenpyxlSpreadsheetFormatter:
    def __init__(self, column_widths: dict[str, float] | None = None) -> None:
        self.column_widths = dict(column_widths or COLUMN_WIDTHS)

    def format(self, spreadsheet_path: str | Path) -> bool:
        """Apply the report layout in place; returns False when there was nothing to format."""
        spreadsheet_path = Path(spreadsheet_path)
        if not spreadsheet_path.is_file():
            logger.warning("spreadsheet not found, skipping formatting", extra={"path": str(spreadsheet_path)})
            return False

        wb = load_workbook(spreadsheet_path)
        try:
            ws = wb.active
            for letter, width in self.column_widths.items():
                ws.column_dimensions[letter].width = width
            for cell in ws[1]:
                cell.font = Font(bold=True)
            ws.freeze_panes = "A2"
            wb.save(spreadsheet_path)
        finally:
            wb.close()

        logger.info("spreadsheet formatted", extra={"path": str(spreadsheet_path)})
        return True
