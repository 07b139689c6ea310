"""Turn a requested report date into the identifier prefix used for export.

When nothing was recorded on the requested day, the most recent day that has
data is exported instead. The fallback always takes the newest numeric prefix
in the store, including days after the requested one.
"""
from datetime import date, datetime
import logging

from sqlalchemy import desc, func, select

from labexport.database import QueryExecutor
from labexport.db_models import Patient, substr
from labexport.schemas import DateResolution


logger = logging.getLogger(__name__)

INPUT_DATE_FORMAT = "%d-%m-%Y"
FILTER_DATE_FORMAT = "%Y%m%d"
FILTER_LENGTH = 8


def to_filter(value: date) -> str:
    return value.strftime(FILTER_DATE_FORMAT)


def to_display(value: date) -> str:
    return value.strftime(INPUT_DATE_FORMAT)


def is_date_prefix(value: object) -> bool:
    return isinstance(value, str) and len(value) == FILTER_LENGTH and value.isascii() and value.isdigit()


def parse_requested_date(requested_date_text: str | None, today: date) -> tuple[date, str | None]:
    """Return the requested date and a warning when the input was unusable."""
    raw = (requested_date_text or "").strip()
    if not raw:
        return today, None
    try:
        return datetime.strptime(raw, INPUT_DATE_FORMAT).date(), None
    except ValueError:
        return today, f"invalid date '{raw}', expected DD-MM-YYYY; using {to_display(today)}"


class DateResolver:
    def __init__(self, executor: QueryExecutor) -> None:
        self.executor = executor

    def count_for_prefix(self, date_filter: str) -> int:
        stmt = select(func.count()).select_from(Patient).where(Patient.id.like(f"{date_filter}%"))
        result = self.executor.execute(stmt, expect_result=True)
        return int(result.scalar() or 0)

    def latest_date_prefix(self) -> str | None:
        prefix = substr(Patient.id, 1, FILTER_LENGTH).label("prefix")
        stmt = select(prefix).distinct().order_by(desc("prefix"))
        result = self.executor.execute(stmt, expect_result=True)
        for (candidate,) in result.rows:
            if is_date_prefix(candidate):
                return candidate
        return None

    def resolve(self, requested_date_text: str | None, today: date) -> DateResolution:
        requested, warning = parse_requested_date(requested_date_text, today)
        if warning:
            logger.warning(warning)

        date_filter = to_filter(requested)
        display_date = to_display(requested)

        if self.count_for_prefix(date_filter) > 0:
            logger.info("data found for requested date", extra={"date_filter": date_filter})
            return DateResolution(
                date_filter=date_filter,
                display_date=display_date,
                requested_date=requested,
                input_warning=warning,
            )

        logger.warning("no data for requested date, searching latest date with data", extra={"date_filter": date_filter})
        latest = self.latest_date_prefix()
        if latest is None:
            logger.warning("no data available in the database")
            return DateResolution(
                date_filter=date_filter,
                display_date=display_date,
                requested_date=requested,
                data_available=False,
                input_warning=warning,
            )

        try:
            latest_display = to_display(datetime.strptime(latest, FILTER_DATE_FORMAT).date())
        except ValueError:
            latest_display = latest

        logger.info(
            "using latest date with data",
            extra={"requested_filter": date_filter, "date_filter": latest, "display_date": latest_display},
        )
        return DateResolution(
            date_filter=latest,
            display_date=latest_display,
            requested_date=requested,
            fallback_used=True,
            input_warning=warning,
        )
