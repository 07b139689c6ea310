from datetime import datetime
import logging
from pathlib import Path

from labexport.config import Settings


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
SESSION_SEPARATOR = "=" * 72

RECORD_ATTRS = frozenset(vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))) | {"message", "asctime"}


class ContextFormatter(logging.Formatter):
    """Appends the `extra` fields of a record as key=value pairs."""

    def formatMessage(self, record: logging.LogRecord) -> str:
        line = super().formatMessage(record)
        context = {key: value for key, value in vars(record).items() if key not in RECORD_ATTRS}
        if not context:
            return line
        return line + " " + " ".join(f"{key}={value}" for key, value in context.items())


class QuietFileHandler(logging.FileHandler):
    """Append-only file handler whose write failures never reach the caller."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            super().emit(record)
        except OSError:
            self.handleError(record)

    def handleError(self, record: logging.LogRecord) -> None:
        return None

    def write_separator(self) -> None:
        try:
            if self.stream is None:
                self.stream = self._open()
            self.stream.write(f"{SESSION_SEPARATOR}\n# session {datetime.now():%Y-%m-%d %H:%M:%S}\n")
            self.flush()
        except OSError:
            return None


def configure_logging(settings: Settings) -> QuietFileHandler | None:
    console = logging.StreamHandler()
    console.setFormatter(ContextFormatter(LOG_FORMAT))
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        handlers=[console],
    )
    if not settings.enable_logging:
        return None

    try:
        Path(settings.log_file).parent.mkdir(parents=True, exist_ok=True)
        handler = QuietFileHandler(settings.log_file, mode="a", encoding="utf-8", delay=True)
    except OSError:
        return None

    handler.setFormatter(ContextFormatter(LOG_FORMAT))
    handler.write_separator()
    logging.getLogger().addHandler(handler)
    return handler
