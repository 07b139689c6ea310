from dataclasses import dataclass
import json
import os
from pathlib import Path
import sys

from dotenv import load_dotenv


load_dotenv()

FALSE_STRINGS = {"false", "0", "no", "off", "n"}


class ConfigError(RuntimeError):
    pass


@dataclass(frozen=True)
class Settings:
    app_name: str
    db_host: str
    db_name: str
    db_user: str
    db_password: str
    enable_logging: bool
    database_url: str | None
    log_level: str
    log_file: str
    export_dir: str
    converter: str
    converter_path: str
    schedule_hour: int
    schedule_minute: int


def default_converter_path() -> str:
    program_dir = Path(sys.argv[0]).resolve().parent
    return str(program_dir / "tools" / "csv2xlsx")


def parse_flag(value: object, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() not in FALSE_STRINGS


def read_config_file(config_path: Path) -> dict[str, object]:
    if not config_path.exists():
        raise ConfigError(f"configuration file not found: {config_path}")

    try:
        with config_path.open("r", encoding="utf-8-sig") as infile:
            payload = json.load(infile)
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"configuration file could not be read: {config_path}: {exc}") from exc

    if not isinstance(payload, dict):
        raise ConfigError(f"configuration file must contain an object: {config_path}")
    return payload


def load_settings(config_path: str | Path | None = None) -> Settings:
    path = Path(config_path or os.getenv("LABEXPORT_CONFIG", "config.json"))
    payload = read_config_file(path)

    return Settings(
        app_name=os.getenv("APP_NAME", "labexport"),
        db_host=str(payload.get("dbHost", "")),
        db_name=str(payload.get("dbName", "")),
        db_user=str(payload.get("dbUser", "")),
        db_password=str(payload.get("dbPwd", "")),
        enable_logging=parse_flag(payload.get("enableLogging")),
        database_url=os.getenv("DATABASE_URL") or None,
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_file=os.getenv("LOG_FILE", "labexport.log"),
        export_dir=os.getenv("EXPORT_DIR", "./Exports"),
        converter=os.getenv("SPREADSHEET_CONVERTER", "external").strip().lower(),
        converter_path=os.getenv("CONVERTER_PATH") or default_converter_path(),
        schedule_hour=int(os.getenv("SCHEDULE_HOUR", "6")),
        schedule_minute=int(os.getenv("SCHEDULE_MINUTE", "0")),
    )
