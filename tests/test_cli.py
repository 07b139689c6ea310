import json
import os
from pathlib import Path
import subprocess
import sys

from sqlalchemy.orm import Session

from labexport.database import build_engine
from labexport.db_models import Base, LabResult, Patient
from labexport.main import parse_args


def _base_env(tmp_path: Path, database_url: str) -> dict[str, str]:
    env = os.environ.copy()
    env["DATABASE_URL"] = database_url
    env["EXPORT_DIR"] = str(tmp_path / "exports")
    env["LOG_FILE"] = str(tmp_path / "logs" / "labexport.log")
    env["SPREADSHEET_CONVERTER"] = "openpyxl"
    return env


def _write_config(tmp_path: Path, enable_logging: object = True) -> Path:
    config_path = tmp_path / "config.json"
    config_path.write_text(
        json.dumps({"dbHost": "unused", "dbName": "unused", "dbUser": "", "dbPwd": "", "enableLogging": enable_logging}),
        encoding="utf-8",
    )
    return config_path


def _seed_database(tmp_path: Path) -> str:
    database_url = f"sqlite:///{tmp_path / 'lab.db'}"
    engine = build_engine(database_url)
    Base.metadata.create_all(engine)
    with Session(engine) as db:
        db.add(Patient(id="2024031001", name="Ada Lovelace", birth_year=1815, doctor="Dr. Roth"))
        db.flush()
        db.add_all(
            [
                LabResult(patient_id="2024031001", test_name="Albumin", test_result="42", test_unit="g/L"),
                LabResult(patient_id="2024031001", test_name="Glucose", test_result="5.1", test_unit="mmol/L"),
            ]
        )
        db.commit()
    engine.dispose()
    return database_url


def _run(tmp_path: Path, env: dict[str, str], *args: str, stdin: str | None = None) -> subprocess.CompletedProcess:
    return subprocess.run(
        [sys.executable, "-m", "labexport.main", *args],
        cwd=Path(__file__).resolve().parents[1],
        env=env,
        input=stdin,
        check=False,
        capture_output=True,
        text=True,
    )


def test_cli_exports_fallback_date(tmp_path: Path) -> None:
    env = _base_env(tmp_path, _seed_database(tmp_path))
    config_path = _write_config(tmp_path)

    proc = _run(tmp_path, env, "run", "--config", str(config_path), "--date", "15-03-2024")

    assert proc.returncode == 0
    assert "date=10-03-2024" in proc.stdout
    assert "export=succeeded" in proc.stdout
    assert (tmp_path / "exports" / "10-03-2024_Full_Report_Patients_Results.csv").exists()
    assert (tmp_path / "exports" / "10-03-2024_Full_Report_Patients_Results.xlsx").exists()
    assert (tmp_path / "logs" / "labexport.log").exists()


def test_cli_prompts_for_date_and_reports_invalid_input(tmp_path: Path) -> None:
    env = _base_env(tmp_path, _seed_database(tmp_path))
    config_path = _write_config(tmp_path, enable_logging="0")

    proc = _run(tmp_path, env, "run", "--config", str(config_path), stdin="31-13-2024\n")

    assert proc.returncode == 0
    assert "warning: invalid date" in proc.stdout
    assert "date=10-03-2024" in proc.stdout
    assert not (tmp_path / "logs" / "labexport.log").exists()


def test_cli_conversion_failure_still_exits_zero(tmp_path: Path) -> None:
    env = _base_env(tmp_path, _seed_database(tmp_path))
    env["SPREADSHEET_CONVERTER"] = "external"
    env["CONVERTER_PATH"] = str(tmp_path / "tools" / "csv2xlsx")
    config_path = _write_config(tmp_path)

    proc = _run(tmp_path, env, "run", "--config", str(config_path), "--date", "10-03-2024")

    assert proc.returncode == 0
    assert "convert=failed" in proc.stdout
    assert (tmp_path / "exports" / "10-03-2024_Full_Report_Patients_Results.csv").exists()
    assert not (tmp_path / "exports" / "10-03-2024_Full_Report_Patients_Results.xlsx").exists()


def test_cli_missing_config_exits_one(tmp_path: Path) -> None:
    env = _base_env(tmp_path, _seed_database(tmp_path))

    proc = _run(tmp_path, env, "run", "--config", str(tmp_path / "missing.json"), "--date", "10-03-2024")

    assert proc.returncode == 1
    assert "configuration file not found" in proc.stdout


def test_cli_unreachable_database_exits_one(tmp_path: Path) -> None:
    env = _base_env(tmp_path, f"sqlite:///{tmp_path / 'missing-dir' / 'lab.db'}")
    config_path = _write_config(tmp_path)

    proc = _run(tmp_path, env, "run", "--config", str(config_path), "--date", "10-03-2024")

    assert proc.returncode == 1
    assert "database unreachable" in proc.stdout


def test_config_option_belongs_to_each_subcommand() -> None:
    run_args = parse_args(["run", "--config", "lab.json", "--date", "10-03-2024"])
    schedule_args = parse_args(["schedule", "--run-now", "--config", "lab.json"])

    assert (run_args.command, run_args.config, run_args.date) == ("run", "lab.json", "10-03-2024")
    assert (schedule_args.command, schedule_args.config, schedule_args.run_now) == ("schedule", "lab.json", True)
    assert parse_args(["run"]).config is None
