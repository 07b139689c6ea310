from collections.abc import Callable, Generator
from pathlib import Path

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from labexport.config import Settings
from labexport.database import QueryExecutor, build_engine
from labexport.db_models import Base, LabResult, Patient


SeedFn = Callable[[list[dict[str, object]], list[dict[str, object]]], None]


@pytest.fixture()
def temp_workspace(tmp_path: Path) -> Path:
    (tmp_path / "exports").mkdir(parents=True, exist_ok=True)
    return tmp_path


@pytest.fixture()
def database_url(temp_workspace: Path) -> str:
    return f"sqlite:///{temp_workspace / 'lab.db'}"


@pytest.fixture()
def engine(database_url: str) -> Generator[Engine, None, None]:
    engine = build_engine(database_url)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def executor(engine: Engine) -> QueryExecutor:
    return QueryExecutor(engine)


@pytest.fixture()
def seed(engine: Engine) -> SeedFn:
    def _seed(patients: list[dict[str, object]], results: list[dict[str, object]]) -> None:
        with Session(engine) as db:
            db.add_all(Patient(**patient) for patient in patients)
            db.flush()
            db.add_all(LabResult(**result) for result in results)
            db.commit()

    return _seed


@pytest.fixture()
def test_settings(temp_workspace: Path, database_url: str) -> Settings:
    return Settings(
        app_name="labexport",
        db_host="",
        db_name="",
        db_user="",
        db_password="",
        enable_logging=False,
        database_url=database_url,
        log_level="INFO",
        log_file=str(temp_workspace / "logs" / "labexport.log"),
        export_dir=str(temp_workspace / "exports"),
        converter="openpyxl",
        converter_path=str(temp_workspace / "tools" / "csv2xlsx"),
        schedule_hour=6,
        schedule_minute=0,
    )


@pytest.fixture()
def seed_day(seed: SeedFn) -> Callable[[str, int, list[str]], int]:
    def _seed_day(date_filter: str, patient_count: int, tests: list[str]) -> int:
        patients = []
        results = []
        for index in range(1, patient_count + 1):
            patient_id = f"{date_filter}{index:02d}"
            patients.append(
                {"id": patient_id, "name": f"Patient {index}", "birth_year": 1970 + index, "doctor": "Dr. Weber"}
            )
            for test_name in tests:
                results.append(
                    {"patient_id": patient_id, "test_name": test_name, "test_result": "5.1", "test_unit": "mmol/L"}
                )
        seed(patients, results)
        return len(results)

    return _seed_day
