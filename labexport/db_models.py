from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql.functions import GenericFunction


class Base(DeclarativeBase):
    pass


class Patient(Base):
    __tablename__ = "Patients"

    # First 8 characters are the check date (yyyyMMdd), the rest is the sequence number.
    id: Mapped[str] = mapped_column("ID", String(32), primary_key=True)
    name: Mapped[str | None] = mapped_column("PatientName", String(128), nullable=True)
    birth_year: Mapped[int | None] = mapped_column("BirthYear", Integer, nullable=True)
    doctor: Mapped[str | None] = mapped_column("Doctor", String(128), nullable=True)


class LabResult(Base):
    __tablename__ = "Results"

    patient_id: Mapped[str] = mapped_column("ID", ForeignKey("Patients.ID"), primary_key=True)
    test_name: Mapped[str] = mapped_column("TestName", String(128), primary_key=True)
    test_result: Mapped[str | None] = mapped_column("TestResult", String(64), nullable=True)
    test_unit: Mapped[str | None] = mapped_column("TestUnit", String(32), nullable=True)


class substr(GenericFunction):
    type = String()
    inherit_cache = True


@compiles(substr, "mssql")
def _substr_mssql(element, compiler, **kw) -> str:
    return "SUBSTRING(%s)" % compiler.process(element.clauses, **kw)
