import io
import os

import pytest
from openpyxl import Workbook
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import models
from database import Base
from services.google_drive_mock import GoogleDriveService
from services.routine_service import (
    RoutineService,
    build_weekly_plan,
    is_excel_file,
    parse_routine_workbook,
)
from services.sync_models import DriveNode

SQLALCHEMY_DATABASE_URL = "sqlite:///./test_routine_service.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

OWNER = "coach@brify.ai"
XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@pytest.fixture(scope="module", autouse=True)
def setup_module():
    yield
    if os.path.exists("./test_routine_service.db"):
        os.remove("./test_routine_service.db")


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def drive(tmp_path):
    drive = GoogleDriveService(db_file=str(tmp_path / "mock_drive.json"))
    drive.create_folder("Entrenador", folder_id="EXT")
    drive.create_folder("ana@mail.com", parent_id="EXT", folder_id="U1")
    drive.create_folder("Semana 1", parent_id="U1", folder_id="W1")
    return drive


def routine_workbook(with_nutrition=True, exercises=True):
    wb = Workbook()
    ws = wb.active
    ws.title = "Rutina de Ejercicios"
    ws.append(["Día", "Ejercicio", "Series", "Repeticiones", "Descanso (seg)"])
    if exercises:
        ws.append(["Lunes", "Sentadilla", 4, "12 reps", 90])
        ws.append(["miercoles", "Press banca", "3", 10, None])
        ws.append(["Feriado", "Nada", 1, 1, 1])
    if with_nutrition:
        food = wb.create_sheet("Alimentación")
        food.append(["Día", "Desayuno", "Almuerzo", "Cena", "Snacks/Meriendas"])
        food.append(["Lunes", "Avena", "Pollo", "Ensalada", "Fruta"])
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def test_is_excel_file():
    assert is_excel_file("plan.XLSX", None)
    assert is_excel_file("plan", "application/vnd.google-apps.spreadsheet")
    assert not is_excel_file("plan.pdf", "application/pdf")


def test_parse_routine_workbook_builds_weekly_plan():
    plan = parse_routine_workbook(routine_workbook())

    assert list(plan.keys()) == ["Lunes", "Martes", "Miércoles", "Jueves", "Viernes", "Sábado", "Domingo"]
    assert plan["Lunes"]["ejercicios"] == [
        {"nombre": "Sentadilla", "series": 4, "repeticiones": 12, "descanso_seg": 90},
        {},
    ]
    assert plan["Miércoles"]["ejercicios"][0] == {
        "nombre": "Press banca", "series": 3, "repeticiones": 10, "descanso_seg": 0,
    }
    assert plan["Lunes"]["alimentacion"] == {
        "desayuno": "Avena", "almuerzo": "Pollo", "cena": "Ensalada", "snacks_meriendas": "Fruta",
    }
    assert plan["Martes"] == {"ejercicios": [{}], "alimentacion": {}}


def test_workbook_without_required_sheets_is_not_a_routine():
    assert parse_routine_workbook(routine_workbook(with_nutrition=False)) is None


def test_workbook_with_empty_routine_sheet_is_not_a_routine():
    assert parse_routine_workbook(routine_workbook(exercises=False)) is None


def test_build_weekly_plan_ignores_unknown_days():
    plan = build_weekly_plan([{"Día": "Holiday", "Ejercicio": "x"}], [])
    assert all(day["ejercicios"] == [{}] for day in plan.values())


def test_user_email_resolved_through_parent_folders(db_session, drive):
    db_session.add(models.CarpetaUsuario(correo="ana@mail.com", id_carpeta_drive="U1", administrador=OWNER))
    db_session.commit()
    service = RoutineService(db_session, drive)

    assert service.user_email_for_folder("U1") == "ana@mail.com"
    assert service.user_email_for_folder("W1") == "ana@mail.com"
    assert service.user_email_for_folder("EXT") is None
    assert service.user_email_for_folder(None) is None


def test_process_spreadsheet_registers_and_updates_routine(db_session, drive):
    db_session.add(models.CarpetaUsuario(correo="ana@mail.com", id_carpeta_drive="U1", administrador=OWNER))
    db_session.commit()
    drive.upload_file(routine_workbook(), "rutina.xlsx", XLSX, parent_id="W1", file_id="X1")
    service = RoutineService(db_session, drive)
    node = DriveNode(id="X1", name="rutina.xlsx", mime_type=XLSX, parent_folder_id="W1")

    assert service.process_spreadsheet(node, OWNER) is True
    assert service.process_spreadsheet(node, OWNER) is True

    routines = db_session.query(models.Rutina).filter_by(user_email="ana@mail.com").all()
    assert len(routines) == 1
    assert routines[0].file_id == "X1"
    assert routines[0].administrador == OWNER
    assert routines[0].plan_semanal["Lunes"]["ejercicios"][0]["nombre"] == "Sentadilla"


def test_process_spreadsheet_outside_user_folder(db_session, drive):
    drive.upload_file(routine_workbook(), "rutina.xlsx", XLSX, parent_id="EXT", file_id="X2")
    node = DriveNode(id="X2", name="rutina.xlsx", mime_type=XLSX, parent_folder_id="EXT")

    assert RoutineService(db_session, drive).process_spreadsheet(node, OWNER) is False
    assert db_session.query(models.Rutina).count() == 0


def test_check_existing_routines_registers_missing_ones(db_session, drive):
    db_session.add(models.CarpetaUsuario(correo="ana@mail.com", id_carpeta_drive="U1", administrador=OWNER))
    db_session.add(models.DocumentoAdministrador(file_id="X1", name="rutina.xlsx", file_type=XLSX,
                                                 administrador=OWNER, carpeta_actual="U1"))
    db_session.add(models.DocumentoAdministrador(file_id="P1", name="notes.pdf", file_type="application/pdf",
                                                 administrador=OWNER, carpeta_actual="U1"))
    db_session.commit()
    drive.upload_file(routine_workbook(), "rutina.xlsx", XLSX, parent_id="U1", file_id="X1")

    stats = RoutineService(db_session, drive).check_existing_routines(OWNER)

    assert stats == {"processed": 1, "registered": 1}
    assert db_session.query(models.Rutina).filter_by(file_id="X1").count() == 1


def test_check_existing_routines_survives_download_errors(db_session, drive):
    db_session.add(models.CarpetaUsuario(correo="ana@mail.com", id_carpeta_drive="U1", administrador=OWNER))
    db_session.add(models.DocumentoAdministrador(file_id="GONE", name="old.xlsx", file_type=XLSX,
                                                 administrador=OWNER, carpeta_actual="U1"))
    db_session.commit()

    stats = RoutineService(db_session, drive).check_existing_routines(OWNER)

    assert stats == {"processed": 0, "registered": 0}
