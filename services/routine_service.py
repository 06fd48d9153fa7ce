import io
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from openpyxl import load_workbook
from sqlalchemy.orm import Session

import models
from services.sync_models import DriveNode

logger = logging.getLogger("brify_sync.routines")

ROUTINE_SHEET = "Rutina de Ejercicios"
NUTRITION_SHEET = "Alimentación"
REQUIRED_SHEETS = (ROUTINE_SHEET, NUTRITION_SHEET)

EXCEL_EXTENSIONS = (".xls", ".xlsx", ".xlsm")
EXCEL_MIME_TYPES = {
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.google-apps.spreadsheet",
}

WEEK_DAYS = ["Lunes", "Martes", "Miércoles", "Jueves", "Viernes", "Sábado", "Domingo"]
DAY_MAPPING = {
    "lunes": "Lunes",
    "martes": "Martes",
    "miercoles": "Miércoles",
    "miércoles": "Miércoles",
    "jueves": "Jueves",
    "viernes": "Viernes",
    "sabado": "Sábado",
    "sábado": "Sábado",
    "domingo": "Domingo",
}

MAX_PARENT_DEPTH = 10


def is_excel_file(name: Optional[str], mime_type: Optional[str]) -> bool:
    return (name or "").lower().endswith(EXCEL_EXTENSIONS) or mime_type in EXCEL_MIME_TYPES


def _to_int(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    match = re.match(r"\s*(-?\d+)", str(value))
    return int(match.group(1)) if match else 0


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _sheet_rows(sheet) -> List[Dict[str, Any]]:
    """Rows of a sheet as dicts keyed by the header row."""
    rows = list(sheet.iter_rows(values_only=True))
    if not rows:
        return []
    headers = [_to_text(h) for h in rows[0]]
    records = []
    for row in rows[1:]:
        if all(v is None or _to_text(v) == "" for v in row):
            continue
        records.append({headers[i]: row[i] for i in range(min(len(headers), len(row))) if headers[i]})
    return records


def build_weekly_plan(routine_rows: List[Dict[str, Any]], nutrition_rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    plan = {day: {"ejercicios": [], "alimentacion": {}} for day in WEEK_DAYS}

    for row in routine_rows:
        day = DAY_MAPPING.get(_to_text(row.get("Día")).lower())
        if not day:
            continue
        exercise = {
            "nombre": _to_text(row.get("Ejercicio") or row.get("Nombre")),
            "series": _to_int(row.get("Series")),
            "repeticiones": _to_int(row.get("Repeticiones")),
            "descanso_seg": _to_int(row.get("Descanso (seg)") or row.get("Descanso")),
        }
        if exercise["nombre"]:
            plan[day]["ejercicios"].append(exercise)

    for row in nutrition_rows:
        day = DAY_MAPPING.get(_to_text(row.get("Día")).lower())
        if not day:
            continue
        meals = plan[day]["alimentacion"] or {
            "desayuno": "", "almuerzo": "", "cena": "", "snacks_meriendas": ""
        }
        for key, column in (("desayuno", "Desayuno"), ("almuerzo", "Almuerzo"), ("cena", "Cena")):
            text = _to_text(row.get(column))
            if text:
                meals[key] = text
        snacks = _to_text(row.get("Snacks/Meriendas") or row.get("SnacksMeriendas"))
        if snacks:
            meals["snacks_meriendas"] = snacks
        plan[day]["alimentacion"] = meals

    # The trainer app expects a trailing blank exercise slot per day
    for day in WEEK_DAYS:
        plan[day]["ejercicios"].append({})

    return plan


def parse_routine_workbook(content: bytes) -> Optional[Dict[str, Any]]:
    """
    Weekly plan from a trainer spreadsheet, or None when the workbook is not
    a routine (missing sheets or an empty routine sheet).
    """
    wb = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    try:
        missing = [name for name in REQUIRED_SHEETS if name not in wb.sheetnames]
        if missing:
            logger.info(f"Workbook is not a routine, missing sheets: {', '.join(missing)}")
            return None
        routine_rows = _sheet_rows(wb[ROUTINE_SHEET])
        nutrition_rows = _sheet_rows(wb[NUTRITION_SHEET])
    finally:
        wb.close()

    if not routine_rows:
        logger.info(f"Workbook is not a routine, sheet '{ROUTINE_SHEET}' is empty")
        return None
    return build_weekly_plan(routine_rows, nutrition_rows)


class RoutineService:
    def __init__(self, db: Session, drive_service: Any):
        self.db = db
        self.drive_service = drive_service

    def user_email_for_folder(self, folder_id: Optional[str]) -> Optional[str]:
        """Walks up the Drive parents until a registered user folder is found."""
        current = folder_id
        for _ in range(MAX_PARENT_DEPTH):
            if not current:
                return None
            folder = self.db.query(models.CarpetaUsuario).filter_by(id_carpeta_drive=current).first()
            if folder:
                return folder.correo
            try:
                info = self.drive_service.get_file(current)
            except Exception as e:
                logger.warning(f"Could not read folder {current} while resolving its user: {e}")
                return None
            parents = (info or {}).get("parents") or []
            current = parents[0] if parents else None
        return None

    def register_routine(self, file_id: str, plan: Dict[str, Any], user_email: str,
                         owner_email: Optional[str]) -> models.Rutina:
        routine = self.db.query(models.Rutina).filter_by(user_email=user_email).first()
        if routine:
            routine.plan_semanal = plan
            routine.administrador = owner_email
            routine.file_id = file_id
            routine.updated_at = datetime.now(timezone.utc)
            logger.info(f"Updating routine for {user_email}")
        else:
            routine = models.Rutina(
                user_email=user_email,
                plan_semanal=plan,
                administrador=owner_email,
                file_id=file_id,
            )
            self.db.add(routine)
            logger.info(f"Creating routine for {user_email}")
        self.db.commit()
        self.db.refresh(routine)
        return routine

    def process_spreadsheet(self, node: DriveNode, owner_email: Optional[str],
                            content: Optional[bytes] = None) -> bool:
        """Registers the routine contained in node. Returns True when one was stored."""
        if node.is_folder or not is_excel_file(node.name, node.mime_type):
            return False

        user_email = self.user_email_for_folder(node.parent_folder_id)
        if not user_email:
            logger.info(f"No user folder above {node.name}, not a client routine")
            return False

        if content is None:
            content = self.drive_service.download_file(node.id)
        plan = parse_routine_workbook(content)
        if not plan:
            return False

        self.register_routine(node.id, plan, user_email, owner_email)
        return True

    def check_existing_routines(self, owner_email: str) -> Dict[str, int]:
        """Registers routines for stored spreadsheets that have none yet."""
        stats = {"processed": 0, "registered": 0}

        documents = self.db.query(models.DocumentoAdministrador).filter(
            models.DocumentoAdministrador.administrador == owner_email
        ).all()
        registered_ids = {r.file_id for r in self.db.query(models.Rutina.file_id).all() if r.file_id}

        for doc in documents:
            if doc.file_id in registered_ids or not is_excel_file(doc.name, doc.file_type):
                continue
            node = DriveNode(
                id=doc.file_id,
                name=doc.name or "",
                mime_type=doc.file_type or "",
                parent_folder_id=doc.carpeta_actual,
            )
            try:
                if self.process_spreadsheet(node, owner_email):
                    stats["registered"] += 1
            except Exception as e:
                self.db.rollback()
                logger.error(f"Routine check for {doc.name} failed: {e}")
                continue
            stats["processed"] += 1

        logger.info(f"Routine check: {stats['processed']} processed, {stats['registered']} registered")
        return stats
