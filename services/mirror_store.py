import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import models
from services.sync_models import (
    FOLDER_MIME_TYPE,
    DriveNode,
    ExtensionSubfolder,
    MirrorRecord,
    ensure_aware,
)

logger = logging.getLogger("brify_sync.mirror")

DOCUMENTS_TABLE = "documentos_administrador"
GROUPS_TABLE = "grupos_drive"
USER_FOLDERS_TABLE = "carpetas_usuario"
SHARED_ACCESS_TABLE = "grupos_carpetas"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MirrorStore:
    """
    Database side of the sync: registry reads, a normalized snapshot of the
    three mirror tables, and table-scoped writes.

    Each write commits on its own. A unique constraint violation rolls back
    only that write and is reported as "already exists" (created=False).
    """

    def __init__(self, db: Session):
        self.db = db

    # --- REGISTRY ---

    def load_root_folder(self, owner_email: str) -> Optional[str]:
        row = self.db.query(models.CarpetaAdministrador).filter_by(correo=owner_email).first()
        return row.id_drive_carpeta if row and row.id_drive_carpeta else None

    def load_subfolders(self, owner_email: str) -> List[ExtensionSubfolder]:
        rows = (
            self.db.query(models.SubCarpetaAdministrador)
            .filter_by(administrador_email=owner_email)
            .order_by(models.SubCarpetaAdministrador.id)
            .all()
        )
        return [self._to_subfolder(row) for row in rows if row.file_id_subcarpeta]

    def find_subfolder(self, folder_id: Optional[str]) -> Optional[ExtensionSubfolder]:
        if not folder_id:
            return None
        row = self.db.query(models.SubCarpetaAdministrador).filter_by(file_id_subcarpeta=folder_id).first()
        return self._to_subfolder(row) if row else None

    @staticmethod
    def _to_subfolder(row: models.SubCarpetaAdministrador) -> ExtensionSubfolder:
        return ExtensionSubfolder(
            folder_id=row.file_id_subcarpeta,
            name=row.nombre_subcarpeta or "",
            extension=(row.tipo_extension or "general").lower(),
            owner_email=row.administrador_email,
        )

    # --- SNAPSHOT ---

    def snapshot(self, owner_email: str) -> List[MirrorRecord]:
        """
        Every mirrored item of one administrator, documents first, then groups,
        then user folders. An id present in more than one table keeps the
        first record read.
        """
        records: List[MirrorRecord] = []

        documents = self.db.query(models.DocumentoAdministrador).filter_by(administrador=owner_email).all()
        for doc in documents:
            records.append(MirrorRecord(
                file_id=doc.file_id,
                name=doc.name,
                type=doc.file_type,
                owner_email=doc.administrador,
                source=DOCUMENTS_TABLE,
                extension=doc.servicio or "general",
                created_at=ensure_aware(doc.created_at),
                last_synced_at=ensure_aware(doc.last_synced_at),
                row_id=doc.id,
            ))

        groups = self.db.query(models.GrupoDrive).filter_by(administrador=owner_email).all()
        for group in groups:
            records.append(MirrorRecord(
                file_id=group.folder_id,
                name=group.group_name,
                type=FOLDER_MIME_TYPE,
                owner_email=group.administrador,
                source=GROUPS_TABLE,
                extension=group.extension or "general",
                parent_folder_id=group.parent_folder_id,
                created_at=ensure_aware(group.created_at),
                last_synced_at=ensure_aware(group.last_synced_at),
                row_id=group.id,
            ))

        user_folders = self.db.query(models.CarpetaUsuario).filter_by(administrador=owner_email).all()
        for folder in user_folders:
            records.append(MirrorRecord(
                file_id=folder.id_carpeta_drive,
                name=folder.nombre_carpeta,
                type=FOLDER_MIME_TYPE,
                owner_email=folder.administrador,
                source=USER_FOLDERS_TABLE,
                extension=folder.extension or "general",
                parent_folder_id=folder.parent_folder_id,
                created_at=ensure_aware(folder.created_at),
                last_synced_at=ensure_aware(folder.last_synced_at),
                row_id=folder.id,
            ))

        seen = set()
        unique: List[MirrorRecord] = []
        for record in records:
            if not record.file_id or record.file_id in seen:
                continue
            seen.add(record.file_id)
            unique.append(record)
        return unique

    # --- WRITES ---

    def _insert(self, row: Any, lookup) -> Tuple[Any, bool]:
        self.db.add(row)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = lookup()
            logger.info(f"{row.__tablename__}: row already exists, keeping the stored one")
            return existing, False
        self.db.refresh(row)
        return row, True

    def insert_document(self, **fields) -> Tuple[models.DocumentoAdministrador, bool]:
        fields.setdefault("last_synced_at", utcnow())
        row = models.DocumentoAdministrador(**fields)
        return self._insert(
            row,
            lambda: self.db.query(models.DocumentoAdministrador).filter_by(
                file_id=fields.get("file_id"), administrador=fields.get("administrador")
            ).first(),
        )

    def get_group(self, folder_id: str, owner_email: str) -> Optional[models.GrupoDrive]:
        return self.db.query(models.GrupoDrive).filter_by(folder_id=folder_id, administrador=owner_email).first()

    def insert_group(self, **fields) -> Tuple[models.GrupoDrive, bool]:
        existing = self.get_group(fields.get("folder_id"), fields.get("administrador"))
        if existing:
            return existing, False
        fields.setdefault("last_synced_at", utcnow())
        row = models.GrupoDrive(**fields)
        return self._insert(row, lambda: self.get_group(fields.get("folder_id"), fields.get("administrador")))

    def get_user_folder(self, folder_id: str) -> Optional[models.CarpetaUsuario]:
        return self.db.query(models.CarpetaUsuario).filter_by(id_carpeta_drive=folder_id).first()

    def insert_user_folder(self, **fields) -> Tuple[models.CarpetaUsuario, bool]:
        existing = self.get_user_folder(fields.get("id_carpeta_drive"))
        if existing:
            return existing, False
        fields.setdefault("last_synced_at", utcnow())
        row = models.CarpetaUsuario(**fields)
        return self._insert(row, lambda: self.get_user_folder(fields.get("id_carpeta_drive")))

    def update_from_drive(self, node: DriveNode, owner_email: str) -> List[Dict[str, Any]]:
        """
        Refreshes name/type of every mirror row of node and stamps
        last_synced_at. Returns one entry per table that had a row.
        """
        now = utcnow()
        touched: List[Dict[str, Any]] = []

        doc = self.db.query(models.DocumentoAdministrador).filter_by(
            file_id=node.id, administrador=owner_email
        ).first()
        if doc:
            doc.name = node.name
            doc.file_type = node.mime_type
            doc.updated_at = now
            doc.last_synced_at = now
            touched.append({"table": DOCUMENTS_TABLE, "id": doc.id})

        group = self.get_group(node.id, owner_email)
        if group:
            group.group_name = node.name
            group.nombre_grupo_low = node.name.lower()
            group.last_synced_at = now
            touched.append({"table": GROUPS_TABLE, "id": group.id})

        user_folder = self.db.query(models.CarpetaUsuario).filter_by(
            id_carpeta_drive=node.id, administrador=owner_email
        ).first()
        if user_folder:
            user_folder.nombre_carpeta = node.name
            user_folder.last_synced_at = now
            touched.append({"table": USER_FOLDERS_TABLE, "id": user_folder.id})

        self.db.commit()
        return touched

    def delete_everywhere(self, file_id: str, owner_email: str) -> Tuple[List[str], List[str]]:
        """
        Deletes the id from the three mirror tables.
        Returns (tables a row was removed from, e-mails of removed user folders).
        """
        tables: List[str] = []
        removed_emails: List[str] = []

        deleted = self.db.query(models.DocumentoAdministrador).filter_by(
            file_id=file_id, administrador=owner_email
        ).delete(synchronize_session=False)
        if deleted:
            tables.append(DOCUMENTS_TABLE)

        deleted = self.db.query(models.GrupoDrive).filter_by(
            folder_id=file_id, administrador=owner_email
        ).delete(synchronize_session=False)
        if deleted:
            tables.append(GROUPS_TABLE)

        user_folders = self.db.query(models.CarpetaUsuario).filter_by(
            id_carpeta_drive=file_id, administrador=owner_email
        ).all()
        for folder in user_folders:
            if folder.correo:
                removed_emails.append(folder.correo)
            self.db.delete(folder)
        if user_folders:
            tables.append(USER_FOLDERS_TABLE)

        self.db.commit()
        return tables, removed_emails

    # --- SHARED ACCESS ---

    def list_shared_access(self, folder_id: str, owner_email: str) -> List[models.GrupoCarpeta]:
        return self.db.query(models.GrupoCarpeta).filter_by(
            carpeta_id=folder_id, administrador=owner_email
        ).all()

    def insert_shared_access(self, folder_id: str, owner_email: str, owner_id: Optional[str],
                             grantee_email: str, role: str) -> bool:
        row = models.GrupoCarpeta(
            user_id=owner_id,
            role=role,
            carpeta_id=folder_id,
            administrador=owner_email,
            usuario_lector=grantee_email,
        )
        _, created = self._insert(
            row,
            lambda: self.db.query(models.GrupoCarpeta).filter_by(
                carpeta_id=folder_id, administrador=owner_email, usuario_lector=grantee_email
            ).first(),
        )
        return created

    def update_shared_access_role(self, grant: models.GrupoCarpeta, role: str) -> None:
        grant.role = role
        self.db.commit()

    def delete_shared_access(self, grant: models.GrupoCarpeta) -> None:
        self.db.delete(grant)
        self.db.commit()
