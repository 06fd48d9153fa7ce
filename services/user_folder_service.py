import logging
import uuid
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import models

logger = logging.getLogger("brify_sync.user_folders")

FOLDER_SYNC_SOURCES = ("folder_sync", "folder_creation")
CLIENT_STATE = "Entrenador"


class UserFolderService:
    """
    Keeps the users table in step with per-user Drive folders: a folder named
    after an e-mail turns that e-mail into a client account, and removing the
    last such folder removes accounts this sync created.
    """

    def __init__(self, db: Session):
        self.db = db

    def register_user_from_folder(self, email: str, owner_email: Optional[str],
                                  extension: Optional[str] = None) -> Dict[str, Any]:
        existing = self.db.query(models.User).filter_by(email=email).first()
        if existing:
            needs_update = not existing.cliente or existing.estado_interaccion != CLIENT_STATE
            if needs_update:
                existing.cliente = True
                existing.estado_interaccion = CLIENT_STATE
                self.db.commit()
                logger.info(f"User {email} updated to cliente=true, estado_interaccion={CLIENT_STATE}")
            return {"success": True, "created": False, "updated": needs_update}

        user = models.User(
            id=str(uuid.uuid4()),
            email=email,
            name=email.split("@")[0],
            cliente=True,
            estado_interaccion=CLIENT_STATE,
            is_active=True,
            registered_via="folder_sync",
            used_storage_bytes=0,
            admin=False,
            onboarding_status="completed",
        )
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info(f"User {email} was registered concurrently")
            return {"success": True, "created": False, "updated": False}

        logger.info(f"User {email} created from folder of {owner_email} ({extension or 'general'})")
        return {"success": True, "created": True, "updated": False}

    def remove_user_from_folder(self, email: str, owner_email: str) -> Dict[str, Any]:
        user = self.db.query(models.User).filter_by(email=email).first()
        if not user:
            return {"success": True, "deleted": False, "message": "user does not exist"}

        other_folders = (
            self.db.query(models.CarpetaUsuario)
            .filter(models.CarpetaUsuario.correo == email)
            .filter(models.CarpetaUsuario.administrador != owner_email)
            .count()
        )
        if other_folders:
            logger.info(f"User {email} has folders under other administrators, keeping it")
            return {"success": True, "deleted": False, "message": "user has other folders"}

        if user.registered_via not in FOLDER_SYNC_SOURCES:
            return {"success": True, "deleted": False, "message": "user not created by folder sync"}

        self.db.delete(user)
        self.db.commit()
        logger.info(f"User {email} deleted (created by folder sync)")
        return {"success": True, "deleted": True}

    def sync_user_folders_with_users(self) -> Dict[str, int]:
        stats = {"processed": 0, "created": 0, "updated": 0, "errors": 0}

        folders = self.db.query(models.CarpetaUsuario).all()
        for folder in folders:
            if not folder.correo:
                continue
            try:
                result = self.register_user_from_folder(folder.correo, folder.administrador, folder.extension)
            except Exception as e:
                self.db.rollback()
                stats["errors"] += 1
                logger.error(f"Registering user for folder {folder.id_carpeta_drive} failed: {e}")
                continue
            stats["processed"] += 1
            if result.get("created"):
                stats["created"] += 1
            if result.get("updated"):
                stats["updated"] += 1

        logger.info(
            f"User folder sync: {stats['processed']} processed, {stats['created']} created, "
            f"{stats['updated']} updated, {stats['errors']} errors"
        )
        return stats
