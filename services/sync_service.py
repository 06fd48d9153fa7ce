import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

import models
from config import config
from services.content_extractor import FileContentExtractor
from services.content_ingestion import ContentIngestionPipeline
from services.drive_tree_walker import DriveTreeWalker
from services.embedding_service import EmbeddingConfigurationError, EmbeddingService
from services.google_auth import GoogleAuthService
from services.google_drive_mock import GoogleDriveService
from services.google_drive_real import SCOPES, GoogleDriveRealService
from services.mirror_store import GROUPS_TABLE, USER_FOLDERS_TABLE, MirrorStore
from services.reconciliation_engine import ReconciliationEngine
from services.routine_service import RoutineService
from services.shared_access_service import SharedAccessMirror
from services.sync_models import (
    Discrepancies,
    DriveNode,
    ExtensionSubfolder,
    MirrorRecord,
    SyncActions,
    SyncItemResult,
    SyncResult,
    SyncState,
    UpdateItem,
)
from services.token_usage_service import TokenUsageService
from services.user_folder_service import UserFolderService
from utils.structured_logging import sync_logger

logger = logging.getLogger("brify_sync.sync")

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class SyncConfigurationError(Exception):
    """The sync cannot start: missing e-mail, user, credentials or root folder."""
    pass


class SyncNotInitializedError(Exception):
    """An operation was called before a successful initialize()."""
    pass


def is_valid_email(text: Optional[str]) -> bool:
    return bool(text and EMAIL_PATTERN.match(text))


class SyncService:
    """
    Reconciles an administrator's Drive tree with the Brify mirror tables.

    Usage:
        service = SyncService(db, user_email="admin@brify.ai")
        service.initialize()
        discrepancies = service.detect_discrepancies()
        result = service.apply_sync_actions(SyncActions.from_discrepancies(discrepancies))
    """

    def __init__(
        self,
        db: Session,
        drive_service: Optional[Any] = None,
        user_email: Optional[str] = None,
        user_id: Optional[str] = None,
        extractor: Optional[FileContentExtractor] = None,
        embedder: Optional[Any] = None,
    ):
        self.db = db
        self.drive_service = drive_service
        self.user_email = user_email
        self.user_id = user_id
        self.extractor = extractor
        self.embedder = embedder

        self.store = MirrorStore(db)
        self.token_usage = TokenUsageService(db)
        self.user_folders = UserFolderService(db)

        self.state = SyncState.UNINITIALIZED
        self.root_folder_id: Optional[str] = None
        self.subfolders: List[ExtensionSubfolder] = []
        self.engine: Optional[ReconciliationEngine] = None

    # --- SETUP ---

    def get_drive_service_for_user(self, user_id: str):
        """Drive client authenticated with the tokens the user granted."""
        if config.USE_MOCK_DRIVE:
            return GoogleDriveService()

        credentials = self.db.query(models.UserCredentials).filter_by(user_id=user_id).first()
        if not credentials:
            raise SyncConfigurationError(
                "No Google Drive credentials found. Connect your Google Drive account first."
            )
        if not credentials.google_refresh_token and not credentials.google_access_token:
            raise SyncConfigurationError(
                "Google Drive credentials are incomplete. Reconnect your Google Drive account."
            )

        auth = GoogleAuthService(
            scopes=SCOPES,
            access_token=credentials.google_access_token,
            refresh_token=credentials.google_refresh_token,
        )
        drive = GoogleDriveRealService(auth_service=auth)
        if not drive.service:
            raise SyncConfigurationError("Could not build a Google Drive client from the stored credentials")
        return drive

    def _build_embedder(self):
        try:
            return EmbeddingService()
        except EmbeddingConfigurationError as e:
            logger.warning(f"Embeddings disabled: {e}")
            return None

    def initialize(self, user_email: Optional[str] = None) -> bool:
        self.state = SyncState.UNINITIALIZED
        if user_email:
            self.user_email = user_email
        if not self.user_email:
            raise SyncConfigurationError("The user e-mail is required to initialize the sync service")

        self.state = SyncState.INITIALIZING
        try:
            if not self.user_id:
                user = self.db.query(models.User).filter_by(email=self.user_email).first()
                if not user:
                    raise SyncConfigurationError(f"User {self.user_email} is not registered")
                self.user_id = user.id

            if self.drive_service is None:
                self.drive_service = self.get_drive_service_for_user(self.user_id)

            self.root_folder_id = self.store.load_root_folder(self.user_email)
            if not self.root_folder_id:
                raise SyncConfigurationError(
                    f"No root folder registered for administrator {self.user_email}. Make sure the plan is active."
                )

            self.subfolders = self.store.load_subfolders(self.user_email)
            if not self.subfolders:
                logger.warning(f"No extension subfolders registered for {self.user_email}")

            self.engine = ReconciliationEngine(
                self.root_folder_id,
                self.subfolders,
                compare_created_at=config.SYNC_COMPARE_CREATED_AT,
            )
        except Exception:
            self.state = SyncState.UNINITIALIZED
            raise

        self.state = SyncState.READY
        sync_logger.info(
            "initialize",
            message=f"Sync initialized with {len(self.subfolders)} extension subfolders",
            file_id=self.root_folder_id,
            owner=self.user_email,
        )
        return True

    def _require_ready(self):
        if self.state != SyncState.READY:
            raise SyncNotInitializedError("SyncService is not initialized. Call initialize() first.")

    # --- DETECTION ---

    def detect_discrepancies(self) -> Discrepancies:
        self._require_ready()
        self.state = SyncState.DIFFING
        try:
            walker = DriveTreeWalker(self.drive_service)
            live_nodes = walker.collect_live_nodes(self.root_folder_id, self.subfolders)
            mirror_records = self.store.snapshot(self.user_email)
            discrepancies = self.engine.diff(live_nodes, mirror_records)
        finally:
            self.state = SyncState.READY

        sync_logger.info(
            "detect",
            message="Discrepancies detected",
            owner=self.user_email,
            to_add=len(discrepancies.to_add),
            to_update=len(discrepancies.to_update),
            to_remove=len(discrepancies.to_remove),
        )
        return discrepancies

    def get_sync_stats(self) -> Dict[str, Any]:
        discrepancies = self.detect_discrepancies()
        return {
            "totalDiscrepancies": discrepancies.total,
            "toAdd": len(discrepancies.to_add),
            "toRemove": len(discrepancies.to_remove),
            "toUpdate": len(discrepancies.to_update),
            "lastSync": datetime.now(timezone.utc).isoformat(),
        }

    # --- APPLY ---

    def _extension_for(self, node: DriveNode) -> str:
        if node.extension_tag:
            return node.extension_tag
        if node.parent_folder_id and node.parent_folder_id != self.root_folder_id:
            for subfolder in self.subfolders:
                if subfolder.folder_id == node.parent_folder_id:
                    return subfolder.extension
            registered = self.store.find_subfolder(node.parent_folder_id)
            if registered:
                return registered.extension
        return "general"

    def _sharing(self) -> SharedAccessMirror:
        return SharedAccessMirror(self.store, self.drive_service, owner_id=self.user_id)

    def _ingestion(self) -> ContentIngestionPipeline:
        if self.embedder is None:
            self.embedder = self._build_embedder()
        return ContentIngestionPipeline(
            store=self.store,
            drive_service=self.drive_service,
            extractor=self.extractor,
            embedder=self.embedder,
            token_usage=self.token_usage,
            user_id=self.user_id,
            owner_email=self.user_email,
            routine_service=RoutineService(self.db, self.drive_service),
        )

    def _insert_group(self, node: DriveNode, extension: str) -> SyncItemResult:
        row, created = self.store.insert_group(
            owner_id=self.user_id,
            folder_id=node.id,
            administrador=self.user_email,
            extension=extension,
            group_name=node.name,
            nombre_grupo_low=node.name.lower(),
        )
        return SyncItemResult(
            success=True,
            item=node,
            table=GROUPS_TABLE,
            data={"id": row.id if row else None, "folder_id": node.id},
            extension=extension,
            skipped=None if created else "already_exists",
        )

    def _insert_user_folder(self, node: DriveNode, extension: str) -> SyncItemResult:
        row, created = self.store.insert_user_folder(
            correo=node.name,
            id_carpeta_drive=node.id,
            administrador=self.user_email,
            extension=extension,
            nombre_carpeta=node.name,
        )
        if created:
            try:
                self.user_folders.register_user_from_folder(node.name, self.user_email, extension)
            except Exception as e:
                self.db.rollback()
                logger.warning(f"Registering user {node.name} failed: {e}")
        return SyncItemResult(
            success=True,
            item=node,
            table=USER_FOLDERS_TABLE,
            data={"id": row.id if row else None, "id_carpeta_drive": node.id},
            extension=extension,
            skipped=None if created else "already_exists",
        )

    def _add_folder(self, node: DriveNode, sharing: SharedAccessMirror) -> SyncItemResult:
        extension = self._extension_for(node)
        permissions = sharing.fetch_permissions(node.id)
        node.shared = len(permissions) > 1

        if extension in config.ALWAYS_GROUP_EXTENSIONS:
            result = self._insert_group(node, extension)
        elif is_valid_email(node.name):
            result = self._insert_user_folder(node, extension)
        else:
            result = self._insert_group(node, extension)

        if node.shared:
            try:
                sharing.reconcile_access(node.id, self.user_email, permissions=permissions)
            except Exception as e:
                self.db.rollback()
                logger.error(f"Mirroring shared access of {node.name} failed: {e}")
        return result

    def _add_files(self, nodes: List[DriveNode]) -> List[SyncItemResult]:
        results: List[SyncItemResult] = []
        sharing = self._sharing()
        ingestion = None

        for node in nodes:
            try:
                if node.is_folder:
                    results.append(self._add_folder(node, sharing))
                    continue
                if ingestion is None:
                    ingestion = self._ingestion()
                results.append(ingestion.ingest(node, self._extension_for(node)))
            except Exception as e:
                self.db.rollback()
                sync_logger.error("add", f"Adding {node.name} failed", error=e, file_id=node.id, owner=self.user_email)
                results.append(SyncItemResult(success=False, item=node, error=str(e)))
        return results

    def _update_files(self, items: List[UpdateItem]) -> List[SyncItemResult]:
        results: List[SyncItemResult] = []
        for item in items:
            node = item.drive_node
            try:
                touched = self.store.update_from_drive(node, self.user_email)
                results.append(SyncItemResult(
                    success=True,
                    item=item,
                    extension=self._extension_for(node),
                    details=touched,
                ))
            except Exception as e:
                self.db.rollback()
                sync_logger.error("update", f"Updating {node.name} failed", error=e, file_id=node.id, owner=self.user_email)
                results.append(SyncItemResult(success=False, item=item, error=str(e)))
        return results

    def _remove_files(self, records: List[MirrorRecord]) -> List[SyncItemResult]:
        results: List[SyncItemResult] = []
        for record in records:
            if self.engine.is_protected(record):
                logger.info(f"Skipping removal of protected item {record.file_id}")
                continue
            try:
                tables, removed_emails = self.store.delete_everywhere(record.file_id, self.user_email)
            except Exception as e:
                self.db.rollback()
                sync_logger.error("remove", f"Removing {record.name} failed", error=e,
                                  file_id=record.file_id, owner=self.user_email)
                results.append(SyncItemResult(success=False, item=record, error=str(e)))
                continue

            for email in removed_emails:
                try:
                    self.user_folders.remove_user_from_folder(email, self.user_email)
                except Exception as e:
                    self.db.rollback()
                    logger.error(f"Removing user {email} after folder deletion failed: {e}")

            results.append(SyncItemResult(
                success=True,
                item=record,
                details=[{"table": table} for table in tables],
            ))
        return results

    def apply_sync_actions(self, actions: SyncActions) -> SyncResult:
        """
        Applies the selected actions in order add, update, remove, then
        re-registers users of user folders and checks stored routines.
        Item failures are collected in result.errors; nothing is rolled back.
        """
        self._require_ready()
        self.state = SyncState.APPLYING
        result = SyncResult()
        try:
            if actions.add_files:
                logger.info(f"Adding {len(actions.add_files)} new items from Drive")
                result.collect(result.added, self._add_files(actions.add_files))

            if actions.update_files:
                logger.info(f"Updating {len(actions.update_files)} modified items")
                result.collect(result.updated, self._update_files(actions.update_files))

            if actions.remove_files:
                logger.info(f"Removing {len(actions.remove_files)} items no longer in Drive")
                result.collect(result.removed, self._remove_files(actions.remove_files))

            try:
                self.user_folders.sync_user_folders_with_users()
            except Exception as e:
                self.db.rollback()
                logger.error(f"User folder sync failed: {e}")
                result.errors.append(SyncItemResult(
                    success=False, item=None, error=f"Error syncing users: {e}"
                ))

            try:
                RoutineService(self.db, self.drive_service).check_existing_routines(self.user_email)
            except Exception as e:
                self.db.rollback()
                logger.error(f"Routine check failed: {e}")
                result.errors.append(SyncItemResult(
                    success=False, item=None, error=f"Error checking existing routines: {e}"
                ))
        finally:
            self.state = SyncState.READY

        sync_logger.info(
            "apply",
            message="Sync completed",
            owner=self.user_email,
            **result.summary(),
        )
        return result
