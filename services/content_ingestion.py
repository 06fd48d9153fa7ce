import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from services.content_extractor import FileContentExtractor
from services.mirror_store import DOCUMENTS_TABLE, MirrorStore
from services.routine_service import RoutineService, is_excel_file
from services.sync_models import DriveNode, SyncItemResult
from services.token_usage_service import (
    BYTES_PER_EMBEDDING_VALUE,
    SYNC_EMBEDDING_OPERATION,
    TokenUsageService,
    estimate_tokens,
)
from utils.structured_logging import sync_logger

logger = logging.getLogger("brify_sync.ingestion")


def clean_name(name: str) -> str:
    return re.sub(r"[^a-z0-9]", "_", (name or "").lower())


class ContentIngestionPipeline:
    """
    Turns a newly discovered Drive file into a documentos_administrador row:
    download, text extraction, embedding, token and storage accounting.

    Download or extraction problems never fail the item; the row is stored
    with an error description as content and no embedding.
    """

    def __init__(
        self,
        store: MirrorStore,
        drive_service: Any,
        extractor: Optional[FileContentExtractor],
        embedder: Optional[Any],
        token_usage: TokenUsageService,
        user_id: Optional[str],
        owner_email: str,
        routine_service: Optional[RoutineService] = None,
    ):
        self.store = store
        self.drive_service = drive_service
        self.extractor = extractor or FileContentExtractor()
        self.embedder = embedder
        self.token_usage = token_usage
        self.user_id = user_id
        self.owner_email = owner_email
        self.routine_service = routine_service

    def _parent_folder_name(self, folder_id: Optional[str]) -> Optional[str]:
        if not folder_id:
            return None
        try:
            info = self.drive_service.get_file(folder_id)
        except Exception as e:
            logger.warning(f"Could not read name of folder {folder_id}: {e}")
            return None
        return (info or {}).get("name")

    def _embed(self, node: DriveNode, text: str) -> Optional[List[float]]:
        if self.embedder is None:
            logger.warning(f"No embedding service configured, storing {node.name} without embedding")
            return None
        if not text.strip():
            return None
        try:
            return self.embedder.embed(text)
        except Exception as e:
            logger.error(f"Embedding generation failed for {node.name}: {e}")
            return None

    def ingest(self, node: DriveNode, extension: str = "general") -> SyncItemResult:
        folder_name = self._parent_folder_name(node.parent_folder_id)

        raw: Optional[bytes] = None
        content = ""
        embedding: Optional[List[float]] = None
        file_size = node.size
        tokens_used = 0

        try:
            raw = self.drive_service.download_file(node.id)
            file_size = len(raw)
            if self.extractor.is_supported(node.name, node.mime_type):
                content = self.extractor.extract(raw, node.name, node.mime_type)
                embedding = self._embed(node, content)
                if embedding is not None:
                    tokens_used = estimate_tokens(content)
            else:
                content = f"Archivo {node.name} - Tipo: {node.mime_type} - No compatible para extracción de texto"
        except Exception as e:
            logger.error(f"Processing {node.name} failed: {e}")
            content = f"Error procesando archivo: {e}"
            embedding = None

        metadata: Dict[str, Any] = {
            "source": "sync",
            "syncedAt": datetime.now(timezone.utc).isoformat(),
            "file_id": node.id,
            "file_type": node.mime_type,
            "file_size": file_size,
            "is_chunked": False,
            "original_length": len(content),
            "chunks_count": 1,
            "tokens_used": tokens_used,
            "processed_successfully": embedding is not None,
        }

        try:
            row, created = self.store.insert_document(
                file_id=node.id,
                name=node.name,
                file_type=node.mime_type,
                file_size=file_size,
                administrador=self.owner_email,
                servicio=extension,
                carpeta_actual=node.parent_folder_id,
                nombre_carpeta_actual=folder_name,
                nombre_limpio=clean_name(node.name),
                telegram_id=None,
                content=content,
                embedding=embedding,
                metadata_=metadata,
                pendiente=False,
            )
        except Exception as e:
            self.store.db.rollback()
            sync_logger.error("ingest", f"Inserting document {node.name} failed", error=e,
                              file_id=node.id, table=DOCUMENTS_TABLE, owner=self.owner_email)
            return SyncItemResult(success=False, item=node, error=str(e))

        data = {"id": row.id if row else None, "file_id": node.id}
        if not created:
            return SyncItemResult(success=True, item=node, table=DOCUMENTS_TABLE, data=data,
                                  extension=extension, skipped="already_exists")

        if tokens_used:
            self._track_tokens(node, tokens_used)

        if raw is not None and self.routine_service and is_excel_file(node.name, node.mime_type):
            try:
                self.routine_service.process_spreadsheet(node, self.owner_email, content=raw)
            except Exception as e:
                self.store.db.rollback()
                logger.error(f"Routine registration for {node.name} failed: {e}")

        if embedding:
            try:
                self.token_usage.increment_storage(self.user_id, len(embedding) * BYTES_PER_EMBEDDING_VALUE)
            except Exception as e:
                self.store.db.rollback()
                sync_logger.error("ingest", f"Storage accounting failed for {node.name}", error=e,
                                  file_id=node.id, table="users", owner=self.owner_email)
                return SyncItemResult(
                    success=False, item=node, table=DOCUMENTS_TABLE, data=data, extension=extension,
                    error=f"Storage accounting failed: {e}", embedding_generated=True, tokens_used=tokens_used,
                )

        return SyncItemResult(
            success=True,
            item=node,
            table=DOCUMENTS_TABLE,
            data=data,
            extension=extension,
            content_processed=len(content) > 0,
            embedding_generated=embedding is not None,
            tokens_used=tokens_used,
        )

    def _track_tokens(self, node: DriveNode, tokens: int) -> None:
        try:
            self.token_usage.track_usage(self.user_id, tokens, SYNC_EMBEDDING_OPERATION)
        except Exception as e:
            self.store.db.rollback()
            logger.error(f"Tracking {tokens} tokens for {node.name} failed: {e}")
