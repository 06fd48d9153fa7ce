import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set

from services.sync_models import (
    Discrepancies,
    DriveNode,
    ExtensionSubfolder,
    MirrorRecord,
    UpdateItem,
    ensure_aware,
)

logger = logging.getLogger("brify_sync.reconciliation")


class ReconciliationEngine:
    """
    Diffs the live Drive tree against the mirror snapshot.

    Mirror rows that look like administrator infrastructure (the root folder,
    registered extension subfolders and rows an administrator registered
    directly under them) are never proposed for removal, so a listing failure
    cannot wipe them.
    """

    def __init__(
        self,
        root_folder_id: Optional[str],
        subfolders: Iterable[ExtensionSubfolder],
        compare_created_at: bool = False,
    ):
        self.root_folder_id = root_folder_id
        self.subfolder_ids: Set[str] = {s.folder_id for s in subfolders if s.folder_id}
        self.compare_created_at = compare_created_at

    def reference_time(self, record: MirrorRecord) -> Optional[datetime]:
        if self.compare_created_at:
            return ensure_aware(record.created_at)
        return ensure_aware(record.last_synced_at or record.created_at)

    def needs_update(self, node: DriveNode, record: MirrorRecord) -> bool:
        reference = self.reference_time(record)
        modified = ensure_aware(node.modified_time)
        if modified and reference and modified > reference:
            return True
        if record.name != node.name:
            return True
        if record.type != node.mime_type:
            return True
        return False

    def is_protected(self, record: MirrorRecord) -> bool:
        try:
            if self.root_folder_id and record.file_id == self.root_folder_id:
                return True
            if record.file_id in self.subfolder_ids:
                return True
            if record.parent_folder_id and record.parent_folder_id in self.subfolder_ids:
                return True
            if self.root_folder_id and record.parent_folder_id == self.root_folder_id:
                return True
            return False
        except Exception as e:
            logger.error(f"Protection check failed for {getattr(record, 'file_id', None)}, keeping it: {e}")
            return True

    def diff(self, live_nodes: List[DriveNode], mirror_records: List[MirrorRecord]) -> Discrepancies:
        mirror_by_id: Dict[str, MirrorRecord] = {}
        for record in mirror_records:
            mirror_by_id.setdefault(record.file_id, record)

        live_by_id: Dict[str, DriveNode] = {}
        for node in live_nodes:
            live_by_id.setdefault(node.id, node)

        result = Discrepancies()
        for node_id, node in live_by_id.items():
            record = mirror_by_id.get(node_id)
            if record is None:
                result.to_add.append(node)
            elif self.needs_update(node, record):
                result.to_update.append(UpdateItem(drive_node=node, mirror_record=record))

        protected = 0
        for file_id, record in mirror_by_id.items():
            if file_id in live_by_id:
                continue
            if self.is_protected(record):
                protected += 1
                continue
            result.to_remove.append(record)

        logger.info(
            f"Diff: {len(result.to_add)} to add, {len(result.to_update)} to update, "
            f"{len(result.to_remove)} to remove, {protected} protected"
        )
        return result
