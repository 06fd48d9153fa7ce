import logging
from typing import Any, Dict, List, Optional, Set

from config import config
from services.sync_models import DriveNode, ExtensionSubfolder, MalformedDriveEntry

logger = logging.getLogger("brify_sync.walker")


class DriveTreeWalker:
    """
    Enumerates the live Drive tree below a folder as DriveNodes.

    Failures are contained per folder: a folder that cannot be listed yields no
    children, a subfolder whose descent fails is skipped, and entries without
    id/name/mimeType are quarantined. None of them abort the walk.
    """

    def __init__(self, drive_service: Any, page_size: Optional[int] = None):
        self.drive_service = drive_service
        self.page_size = page_size or config.DRIVE_LIST_PAGE_SIZE

    def _list_children(self, folder_id: str) -> List[Dict[str, Any]]:
        try:
            return self.drive_service.list_files(folder_id, page_size=self.page_size) or []
        except Exception as e:
            logger.error(f"Listing folder {folder_id} failed: {e}")
            return []

    def _refresh_metadata(self, entry: Dict[str, Any]) -> Dict[str, Any]:
        try:
            detail = self.drive_service.get_file(entry["id"])
        except Exception as e:
            logger.warning(f"Metadata lookup for {entry.get('id')} failed, using listing data: {e}")
            return entry
        if not detail:
            return entry
        merged = dict(entry)
        merged.update({k: v for k, v in detail.items() if v is not None})
        return merged

    def list_tree(self, folder_id: str, recursive: bool = True) -> List[DriveNode]:
        visited: Set[str] = set()
        return self._walk(folder_id, recursive, visited)

    def _walk(self, folder_id: str, recursive: bool, visited: Set[str]) -> List[DriveNode]:
        if folder_id in visited:
            return []
        visited.add(folder_id)

        nodes: List[DriveNode] = []
        for entry in self._list_children(folder_id):
            try:
                node = DriveNode.from_drive(entry, parent_folder_id=folder_id)
            except MalformedDriveEntry as e:
                logger.warning(f"Skipping malformed entry in folder {folder_id}: {e}")
                continue

            if node.is_folder:
                nodes.append(node)
                if recursive:
                    try:
                        nodes.extend(self._walk(node.id, recursive, visited))
                    except Exception as e:
                        logger.error(f"Descent into folder {node.id} ({node.name}) failed: {e}")
                continue

            detailed = self._refresh_metadata(entry)
            try:
                nodes.append(DriveNode.from_drive(detailed, parent_folder_id=folder_id))
            except MalformedDriveEntry:
                nodes.append(node)

        return nodes

    def collect_live_nodes(
        self, root_folder_id: str, subfolders: List[ExtensionSubfolder]
    ) -> List[DriveNode]:
        """
        Root folder scanned one level deep, each extension subfolder scanned
        recursively and tagged with its extension. Duplicates keep the first
        occurrence.
        """
        collected: List[DriveNode] = list(self.list_tree(root_folder_id, recursive=False))

        for subfolder in subfolders:
            try:
                scanned = self.list_tree(subfolder.folder_id, recursive=True)
            except Exception as e:
                logger.error(f"Scan of subfolder {subfolder.name} ({subfolder.folder_id}) failed: {e}")
                continue
            for node in scanned:
                node.tag_extension(subfolder)
            collected.extend(scanned)

        seen: Set[str] = set()
        unique: List[DriveNode] = []
        for node in collected:
            if node.id in seen:
                continue
            seen.add(node.id)
            unique.append(node)

        logger.info(
            f"Collected {len(unique)} live nodes ({len(collected) - len(unique)} duplicates dropped) "
            f"from root {root_folder_id} and {len(subfolders)} subfolders"
        )
        return unique
