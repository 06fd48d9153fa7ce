import logging
from typing import Any, Dict, List, Optional

from services.mirror_store import MirrorStore

logger = logging.getLogger("brify_sync.shared_access")

ROLE_MAPPING = {"writer": "editor"}
DEFAULT_ROLE = "lector"


def map_drive_role(role: Optional[str]) -> str:
    return ROLE_MAPPING.get(role or "", DEFAULT_ROLE)


class SharedAccessMirror:
    """
    Mirrors Drive ACL grants of shared folders into grupos_carpetas.
    After reconcile_access the stored grants of a folder equal the non-owner
    user permissions Drive reports for it.
    """

    def __init__(self, store: MirrorStore, drive_service: Any, owner_id: Optional[str] = None):
        self.store = store
        self.drive_service = drive_service
        self.owner_id = owner_id

    def fetch_permissions(self, folder_id: str) -> List[Dict[str, Any]]:
        try:
            return self.drive_service.list_permissions(folder_id) or []
        except Exception as e:
            logger.warning(f"Could not read permissions of folder {folder_id}: {e}")
            return []

    def is_folder_shared(self, folder_id: str) -> bool:
        """A folder is shared when it has more permissions than its owner's."""
        return len(self.fetch_permissions(folder_id)) > 1

    @staticmethod
    def grantees(permissions: List[Dict[str, Any]], owner_email: str) -> Dict[str, str]:
        """grantee e-mail -> internal role"""
        result: Dict[str, str] = {}
        for permission in permissions:
            email = permission.get("emailAddress")
            if permission.get("type") != "user" or permission.get("role") == "owner":
                continue
            if not email or email == owner_email:
                continue
            result[email] = map_drive_role(permission.get("role"))
        return result

    def reconcile_access(self, folder_id: str, owner_email: str,
                         permissions: Optional[List[Dict[str, Any]]] = None) -> Dict[str, int]:
        stats = {"inserted": 0, "updated": 0, "removed": 0}

        if permissions is None:
            permissions = self.fetch_permissions(folder_id)
        if not permissions:
            logger.info(f"No permissions found for folder {folder_id}")
            return stats

        wanted = self.grantees(permissions, owner_email)
        stored = {grant.usuario_lector: grant for grant in self.store.list_shared_access(folder_id, owner_email)}

        for email, role in wanted.items():
            grant = stored.get(email)
            if grant is None:
                if self.store.insert_shared_access(folder_id, owner_email, self.owner_id, email, role):
                    stats["inserted"] += 1
            elif grant.role != role:
                self.store.update_shared_access_role(grant, role)
                stats["updated"] += 1

        for email, grant in stored.items():
            if email not in wanted:
                self.store.delete_shared_access(grant)
                stats["removed"] += 1

        logger.info(
            f"Shared access of folder {folder_id}: {stats['inserted']} inserted, "
            f"{stats['updated']} updated, {stats['removed']} removed"
        )
        return stats
