import base64
import json
import os
import uuid
import datetime
from typing import List, Optional, Dict, Any

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_ROOT = os.path.dirname(BASE_DIR)
DB_FILE = os.path.join(PROJECT_ROOT, "mock_drive_db.json")

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"


def _now_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat().replace("+00:00", "Z")


def _empty_db() -> Dict[str, Any]:
    return {
        "files": {},
        "folders": {"root": {"id": "root", "name": "My Drive", "mimeType": FOLDER_MIME_TYPE, "parents": []}},
        "permissions": {},
        "contents": {},
    }


class GoogleDriveService:
    """
    File-backed stand-in for the Drive v3 client (USE_MOCK_DRIVE=true and tests).
    Exposes the same methods the sync engine calls on GoogleDriveRealService.
    """

    def __init__(self, db_file: Optional[str] = None):
        self.db_file = db_file or DB_FILE
        self._load_db()

    def _load_db(self):
        if os.path.exists(self.db_file):
            with open(self.db_file, "r") as f:
                try:
                    self.db = json.load(f)
                except json.JSONDecodeError:
                    self.db = _empty_db()
        else:
            self.db = _empty_db()
            self._save_db()

        for key, default in _empty_db().items():
            self.db.setdefault(key, default)

    def _save_db(self):
        with open(self.db_file, "w") as f:
            json.dump(self.db, f, indent=2)

    def _find(self, file_id: str) -> Optional[Dict[str, Any]]:
        return self.db["folders"].get(file_id) or self.db["files"].get(file_id)

    def create_folder(self, name: str, parent_id: str = "root", folder_id: Optional[str] = None) -> Dict[str, Any]:
        self._load_db()
        folder_id = folder_id or str(uuid.uuid4())
        now = _now_iso()

        folder = {
            "id": folder_id,
            "name": name,
            "mimeType": FOLDER_MIME_TYPE,
            "parents": [parent_id],
            "createdTime": now,
            "modifiedTime": now,
            "webViewLink": f"https://mock-drive.google.com/folders/{folder_id}"
        }
        self.db["folders"][folder_id] = folder
        self.db["permissions"].setdefault(folder_id, [])
        self._save_db()
        return folder

    def upload_file(
        self,
        file_content: bytes,
        name: str,
        mime_type: str,
        parent_id: str = "root",
        file_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        self._load_db()
        file_id = file_id or str(uuid.uuid4())
        now = _now_iso()

        file_meta = {
            "id": file_id,
            "name": name,
            "mimeType": mime_type,
            "parents": [parent_id],
            "size": str(len(file_content)),
            "createdTime": now,
            "modifiedTime": now,
            "webViewLink": f"https://mock-drive.google.com/file/d/{file_id}/view"
        }
        self.db["files"][file_id] = file_meta
        self.db["contents"][file_id] = base64.b64encode(file_content).decode("ascii")
        self.db["permissions"].setdefault(file_id, [])
        self._save_db()
        return file_meta

    def list_files(self, folder_id: str = "root", page_size: int = 1000) -> List[Dict[str, Any]]:
        self._load_db()
        items = []
        for f in self.db["folders"].values():
            if folder_id in f.get("parents", []):
                items.append(f)
        for f in self.db["files"].values():
            if folder_id in f.get("parents", []):
                items.append(f)
        return items

    def get_file(self, file_id: str) -> Optional[Dict[str, Any]]:
        self._load_db()
        return self._find(file_id)

    def download_file(self, file_id: str) -> bytes:
        self._load_db()
        encoded = self.db["contents"].get(file_id)
        if encoded is None:
            raise Exception(f"HttpError 404 when downloading {file_id}: File not found")
        return base64.b64decode(encoded)

    def update_file_metadata(self, file_id: str, new_name: str) -> Dict[str, Any]:
        self._load_db()
        item = self._find(file_id)
        if not item:
            raise Exception("File not found")
        item["name"] = new_name
        item["modifiedTime"] = _now_iso()
        self._save_db()
        return item

    def delete_file(self, file_id: str) -> None:
        self._load_db()
        self.db["folders"].pop(file_id, None)
        self.db["files"].pop(file_id, None)
        self.db["contents"].pop(file_id, None)
        self.db["permissions"].pop(file_id, None)
        self._save_db()

    def list_permissions(self, file_id: str) -> List[Dict[str, Any]]:
        self._load_db()
        return list(self.db.get("permissions", {}).get(file_id, []))

    def add_permission(self, file_id: str, role: str, email: str, type: str = "user") -> Dict[str, Any]:
        self._load_db()
        permission = {
            "id": str(uuid.uuid4()),
            "role": role,
            "emailAddress": email,
            "type": type,
        }
        self.db.setdefault("permissions", {}).setdefault(file_id, []).append(permission)
        self._save_db()
        return permission

    def remove_permission(self, file_id: str, permission_id: str) -> None:
        self._load_db()
        permissions = self.db.setdefault("permissions", {}).setdefault(file_id, [])
        self.db["permissions"][file_id] = [p for p in permissions if p.get("id") != permission_id]
        self._save_db()
