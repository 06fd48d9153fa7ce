"""
Typed records exchanged by the sync engine.

Drive API responses and database rows are loosely shaped dicts; they are turned
into these records at the I/O boundary so the reconciliation logic never deals
with missing keys.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
FOLDER_TYPE = "folder"


class MalformedDriveEntry(ValueError):
    """A Drive listing entry lacks id, name or mimeType."""
    pass


class SyncState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    DIFFING = "diffing"
    APPLYING = "applying"


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes (SQLite round-trips) are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_drive_time(value: Any) -> Optional[datetime]:
    """Parses Drive RFC 3339 timestamps such as 2024-05-01T10:00:00.000Z."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_aware(value)
    try:
        return ensure_aware(datetime.fromisoformat(str(value).replace("Z", "+00:00")))
    except ValueError:
        return None


def _parse_size(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


@dataclass
class ExtensionSubfolder:
    folder_id: str
    name: str
    extension: str
    owner_email: Optional[str] = None


@dataclass
class DriveNode:
    id: str
    name: str
    mime_type: str
    size: int = 0
    created_time: Optional[datetime] = None
    modified_time: Optional[datetime] = None
    parent_folder_id: Optional[str] = None
    is_folder: bool = False
    extension_tag: Optional[str] = None
    sub_folder_id: Optional[str] = None
    sub_folder_name: Optional[str] = None
    shared: Optional[bool] = None

    @classmethod
    def from_drive(cls, entry: Dict[str, Any], parent_folder_id: Optional[str]) -> "DriveNode":
        """Builds a node from a files.list / files.get entry."""
        if not isinstance(entry, dict):
            raise MalformedDriveEntry(f"Drive entry is not an object: {entry!r}")
        missing = [key for key in ("id", "name", "mimeType") if not entry.get(key)]
        if missing:
            raise MalformedDriveEntry(f"Drive entry {entry.get('id')!r} is missing {', '.join(missing)}")

        is_folder = entry["mimeType"] == FOLDER_MIME_TYPE
        return cls(
            id=entry["id"],
            name=entry["name"],
            mime_type=entry["mimeType"],
            size=0 if is_folder else _parse_size(entry.get("size")),
            created_time=parse_drive_time(entry.get("createdTime")),
            modified_time=parse_drive_time(entry.get("modifiedTime")),
            parent_folder_id=parent_folder_id,
            is_folder=is_folder,
        )

    def tag_extension(self, subfolder: ExtensionSubfolder) -> None:
        self.extension_tag = subfolder.extension
        self.sub_folder_id = subfolder.folder_id
        self.sub_folder_name = subfolder.name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "mimeType": self.mime_type,
            "size": self.size,
            "createdTime": self.created_time.isoformat() if self.created_time else None,
            "modifiedTime": self.modified_time.isoformat() if self.modified_time else None,
            "folderId": self.parent_folder_id,
            "isFolder": self.is_folder,
            "extension": self.extension_tag,
            "subFolderId": self.sub_folder_id,
            "subFolderName": self.sub_folder_name,
            "shared": self.shared,
        }


@dataclass
class MirrorRecord:
    file_id: str
    name: Optional[str]
    type: Optional[str]
    owner_email: Optional[str]
    source: str
    extension: str = "general"
    parent_folder_id: Optional[str] = None
    created_at: Optional[datetime] = None
    last_synced_at: Optional[datetime] = None
    row_id: Optional[int] = None

    @property
    def is_folder(self) -> bool:
        return self.type in (FOLDER_TYPE, FOLDER_MIME_TYPE)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file_id": self.file_id,
            "file_name": self.name,
            "file_type": self.type,
            "administrador": self.owner_email,
            "source": self.source,
            "extension": self.extension,
            "parent_folder_id": self.parent_folder_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "last_synced_at": self.last_synced_at.isoformat() if self.last_synced_at else None,
        }


@dataclass
class UpdateItem:
    drive_node: DriveNode
    mirror_record: MirrorRecord

    def to_dict(self) -> Dict[str, Any]:
        return {"driveFile": self.drive_node.to_dict(), "dbFile": self.mirror_record.to_dict()}


@dataclass
class Discrepancies:
    to_add: List[DriveNode] = field(default_factory=list)
    to_update: List[UpdateItem] = field(default_factory=list)
    to_remove: List[MirrorRecord] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.to_add) + len(self.to_update) + len(self.to_remove)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "toAdd": [node.to_dict() for node in self.to_add],
            "toUpdate": [item.to_dict() for item in self.to_update],
            "toRemove": [record.to_dict() for record in self.to_remove],
        }


@dataclass
class SyncActions:
    """The subset of discrepancies the caller chose to apply."""
    add_files: List[DriveNode] = field(default_factory=list)
    update_files: List[UpdateItem] = field(default_factory=list)
    remove_files: List[MirrorRecord] = field(default_factory=list)

    @classmethod
    def from_discrepancies(cls, discrepancies: Discrepancies) -> "SyncActions":
        return cls(
            add_files=list(discrepancies.to_add),
            update_files=list(discrepancies.to_update),
            remove_files=list(discrepancies.to_remove),
        )


@dataclass
class SyncItemResult:
    success: bool
    item: Any
    table: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    extension: Optional[str] = None
    error: Optional[str] = None
    skipped: Optional[str] = None
    content_processed: Optional[bool] = None
    embedding_generated: Optional[bool] = None
    tokens_used: Optional[int] = None
    details: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        item = self.item.to_dict() if hasattr(self.item, "to_dict") else self.item
        payload = {"success": self.success, "file": item}
        for key in ("table", "data", "extension", "error", "skipped",
                    "content_processed", "embedding_generated", "tokens_used"):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        if self.details:
            payload["details"] = self.details
        return payload


@dataclass
class SyncResult:
    added: List[SyncItemResult] = field(default_factory=list)
    updated: List[SyncItemResult] = field(default_factory=list)
    removed: List[SyncItemResult] = field(default_factory=list)
    errors: List[SyncItemResult] = field(default_factory=list)

    def collect(self, target: List[SyncItemResult], results: List[SyncItemResult]) -> None:
        """Routes successes to target and failures to errors."""
        target.extend(r for r in results if r.success)
        self.errors.extend(r for r in results if not r.success)

    def summary(self) -> Dict[str, int]:
        return {
            "added": len(self.added),
            "updated": len(self.updated),
            "removed": len(self.removed),
            "errors": len(self.errors),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "added": [r.to_dict() for r in self.added],
            "updated": [r.to_dict() for r in self.updated],
            "removed": [r.to_dict() for r in self.removed],
            "errors": [r.to_dict() for r in self.errors],
            "summary": self.summary(),
        }
