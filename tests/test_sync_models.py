from datetime import datetime, timezone

import pytest

from services.sync_models import (
    FOLDER_MIME_TYPE,
    Discrepancies,
    DriveNode,
    MalformedDriveEntry,
    MirrorRecord,
    SyncItemResult,
    SyncResult,
    ensure_aware,
    parse_drive_time,
)


def test_from_drive_parses_listing_entry():
    node = DriveNode.from_drive(
        {
            "id": "F1",
            "name": "doc.pdf",
            "mimeType": "application/pdf",
            "size": "2048",
            "createdTime": "2024-05-01T10:00:00.000Z",
            "modifiedTime": "2024-05-02T11:30:00.000Z",
        },
        parent_folder_id="R",
    )

    assert node.id == "F1"
    assert node.size == 2048
    assert node.is_folder is False
    assert node.parent_folder_id == "R"
    assert node.modified_time == datetime(2024, 5, 2, 11, 30, tzinfo=timezone.utc)


def test_from_drive_folder_has_zero_size():
    node = DriveNode.from_drive(
        {"id": "D1", "name": "Clientes", "mimeType": FOLDER_MIME_TYPE, "size": "99"},
        parent_folder_id="R",
    )
    assert node.is_folder is True
    assert node.size == 0


@pytest.mark.parametrize("entry", [
    {"name": "x", "mimeType": "text/plain"},
    {"id": "1", "mimeType": "text/plain"},
    {"id": "1", "name": "x"},
    "not-a-dict",
])
def test_from_drive_rejects_malformed_entries(entry):
    with pytest.raises(MalformedDriveEntry):
        DriveNode.from_drive(entry, parent_folder_id="R")


def test_parse_drive_time_handles_bad_values():
    assert parse_drive_time(None) is None
    assert parse_drive_time("") is None
    assert parse_drive_time("yesterday") is None


def test_ensure_aware_treats_naive_as_utc():
    naive = datetime(2024, 1, 1, 12, 0)
    assert ensure_aware(naive).tzinfo == timezone.utc
    assert ensure_aware(None) is None


def test_mirror_record_folder_detection():
    record = MirrorRecord(file_id="D1", name="g", type=FOLDER_MIME_TYPE, owner_email="a@b.com", source="grupos_drive")
    assert record.is_folder
    record.type = "application/pdf"
    assert not record.is_folder


def test_sync_result_collect_splits_failures():
    result = SyncResult()
    ok = SyncItemResult(success=True, item={"id": "1"})
    failed = SyncItemResult(success=False, item={"id": "2"}, error="boom")

    result.collect(result.added, [ok, failed])

    assert result.summary() == {"added": 1, "updated": 0, "removed": 0, "errors": 1}
    payload = result.to_dict()
    assert payload["errors"][0]["error"] == "boom"
    assert payload["added"][0]["file"] == {"id": "1"}


def test_discrepancies_total():
    node = DriveNode(id="F1", name="doc.pdf", mime_type="application/pdf")
    record = MirrorRecord(file_id="F2", name="old", type="text/plain", owner_email="a@b.com", source="documentos_administrador")
    discrepancies = Discrepancies(to_add=[node], to_remove=[record])

    assert discrepancies.total == 2
    assert discrepancies.to_dict()["toAdd"][0]["id"] == "F1"
    assert discrepancies.to_dict()["toRemove"][0]["file_id"] == "F2"
