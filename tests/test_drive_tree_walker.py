import pytest

from services.drive_tree_walker import DriveTreeWalker
from services.google_drive_mock import GoogleDriveService
from services.sync_models import ExtensionSubfolder


@pytest.fixture
def drive(tmp_path):
    return GoogleDriveService(db_file=str(tmp_path / "mock_drive.json"))


def _ids(nodes):
    return sorted(n.id for n in nodes)


def test_recursive_walk_emits_folders_and_nested_files(drive):
    drive.create_folder("Root", folder_id="R")
    drive.create_folder("Sub", parent_id="R", folder_id="S")
    drive.upload_file(b"a", "a.pdf", "application/pdf", parent_id="R", file_id="A")
    drive.upload_file(b"b", "b.pdf", "application/pdf", parent_id="S", file_id="B")

    nodes = DriveTreeWalker(drive).list_tree("R", recursive=True)

    assert _ids(nodes) == ["A", "B", "S"]
    by_id = {n.id: n for n in nodes}
    assert by_id["S"].is_folder
    assert by_id["B"].parent_folder_id == "S"
    assert by_id["A"].size == 1


def test_non_recursive_walk_stops_at_depth_one(drive):
    drive.create_folder("Root", folder_id="R")
    drive.create_folder("Sub", parent_id="R", folder_id="S")
    drive.upload_file(b"b", "b.pdf", "application/pdf", parent_id="S", file_id="B")

    nodes = DriveTreeWalker(drive).list_tree("R", recursive=False)

    assert _ids(nodes) == ["S"]


def test_collect_live_nodes_tags_and_deduplicates(drive):
    drive.create_folder("Root", folder_id="R")
    drive.create_folder("Entrenador", parent_id="R", folder_id="EXT")
    drive.upload_file(b"x", "plan.xlsx", "application/vnd.ms-excel", parent_id="EXT", file_id="P")
    drive.upload_file(b"y", "root.pdf", "application/pdf", parent_id="R", file_id="RF")

    subfolders = [ExtensionSubfolder(folder_id="EXT", name="Entrenador", extension="entrenador")]
    nodes = DriveTreeWalker(drive).collect_live_nodes("R", subfolders)

    assert _ids(nodes) == ["EXT", "P", "RF"]
    by_id = {n.id: n for n in nodes}
    assert by_id["P"].extension_tag == "entrenador"
    assert by_id["P"].sub_folder_id == "EXT"
    assert by_id["RF"].extension_tag is None


def test_collect_live_nodes_keeps_first_occurrence(drive):
    drive.create_folder("Root", folder_id="R")
    drive.create_folder("Shared", parent_id="R", folder_id="SH")
    drive.upload_file(b"z", "z.pdf", "application/pdf", parent_id="SH", file_id="Z")

    subfolders = [
        ExtensionSubfolder(folder_id="SH", name="Shared", extension="abogados"),
        ExtensionSubfolder(folder_id="SH", name="Shared again", extension="brify"),
    ]
    nodes = DriveTreeWalker(drive).collect_live_nodes("R", subfolders)

    assert [n.id for n in nodes].count("Z") == 1
    assert {n.id: n for n in nodes}["Z"].extension_tag == "abogados"


class FlakyDrive(GoogleDriveService):
    def __init__(self, db_file, broken_folders=(), broken_files=()):
        super().__init__(db_file=db_file)
        self.broken_folders = set(broken_folders)
        self.broken_files = set(broken_files)

    def list_files(self, folder_id="root", page_size=1000):
        if folder_id in self.broken_folders:
            raise Exception("HttpError 500 when listing")
        return super().list_files(folder_id, page_size)

    def get_file(self, file_id):
        if file_id in self.broken_files:
            raise Exception("HttpError 404 when requesting file")
        return super().get_file(file_id)


def test_listing_failure_of_subfolder_does_not_abort_walk(tmp_path):
    drive = FlakyDrive(str(tmp_path / "flaky.json"), broken_folders={"BAD"})
    drive.create_folder("Root", folder_id="R")
    drive.create_folder("Bad", parent_id="R", folder_id="BAD")
    drive.upload_file(b"1", "lost.pdf", "application/pdf", parent_id="BAD", file_id="LOST")
    drive.upload_file(b"2", "ok.pdf", "application/pdf", parent_id="R", file_id="OK")

    nodes = DriveTreeWalker(drive).list_tree("R")

    assert _ids(nodes) == ["BAD", "OK"]


def test_metadata_lookup_failure_falls_back_to_listing(tmp_path):
    drive = FlakyDrive(str(tmp_path / "flaky.json"), broken_files={"F"})
    drive.create_folder("Root", folder_id="R")
    drive.upload_file(b"123", "f.pdf", "application/pdf", parent_id="R", file_id="F")

    nodes = DriveTreeWalker(drive).list_tree("R")

    assert len(nodes) == 1
    assert nodes[0].name == "f.pdf"
    assert nodes[0].size == 3


def test_malformed_entries_are_skipped(drive):
    drive.create_folder("Root", folder_id="R")
    drive.upload_file(b"ok", "ok.pdf", "application/pdf", parent_id="R", file_id="OK")
    drive.db["files"]["BROKEN"] = {"id": "BROKEN", "parents": ["R"]}
    drive._save_db()

    nodes = DriveTreeWalker(drive).list_tree("R")

    assert _ids(nodes) == ["OK"]
