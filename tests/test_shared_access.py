import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from services.google_drive_mock import GoogleDriveService
from services.mirror_store import MirrorStore
from services.shared_access_service import SharedAccessMirror, map_drive_role

SQLALCHEMY_DATABASE_URL = "sqlite:///./test_shared_access.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

OWNER = "admin@brify.ai"


@pytest.fixture(scope="module", autouse=True)
def setup_module():
    yield
    if os.path.exists("./test_shared_access.db"):
        os.remove("./test_shared_access.db")


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def drive(tmp_path):
    drive = GoogleDriveService(db_file=str(tmp_path / "mock_drive.json"))
    drive.create_folder("Equipo", folder_id="G1")
    drive.add_permission("G1", "owner", OWNER)
    return drive


@pytest.fixture
def store(db_session):
    return MirrorStore(db_session)


def _grants(store):
    return {g.usuario_lector: g.role for g in store.list_shared_access("G1", OWNER)}


def test_role_mapping():
    assert map_drive_role("writer") == "editor"
    assert map_drive_role("reader") == "lector"
    assert map_drive_role("commenter") == "lector"
    assert map_drive_role(None) == "lector"


def test_grantees_skip_owner_and_non_user_permissions():
    permissions = [
        {"type": "user", "role": "owner", "emailAddress": OWNER},
        {"type": "user", "role": "writer", "emailAddress": "a@mail.com"},
        {"type": "domain", "role": "reader", "domain": "brify.ai"},
        {"type": "anyone", "role": "reader"},
        {"type": "user", "role": "reader"},
    ]
    assert SharedAccessMirror.grantees(permissions, OWNER) == {"a@mail.com": "editor"}


def test_reconcile_converges_to_drive_permissions(drive, store):
    drive.add_permission("G1", "writer", "a@mail.com")
    drive.add_permission("G1", "reader", "b@mail.com")
    store.insert_shared_access("G1", OWNER, "owner-id", "c@mail.com", "lector")

    mirror = SharedAccessMirror(store, drive, owner_id="owner-id")
    stats = mirror.reconcile_access("G1", OWNER)

    assert _grants(store) == {"a@mail.com": "editor", "b@mail.com": "lector"}
    assert stats == {"inserted": 2, "updated": 0, "removed": 1}


def test_reconcile_updates_changed_roles(drive, store):
    drive.add_permission("G1", "writer", "a@mail.com")
    store.insert_shared_access("G1", OWNER, "owner-id", "a@mail.com", "lector")

    stats = SharedAccessMirror(store, drive).reconcile_access("G1", OWNER)

    assert _grants(store) == {"a@mail.com": "editor"}
    assert stats["updated"] == 1


def test_reconcile_twice_is_stable(drive, store):
    drive.add_permission("G1", "reader", "b@mail.com")
    mirror = SharedAccessMirror(store, drive)

    mirror.reconcile_access("G1", OWNER)
    second = mirror.reconcile_access("G1", OWNER)

    assert second == {"inserted": 0, "updated": 0, "removed": 0}
    assert _grants(store) == {"b@mail.com": "lector"}


def test_empty_permission_list_leaves_grants_alone(store):
    store.insert_shared_access("G1", OWNER, "owner-id", "c@mail.com", "lector")

    stats = SharedAccessMirror(store, drive_service=None).reconcile_access("G1", OWNER, permissions=[])

    assert stats == {"inserted": 0, "updated": 0, "removed": 0}
    assert _grants(store) == {"c@mail.com": "lector"}


class BrokenPermissionsDrive:
    def list_permissions(self, file_id):
        raise Exception("HttpError 403 insufficientFilePermissions")


def test_permission_read_failure_is_not_shared(store):
    mirror = SharedAccessMirror(store, BrokenPermissionsDrive())

    assert mirror.fetch_permissions("G1") == []
    assert mirror.is_folder_shared("G1") is False
    assert mirror.reconcile_access("G1", OWNER)["inserted"] == 0


def test_is_folder_shared(drive, store):
    mirror = SharedAccessMirror(store, drive)
    assert mirror.is_folder_shared("G1") is False

    drive.add_permission("G1", "reader", "b@mail.com")
    assert mirror.is_folder_shared("G1") is True
