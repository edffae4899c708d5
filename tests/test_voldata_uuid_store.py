import json

import pytest

from diskmanager.models import DiskManagerError
from diskmanager.voldata_uuid_store import (
    MAX_VOLDATA_SLOT_COUNT,
    VOLDATA_MOUNT_PREFIX,
    VoldataUuidEntry,
    VoldataUuidStore,
    build_mount_path,
    is_safe_fs_uuid,
    parse_slot_from_mount_path,
)


@pytest.fixture
def mapping_path(tmp_path):
    return tmp_path / "sub" / "voldata_uuid_mapping.json"


@pytest.fixture
def store(mapping_path):
    return VoldataUuidStore(mapping_path)


@pytest.mark.parametrize(
    "value, expected",
    [("", False), ("a/b", False), ("a..b", False), ("..", False), ("ABCD-1234", True)],
)
def test_is_safe_fs_uuid(value, expected):
    assert is_safe_fs_uuid(value) is expected


def test_build_mount_path_uses_prefix():
    assert build_mount_path(1) == "/mnt/data/voldata/data1"


def test_parse_slot_round_trip():
    for slot in (1, 42, MAX_VOLDATA_SLOT_COUNT):
        assert parse_slot_from_mount_path(build_mount_path(slot)) == slot


@pytest.mark.parametrize(
    "path",
    [
        VOLDATA_MOUNT_PREFIX,
        VOLDATA_MOUNT_PREFIX + "0",
        VOLDATA_MOUNT_PREFIX + str(MAX_VOLDATA_SLOT_COUNT + 1),
        VOLDATA_MOUNT_PREFIX + "1a",
        VOLDATA_MOUNT_PREFIX + "-1",
        "/other/data1",
    ],
)
def test_parse_slot_rejects(path):
    assert parse_slot_from_mount_path(path) is None


def test_entry_json_round_trip():
    entry = VoldataUuidEntry("uuid-a", build_mount_path(5), 5)
    assert VoldataUuidEntry.from_json(entry.to_json()) == entry
    assert entry.to_json() == {
        "fsUuid": "uuid-a",
        "mountPath": build_mount_path(5),
        "slotIndex": 5,
    }


def test_entry_slot_taken_from_path():
    entry = VoldataUuidEntry.from_json(
        {"fsUuid": "u", "mountPath": build_mount_path(9), "slotIndex": 3}
    )
    assert entry.slot_index == 9


@pytest.mark.parametrize(
    "obj",
    [
        [],
        {"mountPath": build_mount_path(1)},
        {"fsUuid": "u"},
        {"fsUuid": 1, "mountPath": build_mount_path(1)},
        {"fsUuid": "u", "mountPath": "/bad"},
        {"fsUuid": "a/b", "mountPath": build_mount_path(1)},
    ],
)
def test_entry_from_json_invalid(obj):
    with pytest.raises(ValueError):
        VoldataUuidEntry.from_json(obj)


def test_init_creates_empty_file(store, mapping_path):
    store.init()
    assert json.loads(mapping_path.read_text()) == []
    assert len(store) == 0


def test_resolve_allocates_and_reuses(store):
    path1, created1 = store.resolve_mount_path("uuid-1")
    assert (path1, created1) == (build_mount_path(1), True)
    assert store.resolve_mount_path("uuid-1") == (path1, False)
    path2, created2 = store.resolve_mount_path("uuid-2")
    assert created2 is True
    assert path2 == build_mount_path(2)
    assert store.try_get_mount_path("uuid-2") == path2


def test_resolve_persists(store, mapping_path):
    path, _ = store.resolve_mount_path("uuid-1")
    data = json.loads(mapping_path.read_text())
    assert data == [{"fsUuid": "uuid-1", "mountPath": path, "slotIndex": 1}]
    other = VoldataUuidStore(mapping_path)
    assert other.resolve_mount_path("uuid-1") == (path, False)


def test_resolve_invalid_uuid(store):
    with pytest.raises(DiskManagerError):
        store.resolve_mount_path("../x")


def test_try_get_before_init_and_unsafe(store):
    assert store.try_get_mount_path("uuid-1") is None
    assert store.try_get_mount_path("") is None


def test_remove(store, mapping_path):
    store.resolve_mount_path("uuid-1")
    store.remove("uuid-1")
    assert store.try_get_mount_path("uuid-1") is None
    assert json.loads(mapping_path.read_text()) == []
    store.remove("missing")
    assert len(store) == 0


def test_remove_invalid(store):
    with pytest.raises(DiskManagerError):
        store.remove("a/b")


def test_replace_keeps_slot(store, mapping_path):
    path, _ = store.resolve_mount_path("old")
    store.replace_fs_uuid("old", "new")
    assert store.try_get_mount_path("new") == path
    assert store.try_get_mount_path("old") is None
    reloaded = VoldataUuidStore(mapping_path)
    assert reloaded.resolve_mount_path("new") == (path, False)


def test_replace_missing_old_is_noop(store):
    store.replace_fs_uuid("nothing", "new")
    assert "new" not in store


def test_replace_to_existing_fails(store):
    path_a, _ = store.resolve_mount_path("a")
    store.resolve_mount_path("b")
    with pytest.raises(DiskManagerError):
        store.replace_fs_uuid("a", "b")
    assert store.try_get_mount_path("a") == path_a


def test_replace_invalid(store):
    with pytest.raises(DiskManagerError):
        store.replace_fs_uuid("a", "..")


def test_invalid_json_file(mapping_path):
    mapping_path.parent.mkdir(parents=True)
    mapping_path.write_text("{not json")
    with pytest.raises(DiskManagerError):
        VoldataUuidStore(mapping_path).init()


def test_root_not_array(mapping_path):
    mapping_path.parent.mkdir(parents=True)
    mapping_path.write_text('{"fsUuid": "x"}')
    with pytest.raises(DiskManagerError):
        VoldataUuidStore(mapping_path).init()


def test_empty_file_loads_nothing(mapping_path):
    mapping_path.parent.mkdir(parents=True)
    mapping_path.write_text("")
    loaded = VoldataUuidStore(mapping_path)
    loaded.init()
    assert len(loaded) == 0


def test_invalid_items_skipped(mapping_path):
    mapping_path.parent.mkdir(parents=True)
    items = [
        {"fsUuid": "good", "mountPath": build_mount_path(3)},
        {"fsUuid": "bad", "mountPath": "/tmp/x"},
        "junk",
    ]
    mapping_path.write_text(json.dumps(items))
    loaded = VoldataUuidStore(mapping_path)
    loaded.init()
    assert len(loaded) == 1
    assert loaded.try_get_mount_path("good") == build_mount_path(3)
    assert loaded.resolve_mount_path("next") == (build_mount_path(4), True)


def test_save_failure_rolls_back(store, mapping_path):
    store.init()
    mapping_path.with_name(mapping_path.name + ".tmp").mkdir()
    with pytest.raises(DiskManagerError):
        store.resolve_mount_path("uuid-1")
    assert store.try_get_mount_path("uuid-1") is None
    assert len(store) == 0


def test_uninit_then_reload(store):
    path, _ = store.resolve_mount_path("uuid-1")
    store.uninit()
    assert store.try_get_mount_path("uuid-1") is None
    assert store.resolve_mount_path("uuid-1") == (path, False)


def test_full_store_evicts_slot_one(mapping_path):
    mapping_path.parent.mkdir(parents=True)
    items = [
        {"fsUuid": f"u{slot}", "mountPath": build_mount_path(slot)}
        for slot in range(1, MAX_VOLDATA_SLOT_COUNT + 1)
    ]
    mapping_path.write_text(json.dumps(items))
    full = VoldataUuidStore(mapping_path)
    path, created = full.resolve_mount_path("fresh")
    assert created is True
    assert path == build_mount_path(1)
    assert "u1" not in full
    assert len(full) == MAX_VOLDATA_SLOT_COUNT
    assert full.try_get_mount_path("u2") == build_mount_path(2)


def test_load_truncates_at_max(mapping_path):
    mapping_path.parent.mkdir(parents=True)
    items = [
        {"fsUuid": f"u{slot}", "mountPath": build_mount_path(slot)}
        for slot in range(1, MAX_VOLDATA_SLOT_COUNT + 1)
    ]
    items.append({"fsUuid": "extra", "mountPath": build_mount_path(5)})
    mapping_path.write_text(json.dumps(items))
    loaded = VoldataUuidStore(mapping_path)
    loaded.init()
    assert len(loaded) == MAX_VOLDATA_SLOT_COUNT
    assert "extra" not in loaded