import pytest

from diskmanager.models import (
    BlockInfo,
    DaemonError,
    DiskManagerError,
    DiskStoreDiskType,
    DiskStoreFsType,
    DiskStoreMediaType,
    DiskStoreVolumeState,
    PartitionRecord,
    StorageDaemonCode,
    VolumeStoreRecord,
)


@pytest.mark.parametrize(
    "value, name",
    [
        (45, "COMMAND_QUERY_USB_IS_IN_USE"),
        (201, "ADDON_CREATE_BLOCK_DEVICE_NODE"),
        (217, "ADDON_FORMAT_PARTITION"),
        (251, "ADDON_GET_CAPACITY"),
        (253, "ADDON_GET_CD_STATUS"),
    ],
)
def test_storage_daemon_codes_match_protocol(value, name):
    assert StorageDaemonCode(value).name == name


def test_storage_daemon_codes_are_unique():
    members = list(StorageDaemonCode)
    looked_up = {StorageDaemonCode(member.value) for member in members}
    assert len(looked_up) == len(members)


def test_enum_values_from_spec():
    assert DiskStoreMediaType(1) is DiskStoreMediaType.HDD
    assert DiskStoreDiskType(255) is DiskStoreDiskType.UNKNOWN
    assert DiskStoreDiskType(3) is DiskStoreDiskType.CD_DVD_BD
    assert DiskStoreFsType(7) is DiskStoreFsType.ISO9660
    assert DiskStoreVolumeState(14) is DiskStoreVolumeState.DAMAGED_MOUNTED


def test_enum_lookup_by_value_round_trip():
    for state in DiskStoreVolumeState:
        assert DiskStoreVolumeState(int(state)) is state
    for fs in DiskStoreFsType:
        assert DiskStoreFsType[fs.name] is fs


def test_volume_store_record_defaults():
    record = VolumeStoreRecord()
    assert record.state is DiskStoreVolumeState.UNMOUNTED
    assert record.fs_type is DiskStoreFsType.UNKNOWN
    assert record.removable is False
    assert record.partition_number == 0


def test_partition_record_defaults_and_equality():
    record = PartitionRecord(disk_id="disk-8-0", partition_number=1)
    assert record == PartitionRecord(disk_id="disk-8-0", partition_number=1)
    assert record.start_sector == 0
    assert record.partition_type == ""


def test_block_info_defaults():
    info = BlockInfo()
    assert info.size_bytes == 0
    assert info.removable is False
    assert info.disk_id == ""


def test_daemon_error_carries_code():
    err = DaemonError(-5)
    assert err.code == -5
    assert "-5" in str(err)
    with pytest.raises(DiskManagerError):
        raise err


def test_daemon_error_custom_message():
    err = DaemonError(3, "mount failed")
    assert err.message == "mount failed"
    assert str(err).startswith("mount failed")