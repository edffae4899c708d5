"""Shared data models, enumerations and errors for the disk manager."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

INTERFACE_DESCRIPTOR = "StorageDaemon.IStorageDaemon"


class DiskStoreMediaType(IntEnum):
    """Physical media kind of a disk."""

    SSD = 0
    HDD = 1
    UNKNOWN = 2


class DiskStoreDiskType(IntEnum):
    """Category of an attached disk."""

    SD_CARD = 1
    USB_FLASH = 2
    CD_DVD_BD = 3
    DATA_DISK_SSD = 4
    DATA_DISK_HDD = 5
    UNKNOWN = 255


class DiskStoreFsType(IntEnum):
    """File system type of a volume."""

    HMFS = 0
    F2FS = 1
    NTFS = 2
    EXFAT = 3
    EXT4 = 4
    FAT32 = 5
    UDF = 6
    ISO9660 = 7
    UNKNOWN = 255


class DiskStoreVolumeState(IntEnum):
    """Lifecycle state of a volume."""

    UNFORMATTED = 0
    ERROR = 1
    CHECKING = 2
    MOUNTED = 3
    UNMOUNTING = 4
    MOUNTING = 5
    REPAIRING = 6
    FORMATTING = 7
    UNMOUNTED = 8
    EJECTING = 9
    REMOVED = 10
    BAD_REMOVAL = 11
    DAMAGED = 12
    FUSE_REMOVED = 13
    DAMAGED_MOUNTED = 14


class StorageDaemonCode(IntEnum):
    """Request codes understood by the storage daemon."""

    COMMAND_QUERY_USB_IS_IN_USE = 45
    ADDON_CREATE_BLOCK_DEVICE_NODE = 201
    ADDON_DESTROY_BLOCK_DEVICE_NODE = 202
    ADDON_READ_PARTITION_TABLE = 203
    ADDON_MOUNT = 204
    ADDON_UNMOUNT = 205
    ADDON_FORMAT_VOLUME = 206
    ADDON_CHECK = 207
    ADDON_REPAIR = 208
    ADDON_SET_LABEL = 209
    ADDON_READ_METADATA = 210
    ADDON_MOUNT_FUSE_DEVICE = 211
    ADDON_PARTITION = 212
    ADDON_GET_BLOCK_INFO_BY_TYPE = 213
    ADDON_GET_PARTITION_TABLE_INFO = 214
    ADDON_CREATE_PARTITION = 215
    ADDON_DELETE_PARTITION = 216
    ADDON_FORMAT_PARTITION = 217
    ADDON_GET_CAPACITY = 251
    ADDON_EJECT = 252
    ADDON_GET_CD_STATUS = 253


@dataclass
class PartitionRecord:
    """One partition entry of a disk's partition table."""

    disk_id: str = ""
    partition_number: int = 0
    start_sector: int = 0
    end_sector: int = 0
    size_bytes: int = 0
    partition_type: str = ""
    fs_type_raw: str = ""


@dataclass
class BlockInfo:
    """Detailed description of a block device."""

    size_bytes: int = 0
    vendor: str = ""
    model: str = ""
    interface_type: str = ""
    rpm: int = 0
    state: str = ""
    media_type: str = ""
    removable: bool = False
    serial_number: str = ""
    pcie_path: str = ""
    location: str = ""
    disk_id: str = ""
    used_bytes: int = 0
    available_bytes: int = 0
    device_path: str = ""
    port: str = ""


@dataclass
class VolumeStoreRecord:
    """Authoritative in-process snapshot of a volume."""

    id: str = ""
    uuid: str = ""
    disk_id: str = ""
    description: str = ""
    removable: bool = False
    state: DiskStoreVolumeState = DiskStoreVolumeState.UNMOUNTED
    path: str = ""
    fs_type: DiskStoreFsType = DiskStoreFsType.UNKNOWN
    extra_info: str = ""
    partition_number: int = 0


class DiskManagerError(Exception):
    """Base class of all disk manager errors."""


class DaemonError(DiskManagerError):
    """A storage daemon call failed with a numeric error code."""

    def __init__(self, code: int, message: str | None = None) -> None:
        self.code = int(code)
        self.message = message or f"storage daemon error {self.code}"
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"{self.message} (code={self.code})"