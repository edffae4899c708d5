"""Client side of the storage daemon request protocol."""

from __future__ import annotations

import errno
import struct
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from typing import Protocol

from diskmanager.models import (
    INTERFACE_DESCRIPTOR,
    DaemonError,
    DiskManagerError,
    StorageDaemonCode,
)

ERR_OK = 0
ERR_INVALID_DATA = -1 - errno.ENODATA
ERR_TRANSACTION_FAILED = -1 - errno.ECOMM

_ALIGN = 4


class ParcelError(DiskManagerError):
    """A value could not be written to or read from a parcel."""


class Parcel:
    """Sequential, 4-byte aligned container of typed values and descriptors."""

    def __init__(self, data: bytes = b"", fds: Iterable[int] | None = None) -> None:
        self._buffer = bytearray(data)
        self._fds: list[int] = list(fds) if fds is not None else []
        self._pos = 0

    def __bytes__(self) -> bytes:
        return bytes(self._buffer)

    def __len__(self) -> int:
        return len(self._buffer)

    @property
    def fds(self) -> tuple[int, ...]:
        """File descriptors carried alongside the data."""
        return tuple(self._fds)

    def _pack(self, fmt: str, value: int) -> None:
        try:
            self._buffer += struct.pack(fmt, value)
        except struct.error as exc:
            raise ParcelError(f"value {value!r} does not fit {fmt!r}") from exc

    def _take(self, size: int) -> bytes:
        end = self._pos + size
        if end > len(self._buffer):
            raise ParcelError("read past end of parcel")
        chunk = bytes(self._buffer[self._pos:end])
        self._pos = end
        return chunk

    def _unpack(self, fmt: str) -> int:
        return struct.unpack(fmt, self._take(struct.calcsize(fmt)))[0]

    def write_interface_token(self, token: str) -> None:
        """Write the interface descriptor that opens a request."""
        self.write_string(token)

    def write_string(self, value: str) -> None:
        """Write a UTF-16 string with its length in code units."""
        if not isinstance(value, str):
            raise ParcelError("string expected")
        try:
            encoded = value.encode("utf-16-le")
        except UnicodeEncodeError as exc:
            raise ParcelError("string cannot be encoded") from exc
        self.write_int32(len(encoded) // 2)
        payload = encoded + b"\0\0"
        payload += b"\0" * (-len(payload) % _ALIGN)
        self._buffer += payload

    def write_bool(self, value: bool) -> None:
        """Write a boolean as a 32-bit integer."""
        self.write_int32(1 if value else 0)

    def write_int32(self, value: int) -> None:
        """Write a signed 32-bit integer."""
        self._pack("<i", value)

    def write_uint32(self, value: int) -> None:
        """Write an unsigned 32-bit integer."""
        self._pack("<I", value)

    def write_int64(self, value: int) -> None:
        """Write a signed 64-bit integer."""
        self._pack("<q", value)

    def write_uint64(self, value: int) -> None:
        """Write an unsigned 64-bit integer."""
        self._pack("<Q", value)

    def write_fd(self, fd: int) -> None:
        """Attach a file descriptor and write its slot index."""
        if not isinstance(fd, int) or fd < 0:
            raise ParcelError(f"invalid file descriptor {fd!r}")
        self.write_int32(len(self._fds))
        self._fds.append(fd)

    def read_interface_token(self) -> str:
        """Read the interface descriptor of a request."""
        return self.read_string()

    def read_string(self) -> str:
        """Read a UTF-16 string written by write_string."""
        length = self.read_int32()
        if length < 0:
            raise ParcelError("negative string length")
        size = (length + 1) * 2
        raw = self._take(size + (-size % _ALIGN))
        try:
            return raw[: length * 2].decode("utf-16-le")
        except UnicodeDecodeError as exc:
            raise ParcelError("malformed string") from exc

    def read_bool(self) -> bool:
        """Read a boolean."""
        return self.read_int32() != 0

    def read_int32(self) -> int:
        """Read a signed 32-bit integer."""
        return self._unpack("<i")

    def read_uint32(self) -> int:
        """Read an unsigned 32-bit integer."""
        return self._unpack("<I")

    def read_int64(self) -> int:
        """Read a signed 64-bit integer."""
        return self._unpack("<q")

    def read_uint64(self) -> int:
        """Read an unsigned 64-bit integer."""
        return self._unpack("<Q")

    def read_fd(self) -> int:
        """Read an attached file descriptor."""
        index = self.read_int32()
        if not 0 <= index < len(self._fds):
            raise ParcelError(f"no file descriptor at slot {index}")
        return self._fds[index]


class RemoteObject(Protocol):
    """Transport that delivers a request and returns the reply parcel.

    Transport failures are raised as DaemonError.
    """

    def send_request(self, code: int, data: Parcel) -> Parcel: ...


@contextmanager
def _reading() -> Iterator[None]:
    try:
        yield
    except ParcelError as exc:
        raise DaemonError(ERR_INVALID_DATA, f"malformed reply: {exc}") from exc


class StorageDaemonProxy:
    """Encodes storage daemon calls into parcels and decodes the replies."""

    def __init__(self, remote: RemoteObject) -> None:
        self._remote = remote

    def _send(self, code: StorageDaemonCode, fill: Callable[[Parcel], None]) -> Parcel:
        data = Parcel()
        try:
            data.write_interface_token(INTERFACE_DESCRIPTOR)
        except ParcelError as exc:
            raise DaemonError(ERR_TRANSACTION_FAILED, "cannot write interface token") from exc
        try:
            fill(data)
        except ParcelError as exc:
            raise DaemonError(ERR_INVALID_DATA, f"invalid request data: {exc}") from exc
        return self._remote.send_request(int(code), data)

    def _call(self, code: StorageDaemonCode, fill: Callable[[Parcel], None]) -> Parcel:
        reply = self._send(code, fill)
        with _reading():
            result = reply.read_int32()
        if result != ERR_OK:
            raise DaemonError(result, f"{code.name} failed")
        return reply

    def query_usb_is_in_use(self, disk_path: str) -> bool:
        """Return whether the disk at disk_path is in use."""
        reply = self._call(
            StorageDaemonCode.COMMAND_QUERY_USB_IS_IN_USE,
            lambda p: p.write_string(disk_path),
        )
        with _reading():
            return reply.read_bool()

    def create_block_device_node(self, dev_path: str, mode: int, major: int, minor: int) -> None:
        """Create a block device node."""

        def fill(p: Parcel) -> None:
            p.write_string(dev_path)
            p.write_uint32(mode)
            p.write_int32(major)
            p.write_int32(minor)

        self._call(StorageDaemonCode.ADDON_CREATE_BLOCK_DEVICE_NODE, fill)

    def destroy_block_device_node(self, dev_path: str) -> None:
        """Remove a block device node."""
        self._call(
            StorageDaemonCode.ADDON_DESTROY_BLOCK_DEVICE_NODE,
            lambda p: p.write_string(dev_path),
        )

    def read_partition_table(self, dev_path: str) -> tuple[str, int]:
        """Return the raw partition table dump and the maximum volume count."""
        reply = self._call(
            StorageDaemonCode.ADDON_READ_PARTITION_TABLE,
            lambda p: p.write_string(dev_path),
        )
        with _reading():
            output = reply.read_string()
            max_volume = reply.read_int32()
        return output, max_volume

    def eject(self, dev_path: str) -> None:
        """Eject the medium of a device."""
        self._call(StorageDaemonCode.ADDON_EJECT, lambda p: p.write_string(dev_path))

    def query_cd_status(self, dev_path: str) -> int:
        """Return the optical drive status code."""
        reply = self._call(
            StorageDaemonCode.ADDON_GET_CD_STATUS, lambda p: p.write_string(dev_path)
        )
        with _reading():
            return reply.read_int32()

    def mount(
        self,
        dev_path: str,
        mount_path: str,
        fs_type: str,
        mount_flag: int,
        mount_data: str = "",
    ) -> None:
        """Mount a device."""

        def fill(p: Parcel) -> None:
            p.write_string(dev_path)
            p.write_string(mount_path)
            p.write_string(fs_type)
            p.write_uint64(mount_flag)
            p.write_string(mount_data)

        self._call(StorageDaemonCode.ADDON_MOUNT, fill)

    def unmount(self, mount_path: str, fs_type: str, force: bool) -> None:
        """Unmount a mount point."""

        def fill(p: Parcel) -> None:
            p.write_string(mount_path)
            p.write_string(fs_type)
            p.write_bool(force)

        self._call(StorageDaemonCode.ADDON_UNMOUNT, fill)

    def format_volume(self, dev_path: str, fs_type: str) -> None:
        """Format a volume."""

        def fill(p: Parcel) -> None:
            p.write_string(dev_path)
            p.write_string(fs_type)

        self._call(StorageDaemonCode.ADDON_FORMAT_VOLUME, fill)

    def check(self, dev_path: str, fs_type: str, auto_fix: bool) -> None:
        """Check a file system."""

        def fill(p: Parcel) -> None:
            p.write_string(dev_path)
            p.write_string(fs_type)
            p.write_bool(auto_fix)

        self._call(StorageDaemonCode.ADDON_CHECK, fill)

    def repair(self, dev_path: str, fs_type: str) -> None:
        """Repair a file system."""

        def fill(p: Parcel) -> None:
            p.write_string(dev_path)
            p.write_string(fs_type)

        self._call(StorageDaemonCode.ADDON_REPAIR, fill)

    def set_label(self, dev_path: str, fs_type: str, label: str) -> None:
        """Set the label of a file system."""

        def fill(p: Parcel) -> None:
            p.write_string(dev_path)
            p.write_string(fs_type)
            p.write_string(label)

        self._call(StorageDaemonCode.ADDON_SET_LABEL, fill)

    def read_metadata(self, dev_path: str) -> tuple[str, str, str]:
        """Return (uuid, type, label) of the file system on dev_path."""
        reply = self._call(
            StorageDaemonCode.ADDON_READ_METADATA, lambda p: p.write_string(dev_path)
        )
        with _reading():
            uuid = reply.read_string()
            fs_type = reply.read_string()
            label = reply.read_string()
        return uuid, fs_type, label

    def get_capacity(self, mount_path: str) -> tuple[int, int]:
        """Return (total_size, free_size) of a mount point in bytes."""
        reply = self._call(
            StorageDaemonCode.ADDON_GET_CAPACITY, lambda p: p.write_string(mount_path)
        )
        with _reading():
            total = reply.read_int64()
            free = reply.read_int64()
        return total, free

    def mount_fuse_device(self, mount_path: str) -> int:
        """Mount a FUSE device and return its file descriptor."""
        reply = self._call(
            StorageDaemonCode.ADDON_MOUNT_FUSE_DEVICE,
            lambda p: p.write_string(mount_path),
        )
        with _reading():
            return reply.read_fd()

    def partition(self, disk_path: str, partition_type: str) -> None:
        """Repartition a disk."""

        def fill(p: Parcel) -> None:
            p.write_string(disk_path)
            p.write_string(partition_type)

        self._call(StorageDaemonCode.ADDON_PARTITION, fill)

    def get_block_info_by_type(self, block_type: str) -> str:
        """Return the block device description payload for block_type."""
        reply = self._call(
            StorageDaemonCode.ADDON_GET_BLOCK_INFO_BY_TYPE,
            lambda p: p.write_string(block_type),
        )
        with _reading():
            return reply.read_string()

    def get_partition_table_info(self, dev_path: str, exec_ret: str = "") -> str:
        """Return the partition table information text of dev_path."""

        def fill(p: Parcel) -> None:
            p.write_string(dev_path)
            p.write_string(exec_ret)

        reply = self._call(StorageDaemonCode.ADDON_GET_PARTITION_TABLE_INFO, fill)
        with _reading():
            return reply.read_string()

    def create_partition(
        self,
        dev_path: str,
        partition_num: int,
        start_sector: int,
        end_sector: int,
        type_code: str,
    ) -> None:
        """Create a partition spanning start_sector to end_sector."""

        def fill(p: Parcel) -> None:
            p.write_string(dev_path)
            p.write_int32(partition_num)
            p.write_int64(start_sector)
            p.write_int64(end_sector)
            p.write_string(type_code)

        self._call(StorageDaemonCode.ADDON_CREATE_PARTITION, fill)

    def delete_partition(self, dev_path: str, partition_num: int) -> None:
        """Delete a partition."""

        def fill(p: Parcel) -> None:
            p.write_string(dev_path)
            p.write_int32(partition_num)

        self._call(StorageDaemonCode.ADDON_DELETE_PARTITION, fill)

    def format_partition(
        self, dev_path: str, fs_type: str, volume_name: str, quick_format: bool
    ) -> None:
        """Format a partition."""

        def fill(p: Parcel) -> None:
            p.write_string(dev_path)
            p.write_string(fs_type)
            p.write_string(volume_name)
            p.write_bool(quick_format)

        self._call(StorageDaemonCode.ADDON_FORMAT_PARTITION, fill)