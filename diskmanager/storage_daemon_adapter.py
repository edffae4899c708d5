"""Connection to the storage daemon that forwards the daemon's calls."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Optional

from diskmanager.models import DiskManagerError
from diskmanager.storage_daemon_proxy import RemoteObject, StorageDaemonProxy

_LOG = logging.getLogger(__name__)

Connector = Callable[[], Optional[RemoteObject]]


class DaemonUnavailableError(DiskManagerError):
    """The storage daemon could not be reached."""


class StorageDaemonAdapter:
    """Connects to the storage daemon on demand and forwards calls to it.

    ``connector`` returns the daemon's remote object, or None when the
    daemon is not available. If the remote object offers
    ``add_death_recipient``/``remove_death_recipient``, the adapter
    registers itself so that a dead daemon drops the cached connection.
    Failed daemon calls raise DaemonError.
    """

    def __init__(self, connector: Connector) -> None:
        self._connector = connector
        self._lock = threading.Lock()
        self._remote: RemoteObject | None = None
        self._proxy: StorageDaemonProxy | None = None

    @property
    def connected(self) -> bool:
        """Whether a connection to the daemon is cached."""
        with self._lock:
            return self._proxy is not None

    def connect(self) -> None:
        """Connect to the daemon unless already connected."""
        with self._lock:
            if self._proxy is not None:
                return
            remote = self._connector()
            if remote is None:
                _LOG.error("storage daemon remote object unavailable")
                raise DaemonUnavailableError("storage daemon remote object unavailable")
            proxy = StorageDaemonProxy(remote)
            add_recipient = getattr(remote, "add_death_recipient", None)
            if add_recipient is not None:
                add_recipient(self.on_remote_died)
            self._remote = remote
            self._proxy = proxy
            _LOG.debug("connected to storage daemon")

    def reset(self) -> None:
        """Drop the cached connection; the next call reconnects."""
        with self._lock:
            remote = self._remote
            if remote is not None:
                remove_recipient = getattr(remote, "remove_death_recipient", None)
                if remove_recipient is not None:
                    remove_recipient(self.on_remote_died)
            self._remote = None
            self._proxy = None
        _LOG.info("storage daemon connection reset")

    def on_remote_died(self) -> None:
        """Handle the death of the daemon by dropping the connection."""
        _LOG.error("storage daemon died")
        self.reset()

    def _ready(self) -> StorageDaemonProxy:
        self.connect()
        with self._lock:
            proxy = self._proxy
        if proxy is None:
            raise DaemonUnavailableError("storage daemon proxy not ready")
        return proxy

    def query_usb_is_in_use(self, disk_path: str) -> bool:
        """Return whether the disk at disk_path is in use."""
        _LOG.info("query_usb_is_in_use disk_path=%s", disk_path)
        return self._ready().query_usb_is_in_use(disk_path)

    def create_block_device_node(self, dev_path: str, mode: int, major: int, minor: int) -> None:
        """Create a block device node."""
        _LOG.info(
            "create_block_device_node dev_path=%s mode=%d major=%d minor=%d",
            dev_path, mode, major, minor,
        )
        self._ready().create_block_device_node(dev_path, mode, major, minor)

    def destroy_block_device_node(self, dev_path: str) -> None:
        """Remove a block device node."""
        _LOG.info("destroy_block_device_node dev_path=%s", dev_path)
        self._ready().destroy_block_device_node(dev_path)

    def read_partition_table(self, dev_path: str) -> tuple[str, int]:
        """Return the raw partition table dump and the maximum volume count."""
        _LOG.info("read_partition_table dev_path=%s", dev_path)
        return self._ready().read_partition_table(dev_path)

    def eject(self, dev_path: str) -> None:
        """Eject the medium of a device."""
        _LOG.info("eject dev_path=%s", dev_path)
        self._ready().eject(dev_path)

    def query_cd_status(self, dev_path: str) -> int:
        """Return the optical drive status code."""
        _LOG.info("query_cd_status dev_path=%s", dev_path)
        return self._ready().query_cd_status(dev_path)

    def mount(
        self,
        dev_path: str,
        mount_path: str,
        fs_type: str,
        mount_flag: int,
        mount_data: str = "",
    ) -> None:
        """Mount a device."""
        _LOG.info(
            "mount dev_path=%s mount_path=%s fs_type=%s mount_flag=%d",
            dev_path, mount_path, fs_type, mount_flag,
        )
        self._ready().mount(dev_path, mount_path, fs_type, mount_flag, mount_data)

    def unmount(self, mount_path: str, fs_type: str, force: bool) -> None:
        """Unmount a mount point."""
        _LOG.info("unmount mount_path=%s force=%s", mount_path, force)
        self._ready().unmount(mount_path, fs_type, force)

    def format_volume(self, dev_path: str, fs_type: str) -> None:
        """Format a volume."""
        _LOG.info("format_volume dev_path=%s fs_type=%s", dev_path, fs_type)
        self._ready().format_volume(dev_path, fs_type)

    def check(self, dev_path: str, fs_type: str, auto_fix: bool) -> None:
        """Check a file system."""
        _LOG.info("check dev_path=%s fs_type=%s auto_fix=%s", dev_path, fs_type, auto_fix)
        self._ready().check(dev_path, fs_type, auto_fix)

    def repair(self, dev_path: str, fs_type: str) -> None:
        """Repair a file system."""
        _LOG.info("repair dev_path=%s fs_type=%s", dev_path, fs_type)
        self._ready().repair(dev_path, fs_type)

    def set_label(self, dev_path: str, fs_type: str, label: str) -> None:
        """Set the label of a file system."""
        _LOG.info("set_label dev_path=%s fs_type=%s label=%s", dev_path, fs_type, label)
        self._ready().set_label(dev_path, fs_type, label)

    def read_metadata(self, dev_path: str) -> tuple[str, str, str]:
        """Return (uuid, type, label) of the file system on dev_path."""
        _LOG.info("read_metadata dev_path=%s", dev_path)
        return self._ready().read_metadata(dev_path)

    def get_capacity(self, mount_path: str) -> tuple[int, int]:
        """Return (total_size, free_size) of a mount point in bytes."""
        _LOG.info("get_capacity mount_path=%s", mount_path)
        return self._ready().get_capacity(mount_path)

    def mount_fuse_device(self, mount_path: str) -> int:
        """Mount a FUSE device and return its file descriptor."""
        _LOG.info("mount_fuse_device mount_path=%s", mount_path)
        return self._ready().mount_fuse_device(mount_path)

    def partition(self, disk_path: str, partition_type: str) -> None:
        """Repartition a disk."""
        _LOG.info("partition disk_path=%s partition_type=%s", disk_path, partition_type)
        self._ready().partition(disk_path, partition_type)

    def get_block_info_by_type(self, block_type: str) -> str:
        """Return the block device description payload for block_type."""
        _LOG.info("get_block_info_by_type type=%s", block_type)
        return self._ready().get_block_info_by_type(block_type)

    def get_partition_table_info(self, dev_path: str, exec_ret: str = "") -> str:
        """Return the partition table information text of dev_path."""
        _LOG.info("get_partition_table_info dev_path=%s", dev_path)
        return self._ready().get_partition_table_info(dev_path, exec_ret)

    def create_partition(
        self,
        dev_path: str,
        partition_num: int,
        start_sector: int,
        end_sector: int,
        type_code: str,
    ) -> None:
        """Create a partition spanning start_sector to end_sector."""
        _LOG.info("create_partition dev_path=%s partition_num=%d", dev_path, partition_num)
        self._ready().create_partition(dev_path, partition_num, start_sector, end_sector, type_code)

    def delete_partition(self, dev_path: str, partition_num: int) -> None:
        """Delete a partition."""
        _LOG.info("delete_partition dev_path=%s partition_num=%d", dev_path, partition_num)
        self._ready().delete_partition(dev_path, partition_num)

    def format_partition(
        self, dev_path: str, fs_type: str, volume_name: str, quick_format: bool
    ) -> None:
        """Format a partition."""
        _LOG.info(
            "format_partition dev_path=%s fs_type=%s volume_name=%s",
            dev_path, fs_type, volume_name,
        )
        self._ready().format_partition(dev_path, fs_type, volume_name, quick_format)