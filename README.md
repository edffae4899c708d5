# diskmanager

Building blocks for a service that manages external disks and their volumes.
The package uses only the Python standard library.

## Modules

- `diskmanager.models` holds the shared enums and records. The enums are
  `DiskStoreMediaType`, `DiskStoreDiskType`, `DiskStoreFsType`,
  `DiskStoreVolumeState` and `StorageDaemonCode`, which lists the request codes of the
  storage daemon. The records are the dataclasses `PartitionRecord`, `BlockInfo` and
  `VolumeStoreRecord`. It also defines the base exception `DiskManagerError` and
  `DaemonError`. `DaemonError` carries a numeric `code`.
- `diskmanager.uevent_env` provides `parse_uevent(raw)`. It reads `KEY=value` lines
  separated by newlines or NUL bytes, matching keys case-insensitively, and returns a
  `UeventEnv`. The values of ACTION, SUBSYSTEM and DEVTYPE are lower-cased, and
  `sys_path` is set to `"/sys" + dev_path`. MAJOR or MINOR values that are not plain
  numbers become 0. A message without ACTION, SUBSYSTEM or DEVTYPE raises
  `UeventParseError`. `UeventEnv.is_block_disk_event()` is true for
  `subsystem == "block"` and `dev_type == "disk"`. `to_lower(text)` lower-cases ASCII
  letters only.
- `diskmanager.voldata_uuid_store` provides `VoldataUuidStore`, a JSON file that maps
  filesystem UUIDs to `/mnt/data/voldata/dataN` paths for slots 1 to 1000. The file
  defaults to `/data/service/el1/public/disk_manager/voldata_uuid_mapping.json`. It is
  written atomically through a `.tmp` file. If a write fails, the in-memory mapping is
  rolled back. The store has these methods:
  - `resolve_mount_path(fs_uuid)` returns `(mount_path, created)`. A new UUID gets the
    highest used slot plus one. Once that would pass 1000, the entry in slot 1 is
    evicted and slot 1 is reused.
  - `replace_fs_uuid(old, new)` keeps the slot when a UUID changes.
  - `remove(fs_uuid)`, `try_get_mount_path(fs_uuid)`, `init()` and `uninit()`.

  The helpers `is_safe_fs_uuid`, `build_mount_path` and `parse_slot_from_mount_path`
  are exposed as well.
- `diskmanager.storage_daemon_proxy` holds `Parcel` and `StorageDaemonProxy`.
  - `Parcel` is a little-endian, 4-byte aligned container. It holds int32, uint32,
    int64, uint64 and bool values, length-prefixed UTF-16 strings, and attached file
    descriptors.
  - `StorageDaemonProxy` writes each request (mount, unmount, format, check, repair,
    partitioning, metadata, capacity, eject and others) to a parcel. It sends the
    parcel through a remote object's `send_request(code, data)` and decodes the reply.
    A non-zero reply status, or a reply that cannot be decoded, raises `DaemonError`.
- `diskmanager.storage_daemon_adapter` provides `StorageDaemonAdapter`. It obtains the
  remote object from a connector function the first time it is needed. If the remote
  object has `add_death_recipient`, the adapter registers itself there, so that a dead
  daemon makes it drop the connection. It then forwards every call to a
  `StorageDaemonProxy`. A connector that returns `None` raises `DaemonUnavailableError`.
- `diskmanager.block_info_table` provides `parse_block_infos(payload)`,
  `block_info_from_json`, `block_info_to_json` and `BlockInfoTable`.
  - `parse_block_infos(payload)` accepts a JSON array, an object with a `"blocks"`
    array, or a single object. It reads at most 20 array elements and keeps only
    entries that have a `diskId`.
  - `BlockInfoTable.reload()` fetches the `"data"` payload from its source, replaces
    the cache and returns the entry count.
  - `BlockInfoTable.try_get(disk_id)` returns a copy of the entry, or `None`.
  - `BlockInfoTable.to_json_with_extras(info, extras)` returns compact JSON with
    sorted keys.
- `diskmanager.usb_fuse_adapter` provides `UsbFuseAdapter`. It forwards FUSE mount and
  unmount notifications to an optional policy object and asks that object whether a
  filesystem type uses FUSE.
  - If there is no policy, or the policy fails, a notification raises
    `UsbFusePolicyError`.
  - `is_usb_fuse_by_type` falls back to `True` when the policy cannot answer.
  - `is_usb_fuse_enabled_for_fs_type` requires the parameter
    `const.enterprise.external_storage_device.manage.enable` to be true. It also
    requires the policy to agree and the filesystem type to be non-empty.

## Installing

```
pip install .
pip install ".[test]"
```

## Examples

```python
from diskmanager.uevent_env import parse_uevent

env = parse_uevent("ACTION=add\nSUBSYSTEM=block\nDEVTYPE=disk\nMAJOR=8\nMINOR=0\nDEVPATH=/devices/sda")
assert env.is_block_disk_event()
assert env.sys_path == "/sys/devices/sda"
```

```python
from diskmanager.voldata_uuid_store import VoldataUuidStore

store = VoldataUuidStore("/tmp/voldata_uuid_mapping.json")
path, created = store.resolve_mount_path("1234-ABCD")
# path == "/mnt/data/voldata/data1" and created is True on first use
```

```python
from diskmanager.storage_daemon_adapter import StorageDaemonAdapter
from diskmanager.storage_daemon_proxy import Parcel


class LoopbackRemote:
    def send_request(self, code, data):
        reply = Parcel()
        reply.write_int32(0)     # status: success
        reply.write_bool(True)   # isInUse
        return reply


adapter = StorageDaemonAdapter(LoopbackRemote)
assert adapter.query_usb_is_in_use("/dev/block/sda") is True
```

Failures are raised as exceptions, all derived from `DiskManagerError`. They are not
returned as status codes.

## What the package does not do

- It has no transport of its own. You supply the remote object that delivers parcels
  to the storage daemon.
- It has no service process and no command-line entry point.
- It does not itself react to uevents, track disks and volumes, parse partition tables
  or publish system events. Those decisions belong to the caller, who uses these
  modules to build them.

## Running the tests

```
pytest
```