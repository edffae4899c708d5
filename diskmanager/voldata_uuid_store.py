"""Persistent mapping between volume fs UUIDs and voldata mount paths."""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from diskmanager.models import DiskManagerError

_LOG = logging.getLogger(__name__)

DISK_MANAGER_DATA_PATH = "/data/service/el1/public/disk_manager/"
VOLDATA_UUID_MAPPING_JSON = "voldata_uuid_mapping.json"
DEFAULT_MAPPING_PATH = DISK_MANAGER_DATA_PATH + VOLDATA_UUID_MAPPING_JSON
TMP_FILE_SUFFIX = ".tmp"
VOLDATA_MOUNT_PREFIX = "/mnt/data/voldata/data"
MAX_VOLDATA_SLOT_COUNT = 1000


def is_safe_fs_uuid(fs_uuid: str) -> bool:
    """Return True if fs_uuid is non-empty and cannot escape a directory."""
    return bool(fs_uuid) and ".." not in fs_uuid and "/" not in fs_uuid


def build_mount_path(slot_index: int) -> str:
    """Return the voldata mount path of a slot."""
    return f"{VOLDATA_MOUNT_PREFIX}{slot_index}"


def parse_slot_from_mount_path(mount_path: str) -> int | None:
    """Return the slot of a voldata mount path, or None if it is not one."""
    if len(mount_path) <= len(VOLDATA_MOUNT_PREFIX):
        return None
    if not mount_path.startswith(VOLDATA_MOUNT_PREFIX):
        return None
    digits = mount_path[len(VOLDATA_MOUNT_PREFIX):]
    if not digits.isascii() or not digits.isdigit():
        return None
    slot = int(digits)
    if not 1 <= slot <= MAX_VOLDATA_SLOT_COUNT:
        return None
    return slot


@dataclass
class VoldataUuidEntry:
    """One fs UUID to mount path mapping."""

    fs_uuid: str = ""
    mount_path: str = ""
    slot_index: int = 0

    @classmethod
    def from_json(cls, obj: Any) -> VoldataUuidEntry:
        """Build an entry from its JSON object; raise ValueError if invalid."""
        if not isinstance(obj, dict):
            raise ValueError("entry is not an object")
        fs_uuid = obj.get("fsUuid")
        mount_path = obj.get("mountPath")
        if not isinstance(fs_uuid, str):
            raise ValueError("fsUuid missing or not a string")
        if not isinstance(mount_path, str):
            raise ValueError("mountPath missing or not a string")
        slot = parse_slot_from_mount_path(mount_path)
        if slot is None:
            raise ValueError(f"invalid voldata mount path: {mount_path!r}")
        if not is_safe_fs_uuid(fs_uuid):
            raise ValueError(f"unsafe fsUuid: {fs_uuid!r}")
        return cls(fs_uuid=fs_uuid, mount_path=mount_path, slot_index=slot)

    def to_json(self) -> dict[str, Any]:
        """Return the JSON object of this entry."""
        return {
            "fsUuid": self.fs_uuid,
            "mountPath": self.mount_path,
            "slotIndex": self.slot_index,
        }


class VoldataUuidStore:
    """Maps fs UUIDs to /mnt/data/voldata/dataX paths, persisted as JSON."""

    def __init__(self, file_path: str | os.PathLike[str] = DEFAULT_MAPPING_PATH) -> None:
        self.file_path = Path(file_path)
        self._init_lock = threading.Lock()
        self._data_lock = threading.RLock()
        self._entries: dict[str, VoldataUuidEntry] = {}
        self._initialized = False

    def __len__(self) -> int:
        with self._data_lock:
            return len(self._entries)

    def __contains__(self, fs_uuid: object) -> bool:
        with self._data_lock:
            return fs_uuid in self._entries

    def init(self) -> None:
        """Load the mapping file once, creating it empty if absent."""
        with self._init_lock:
            if self._initialized:
                return
            with self._data_lock:
                self._load()
            self._initialized = True
            _LOG.info("VoldataUuidStore init ok entries=%d", len(self._entries))

    def uninit(self) -> None:
        """Drop the in-memory mapping; the next call reloads it."""
        with self._init_lock:
            if not self._initialized:
                return
            with self._data_lock:
                self._entries.clear()
            self._initialized = False

    def resolve_mount_path(self, fs_uuid: str) -> tuple[str, bool]:
        """Return (mount_path, created) for fs_uuid, allocating a slot if new."""
        if not is_safe_fs_uuid(fs_uuid):
            raise DiskManagerError(f"invalid fsUuid: {fs_uuid!r}")
        self.init()
        with self._data_lock:
            existing = self._entries.get(fs_uuid)
            if existing is not None:
                return existing.mount_path, False
            backup = dict(self._entries)
            slot = self._allocate_next_slot()
            entry = VoldataUuidEntry(
                fs_uuid=fs_uuid, mount_path=build_mount_path(slot), slot_index=slot
            )
            self._entries[fs_uuid] = entry
            self._commit(backup)
            _LOG.info("resolve new uuid slot=%d path=%s", slot, entry.mount_path)
            return entry.mount_path, True

    def remove(self, fs_uuid: str) -> None:
        """Remove the mapping of fs_uuid; a missing mapping is not an error."""
        if not is_safe_fs_uuid(fs_uuid):
            raise DiskManagerError(f"invalid fsUuid: {fs_uuid!r}")
        self.init()
        with self._data_lock:
            if fs_uuid not in self._entries:
                return
            backup = dict(self._entries)
            del self._entries[fs_uuid]
            self._commit(backup)

    def replace_fs_uuid(self, old_fs_uuid: str, new_fs_uuid: str) -> None:
        """Move the slot of old_fs_uuid to new_fs_uuid.

        No-op if old_fs_uuid has no mapping; raises if new_fs_uuid has one.
        """
        if not is_safe_fs_uuid(old_fs_uuid) or not is_safe_fs_uuid(new_fs_uuid):
            raise DiskManagerError("invalid fsUuid")
        if old_fs_uuid == new_fs_uuid:
            return
        self.init()
        with self._data_lock:
            old_entry = self._entries.get(old_fs_uuid)
            if old_entry is None:
                return
            if new_fs_uuid in self._entries:
                raise DiskManagerError(f"fsUuid already mapped: {new_fs_uuid!r}")
            backup = dict(self._entries)
            del self._entries[old_fs_uuid]
            self._entries[new_fs_uuid] = VoldataUuidEntry(
                fs_uuid=new_fs_uuid,
                mount_path=old_entry.mount_path,
                slot_index=old_entry.slot_index,
            )
            self._commit(backup)

    def try_get_mount_path(self, fs_uuid: str) -> str | None:
        """Return the mapped mount path of fs_uuid, or None."""
        if not is_safe_fs_uuid(fs_uuid):
            return None
        with self._data_lock:
            entry = self._entries.get(fs_uuid)
            return entry.mount_path if entry is not None else None

    def _commit(self, backup: dict[str, VoldataUuidEntry]) -> None:
        try:
            self._save()
        except DiskManagerError:
            self._entries = backup
            raise

    def _evict_slot_one_if_full(self) -> None:
        if len(self._entries) < MAX_VOLDATA_SLOT_COUNT:
            return
        victim = next(
            (key for key, entry in self._entries.items() if entry.slot_index == 1),
            None,
        )
        if victim is None and self._entries:
            _LOG.warning("no slot1 entry, removing oldest")
            victim = next(iter(self._entries))
        if victim is not None:
            del self._entries[victim]

    def _allocate_next_slot(self) -> int:
        max_slot = max((e.slot_index for e in self._entries.values()), default=0)
        next_slot = max_slot + 1
        if next_slot > MAX_VOLDATA_SLOT_COUNT:
            self._evict_slot_one_if_full()
            next_slot = 1
        return next_slot

    def _load(self) -> None:
        self._entries.clear()
        if not self.file_path.exists():
            self._save()
            return
        try:
            text = self.file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise DiskManagerError(f"cannot read {self.file_path}: {exc}") from exc
        if not text:
            return
        try:
            root = json.loads(text)
        except json.JSONDecodeError as exc:
            raise DiskManagerError(f"invalid JSON in {self.file_path}") from exc
        if not isinstance(root, list):
            raise DiskManagerError("mapping root is not an array")
        for item in root:
            if len(self._entries) >= MAX_VOLDATA_SLOT_COUNT:
                _LOG.warning("load truncated at max=%d", MAX_VOLDATA_SLOT_COUNT)
                break
            try:
                entry = VoldataUuidEntry.from_json(item)
            except ValueError:
                _LOG.warning("skip invalid mapping item")
                continue
            self._entries[entry.fs_uuid] = entry

    def _save(self) -> None:
        payload = json.dumps(
            [entry.to_json() for entry in self._entries.values()],
            separators=(",", ":"),
            ensure_ascii=False,
        )
        temp_path = self.file_path.with_name(self.file_path.name + TMP_FILE_SUFFIX)
        try:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise DiskManagerError(f"cannot create directory: {exc}") from exc
        try:
            with open(temp_path, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(temp_path, self.file_path)
        except OSError as exc:
            try:
                os.remove(temp_path)
            except OSError:
                pass
            raise DiskManagerError(f"cannot write {self.file_path}: {exc}") from exc