"""In-memory table of block device descriptions fetched from the storage daemon."""

from __future__ import annotations

import dataclasses
import json
import logging
import threading
from collections.abc import Mapping
from typing import Any, Protocol

from diskmanager.models import BlockInfo, DaemonError
from diskmanager.storage_daemon_proxy import ERR_INVALID_DATA

_LOG = logging.getLogger(__name__)

BLOCK_INFO_MAX_COUNT = 20
BLOCK_INFO_SCAN_PAYLOAD_TYPE = "data"

_ASCII_SPACE = " \t\n\v\f\r"
_UINT64_MAX = 0xFFFFFFFFFFFFFFFF
_UINT32_MAX = 0xFFFFFFFF


class BlockInfoSource(Protocol):
    """Anything that can fetch the block info payload for a device type."""

    def get_block_info_by_type(self, block_type: str) -> str: ...


def _read_str(obj: Mapping[str, Any], key: str) -> str:
    value = obj.get(key)
    return value.strip(_ASCII_SPACE) if isinstance(value, str) else ""


def _read_uint64(obj: Mapping[str, Any], key: str) -> int:
    value = obj.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        return 0
    return value if 0 <= value <= _UINT64_MAX else 0


def _read_uint32(obj: Mapping[str, Any], key: str) -> int:
    value = _read_uint64(obj, key)
    return value if value <= _UINT32_MAX else 0


def _read_bool_like(obj: Mapping[str, Any], key: str) -> bool:
    value = obj.get(key)
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    return False


def block_info_from_json(obj: Any) -> BlockInfo:
    """Build a BlockInfo from its JSON object; raise ValueError if unusable."""
    if not isinstance(obj, dict):
        raise ValueError("block info is not an object")
    info = BlockInfo(
        disk_id=_read_str(obj, "diskId"),
        size_bytes=_read_uint64(obj, "sizeBytes"),
        vendor=_read_str(obj, "vendor"),
        model=_read_str(obj, "model"),
        interface_type=_read_str(obj, "interfaceType"),
        rpm=_read_uint32(obj, "rpm"),
        state=_read_str(obj, "state"),
        media_type=_read_str(obj, "mediaType"),
        removable=_read_bool_like(obj, "removable"),
        serial_number=_read_str(obj, "serialNumber"),
        pcie_path=_read_str(obj, "pciePath"),
        location=_read_str(obj, "location"),
        used_bytes=_read_uint64(obj, "usedBytes"),
        available_bytes=_read_uint64(obj, "availableBytes"),
        device_path=_read_str(obj, "devicePath"),
        port=_read_str(obj, "port"),
    )
    if not info.disk_id:
        raise ValueError("block info has no diskId")
    return info


def block_info_to_json(block_info: BlockInfo) -> dict[str, Any]:
    """Return the camelCase JSON object of a BlockInfo."""
    return {
        "sizeBytes": block_info.size_bytes,
        "vendor": block_info.vendor,
        "model": block_info.model,
        "interfaceType": block_info.interface_type,
        "rpm": block_info.rpm,
        "state": block_info.state,
        "mediaType": block_info.media_type,
        "removable": block_info.removable,
        "serialNumber": block_info.serial_number,
        "pciePath": block_info.pcie_path,
        "location": block_info.location,
        "diskId": block_info.disk_id,
        "usedBytes": block_info.used_bytes,
        "availableBytes": block_info.available_bytes,
        "devicePath": block_info.device_path,
        "port": block_info.port,
    }


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-standard JSON constant {name}")


def _ingest(table: dict[str, BlockInfo], obj: Any) -> None:
    try:
        info = block_info_from_json(obj)
    except ValueError:
        return
    table[info.disk_id] = info


def _ingest_array(table: dict[str, BlockInfo], items: list[Any]) -> None:
    if len(items) > BLOCK_INFO_MAX_COUNT:
        _LOG.warning(
            "block info ingest truncated len=%d max=%d", len(items), BLOCK_INFO_MAX_COUNT
        )
    for item in items[:BLOCK_INFO_MAX_COUNT]:
        if isinstance(item, dict):
            _ingest(table, item)


def parse_block_infos(payload: str) -> dict[str, BlockInfo]:
    """Parse a block info payload into a mapping keyed by disk id.

    The payload is a JSON array, an object with a "blocks" array, or a single
    object. At most BLOCK_INFO_MAX_COUNT array elements are read. Malformed
    JSON raises DaemonError with ERR_INVALID_DATA.
    """
    table: dict[str, BlockInfo] = {}
    if not payload:
        return table
    try:
        root = json.loads(payload, parse_constant=_reject_constant)
    except ValueError as exc:
        _LOG.warning("block info JSON parse failed len=%d", len(payload))
        raise DaemonError(ERR_INVALID_DATA, "invalid block info JSON") from exc
    if isinstance(root, list):
        _ingest_array(table, root)
    elif isinstance(root, dict):
        blocks = root.get("blocks")
        if isinstance(blocks, list):
            _ingest_array(table, blocks)
        else:
            _ingest(table, root)
    return table


class BlockInfoTable:
    """Caches block device descriptions by disk id; nothing is persisted."""

    def __init__(self, source: BlockInfoSource) -> None:
        self._source = source
        self._lock = threading.Lock()
        self._entries: dict[str, BlockInfo] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def reload(self) -> int:
        """Replace the table with fresh data from the daemon; return its size.

        On failure the previous contents are kept and the error is raised.
        """
        payload = self._source.get_block_info_by_type(BLOCK_INFO_SCAN_PAYLOAD_TYPE)
        entries = parse_block_infos(payload)
        with self._lock:
            self._entries = entries
        _LOG.info("block info table reloaded entries=%d", len(entries))
        return len(entries)

    def try_get(self, disk_id: str) -> BlockInfo | None:
        """Return a copy of the BlockInfo of disk_id, or None."""
        with self._lock:
            info = self._entries.get(disk_id)
            return dataclasses.replace(info) if info is not None else None

    @staticmethod
    def to_json_with_extras(
        block_info: BlockInfo, extras: Mapping[str, str] | None = None
    ) -> str:
        """Serialise block_info to compact JSON, adding or overriding extras."""
        obj = block_info_to_json(block_info)
        if extras:
            obj.update(extras)
        return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)