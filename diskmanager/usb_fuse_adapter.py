"""Notification of and queries to the external-volume FUSE policy."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from diskmanager.models import DiskManagerError

_LOG = logging.getLogger(__name__)

ENTERPRISE_ENABLE_PARAM = "const.enterprise.external_storage_device.manage.enable"

_TRUE_WORDS = frozenset({"1", "y", "yes", "on", "true"})
_FALSE_WORDS = frozenset({"0", "n", "no", "off", "false"})


class UsbFusePolicyError(DiskManagerError):
    """The FUSE policy is missing or reported a failure."""


def _bool_parameter(parameters: Mapping[str, str], key: str, default: bool) -> bool:
    value = parameters.get(key)
    if value is None:
        return default
    if value in _TRUE_WORDS:
        return True
    if value in _FALSE_WORDS:
        return False
    return default


class UsbFuseAdapter:
    """Forwards FUSE mount events to an optional policy and queries it.

    ``policy`` may offer ``notify_external_volume_fuse_mount(fuse_fd,
    volume_id, fs_uuid)``, ``notify_external_volume_fuse_umount(volume_id)``
    and ``is_usb_fuse_by_type(fs_type) -> bool``; a policy signals failure
    by raising. ``parameters`` holds the system parameters consulted.
    """

    def __init__(self, policy: Any = None, parameters: Mapping[str, str] | None = None) -> None:
        self._policy = policy
        self._parameters: Mapping[str, str] = parameters if parameters is not None else {}
        if policy is None:
            _LOG.warning("usb fuse policy not loaded")

    def _function(self, name: str) -> Any:
        if self._policy is None:
            return None
        return getattr(self._policy, name, None)

    def notify_mount(self, fuse_fd: int, volume_id: str, fs_uuid: str) -> None:
        """Tell the policy that a FUSE mount of volume_id was made."""
        _LOG.info("notify_mount fuse_fd=%d volume_id=%s", fuse_fd, volume_id)
        if self._policy is None:
            raise UsbFusePolicyError("usb fuse policy not loaded")
        func = self._function("notify_external_volume_fuse_mount")
        if func is None:
            raise UsbFusePolicyError("policy lacks notify_external_volume_fuse_mount")
        try:
            func(fuse_fd, volume_id, fs_uuid)
        except Exception as exc:
            raise UsbFusePolicyError("policy rejected fuse mount notification") from exc

    def notify_umount(self, volume_id: str) -> None:
        """Tell the policy that the FUSE mount of volume_id was removed."""
        _LOG.info("notify_umount volume_id=%s", volume_id)
        if self._policy is None:
            raise UsbFusePolicyError("usb fuse policy not loaded")
        func = self._function("notify_external_volume_fuse_umount")
        if func is None:
            raise UsbFusePolicyError("policy lacks notify_external_volume_fuse_umount")
        try:
            func(volume_id)
        except Exception as exc:
            raise UsbFusePolicyError("policy rejected fuse umount notification") from exc

    def is_usb_fuse_by_type(self, fs_type: str) -> bool:
        """Ask the policy whether fs_type uses FUSE; True if it cannot answer."""
        func = self._function("is_usb_fuse_by_type")
        if func is None:
            _LOG.error("is_usb_fuse_by_type: policy unavailable, default enabled")
            return True
        try:
            return bool(func(fs_type))
        except Exception:
            _LOG.error("is_usb_fuse_by_type: policy failed, default enabled")
            return True

    def is_usb_fuse_enabled_for_fs_type(self, fs_type: str) -> bool:
        """Return True if enterprise management is on and fs_type uses FUSE."""
        enabled_by_ccm = _bool_parameter(self._parameters, ENTERPRISE_ENABLE_PARAM, False)
        enabled_by_type = self.is_usb_fuse_by_type(fs_type) if enabled_by_ccm else True
        _LOG.info(
            "fuse enabled_by_ccm=%s enabled_by_type=%s fs_type=%s",
            enabled_by_ccm, enabled_by_type, fs_type,
        )
        return enabled_by_ccm and enabled_by_type and bool(fs_type)