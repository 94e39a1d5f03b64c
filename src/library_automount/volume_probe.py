import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import psutil
import pyudev

from library_automount.device import DeviceHandle

log = logging.getLogger(__name__)

DEFAULT_FSTAB = "/etc/fstab"


@dataclass(frozen=True)
class VolumeMetadata:
    """Filesystem attributes of a block device; ``None`` means absent."""

    uuid: Optional[str] = None
    label: Optional[str] = None
    fstype: Optional[str] = None


def parse_blkid_export(text: str) -> VolumeMetadata:
    """Parse ``blkid -o export`` output (KEY=value lines)."""
    fields = {}
    for line in text.splitlines():
        key, sep, value = line.partition("=")
        if sep:
            fields[key.strip()] = value.strip()
    return VolumeMetadata(
        uuid=fields.get("UUID"),
        label=fields.get("LABEL"),
        fstype=fields.get("TYPE"),
    )


def fstab_source_ids(text: str) -> list[str]:
    """
    Return the identifier value of every ``KEY=value`` source in an fstab.

    ``UUID=abcd /mnt ext4 ...`` yields ``abcd``; plain device paths are
    returned unchanged so they can never match a bare UUID by accident.
    """
    ids = []
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        source = line.split()[0]
        _, sep, value = source.partition("=")
        ids.append(value.strip("\"'") if sep else source)
    return ids


class VolumeInfoProbe:
    def __init__(self, fstab_path: str | Path = DEFAULT_FSTAB, udev_context=None, runner=subprocess.run):
        self.fstab_path = Path(fstab_path)
        self._udev_ctx = udev_context
        self._run = runner

    @property
    def udev_context(self):
        if self._udev_ctx is None:
            self._udev_ctx = pyudev.Context()
        return self._udev_ctx

    def current_mount_point(self, device: DeviceHandle) -> Optional[str]:
        """First mount target of ``device`` in the live mount table, if any."""
        for part in psutil.disk_partitions(all=True):
            if part.device == device.path:
                return part.mountpoint
        return None

    def metadata(self, device: DeviceHandle) -> VolumeMetadata:
        try:
            udev_dev = pyudev.Devices.from_device_file(self.udev_context, device.path)
        except (pyudev.DeviceNotFoundError, ValueError) as exc:
            log.debug("udev has no record of %s (%s), asking blkid", device, exc)
            return self._blkid_metadata(device)

        props = udev_dev.properties
        return VolumeMetadata(
            uuid=props.get("ID_FS_UUID"),
            label=props.get("ID_FS_LABEL"),
            fstype=props.get("ID_FS_TYPE"),
        )

    def _blkid_metadata(self, device: DeviceHandle) -> VolumeMetadata:
        cp = self._run(["blkid", "-o", "export", device.path],
                       capture_output=True, text=True, check=False)
        if cp.returncode != 0:
            log.warning("blkid found no filesystem on %s (status %s)", device, cp.returncode)
            return VolumeMetadata()
        return parse_blkid_export(cp.stdout or "")

    def is_known_in_fstab(self, uuid: Optional[str]) -> bool:
        if not uuid:
            return False
        try:
            text = self.fstab_path.read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError:
            return False
        return uuid in fstab_source_ids(text)
