"""
Mount a drive through UDisks2 and turn it into a Steam library.

UDisks2's Mount method cannot be told which user to mount as, so the
D-Bus call is made from a transient ``systemd-run --uid`` process. That
user needs the paired polkit rule granting
``filesystem-mount-other-seat``. The call is deliberately not a
``--user`` unit: the user's session may not be running yet.
"""

import json
import logging
import subprocess
from dataclasses import dataclass
from typing import Optional

from library_automount.device import DeviceHandle
from library_automount.errors import (
    FilesystemNotSupported,
    MountReplyParseError,
    MountServiceError,
    SettleTimeout,
)
from library_automount.scaffold import LibraryScaffold, remove_lost_found
from library_automount.volume_probe import VolumeInfoProbe

log = logging.getLogger(__name__)

# Steam only formats ext4, and the scaffold needs symlinks.
SUPPORTED_FSTYPE = "ext4"
DEFAULT_MOUNT_OPTIONS = "rw,noatime"


@dataclass(frozen=True)
class MountResult:
    mount_path: str


def parse_mount_reply(reply: str) -> Optional[str]:
    """
    Extract the mount path from ``busctl --json=short`` output.

    Expected shape: ``{"type":"s","data":["/run/media/deck/UUID"]}``.
    Returns None for anything else.
    """
    try:
        doc = json.loads(reply)
    except (TypeError, ValueError):
        return None
    if not isinstance(doc, dict):
        return None
    data = doc.get("data")
    if not isinstance(data, list) or not data:
        return None
    path = data[0]
    if not isinstance(path, str) or not path:
        return None
    return path


class MountService:
    def __init__(self, probe: VolumeInfoProbe,
                 uid: int = 1000, gid: int = 1000,
                 options: str = DEFAULT_MOUNT_OPTIONS,
                 settle_timeout: Optional[int] = None,
                 runner=subprocess.run):
        self.probe = probe
        self.uid = uid
        self.gid = gid
        self.options = options
        self.settle_timeout = settle_timeout
        self._run = runner

    def settle(self) -> None:
        # We were started by a udev rule (as a --no-block service), so UDisks2
        # may not know the drive until every in-flight rule has finished.
        cmd = ["udevadm", "settle"]
        if self.settle_timeout is not None:
            cmd.append(f"--timeout={int(self.settle_timeout)}")
        cp = self._run(cmd, capture_output=True, text=True, check=False)
        if cp.returncode != 0:
            message = f"Failed to wait for `udevadm settle` (status = {cp.returncode})"
            stderr = (cp.stderr or "").strip()
            if stderr:
                message = f"{message}: {stderr}"
            raise SettleTimeout(message)

    def udisks_mount_command(self, device: DeviceHandle) -> list[str]:
        return [
            "systemd-run", f"--uid={self.uid}", "--pipe",
            "busctl", "call",
            "--allow-interactive-authorization=false",
            "--expect-reply=true",
            "--json=short",
            "org.freedesktop.UDisks2",
            device.object_path,
            "org.freedesktop.UDisks2.Filesystem",
            "Mount", "a{sv}", "2",
            "auth.no_user_interaction", "b", "true",
            "options", "s", self.options,
        ]

    def call_udisks_mount(self, device: DeviceHandle) -> str:
        cp = self._run(self.udisks_mount_command(device), capture_output=True, text=True, check=False)
        if cp.returncode != 0:
            raise MountServiceError(device, cp.returncode, (cp.stderr or "").strip())
        reply = cp.stdout or ""
        mount_path = parse_mount_reply(reply)
        if mount_path is None:
            raise MountReplyParseError(device, reply.strip())
        return mount_path

    def prepare_library(self, mount_path: str) -> None:
        """Best-effort scaffold; failures are logged, the mount stays."""
        try:
            remove_lost_found(mount_path)
            LibraryScaffold(mount_path, self.uid, self.gid).ensure()
        except OSError as exc:
            log.error("Could not prepare Steam library at %s: %s", mount_path, exc)
            return
        log.info("Prepared Steam library at %s", mount_path)

    def mount(self, device: DeviceHandle) -> Optional[MountResult]:
        """
        Mount ``device`` and scaffold it.

        Returns None when fstab owns the drive. Raises
        FilesystemNotSupported, SettleTimeout, MountServiceError or
        MountReplyParseError on failure.
        """
        meta = self.probe.metadata(device)

        if self.probe.is_known_in_fstab(meta.uuid):
            log.info("%s is mounted as part of %s. Aborting...", device, self.probe.fstab_path)
            return None

        if meta.fstype != SUPPORTED_FSTYPE:
            raise FilesystemNotSupported(device, meta.fstype, meta)

        self.settle()

        mount_path = self.call_udisks_mount(device)
        log.info("**** Mounted %s at %s ****", device, mount_path)

        self.prepare_library(mount_path)
        log.info("%s added as a steam library at %s", device, mount_path)
        return MountResult(mount_path)
