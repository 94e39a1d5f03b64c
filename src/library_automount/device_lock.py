"""
Per-device lock shared with the drive formatting tool.

The lock is an advisory ``flock`` on a file under the runtime directory.
Acquisition never waits: a second invocation for the same device gets
``LockBusy`` and exits, so udev retriggers cannot pile up behind a slow
mount or a running format.
"""

import fcntl
import logging
import os
from pathlib import Path

from library_automount.device import DeviceHandle
from library_automount.errors import LockBusy

log = logging.getLogger(__name__)

DEFAULT_LOCK_DIR = "/var/run"
DEFAULT_LOCK_PREFIX = "jupiter-automount-"


def lock_path_for(device: DeviceHandle,
                  lock_dir: str | Path = DEFAULT_LOCK_DIR,
                  prefix: str = DEFAULT_LOCK_PREFIX) -> Path:
    return Path(lock_dir) / f"{prefix}{device.lock_name}.lock"


class DeviceLock:
    def __init__(self, device: DeviceHandle,
                 lock_dir: str | Path = DEFAULT_LOCK_DIR,
                 prefix: str = DEFAULT_LOCK_PREFIX):
        self.device = device
        self.path = lock_path_for(device, lock_dir, prefix)
        self._fd: int | None = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self) -> "DeviceLock":
        """Take the lock or raise ``LockBusy`` immediately."""
        if self._fd is not None:
            return self
        # O_RDWR|O_CREAT mirrors `exec 9<>lockfile`; the file is never removed.
        fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            raise LockBusy(self.path) from None
        except OSError:
            os.close(fd)
            raise
        self._fd = fd
        log.debug("Acquired %s", self.path)
        return self

    def release(self) -> None:
        if self._fd is None:
            return
        try:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            os.close(self._fd)
            self._fd = None
        log.debug("Released %s", self.path)

    def __enter__(self):
        return self.acquire()

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False
