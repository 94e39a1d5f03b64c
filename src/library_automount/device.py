from dataclasses import dataclass
from pathlib import Path

from library_automount.errors import UsageError

UDISKS_BLOCK_ROOT = "/org/freedesktop/UDisks2/block_devices"


def _udisks_escape(name: str) -> str:
    """Escape a kernel name the way UDisks2 builds its object paths."""
    out = []
    for byte in name.encode("utf-8"):
        ch = chr(byte)
        if ch.isascii() and ch.isalnum():
            out.append(ch)
        else:
            out.append(f"_{byte:02x}")
    return "".join(out)


@dataclass(frozen=True)
class DeviceHandle:
    """A block device partition identified by its short name, e.g. ``sdb1``."""

    name: str

    def __post_init__(self):
        if not self.name or ".." in self.name or self.name.startswith("/"):
            raise UsageError(f"invalid device name: {self.name!r}")

    @property
    def path(self) -> str:
        return str(Path("/dev") / self.name)

    @property
    def lock_name(self) -> str:
        return self.name.replace("/", "_")

    @property
    def object_path(self) -> str:
        return f"{UDISKS_BLOCK_ROOT}/{_udisks_escape(self.name)}"

    def __str__(self):
        return self.path
