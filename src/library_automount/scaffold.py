"""
Library scaffold written onto a freshly mounted drive.

Steam in game mode only needs ``steamapps/``; desktop mode looks for a
``SteamLibrary`` folder and a ``libraryfolder.vdf`` marker, so both are
created too. Every step is skipped when its artifact already exists.
"""

import logging
import os
import shutil
from pathlib import Path

log = logging.getLogger(__name__)

STEAMAPPS_DIR = "steamapps"
DESKTOP_LIBRARY_LINK = "SteamLibrary"
LIBRARY_MARKER = "libraryfolder.vdf"
LIBRARY_MARKER_MODE = 0o755
LIBRARY_MARKER_CONTENT = (
    '"libraryfolder"\n'
    "{\n"
    '\t"contentid"\t\t""\n'
    '\t"label"\t\t""\n'
    "}\n"
)


def remove_lost_found(mount_path: str | Path) -> bool:
    lost_found = Path(mount_path) / "lost+found"
    if lost_found.is_dir() and not lost_found.is_symlink():
        shutil.rmtree(lost_found)
        log.debug("Removed %s", lost_found)
        return True
    return False


def chown_tree(root: str | Path, uid: int, gid: int) -> None:
    """``chown -R uid:gid root`` without following symlinks."""
    os.lchown(root, uid, gid)
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames + filenames:
            os.lchown(os.path.join(dirpath, name), uid, gid)


class LibraryScaffold:
    def __init__(self, mount_path: str | Path, uid: int = 1000, gid: int = 1000):
        self.root = Path(mount_path)
        self.uid = uid
        self.gid = gid

    @property
    def steamapps(self) -> Path:
        return self.root / STEAMAPPS_DIR

    @property
    def desktop_link(self) -> Path:
        return self.root / DESKTOP_LIBRARY_LINK

    @property
    def marker(self) -> Path:
        return self.root / LIBRARY_MARKER

    def ensure(self) -> list[Path]:
        """Create missing artifacts, fix ownership; return what was created."""
        created = []

        if not self.steamapps.is_dir():
            self.steamapps.mkdir()
            created.append(self.steamapps)

        # lexists: a dangling link left by an older mount still counts as present
        if not os.path.lexists(self.desktop_link):
            self.desktop_link.symlink_to(self.root)
            created.append(self.desktop_link)

        # The drive is untrusted: never write or chmod through a link it carries.
        foreign_marker = self.marker.is_symlink()
        if foreign_marker:
            log.warning("%s is a symlink, leaving it alone", self.marker)
        elif not self.marker.is_file():
            self.marker.write_text(LIBRARY_MARKER_CONTENT, encoding="utf-8")
            created.append(self.marker)

        chown_tree(self.root, self.uid, self.gid)
        if not foreign_marker:
            os.chmod(self.marker, LIBRARY_MARKER_MODE)

        for path in created:
            log.debug("Created %s", path)
        return created
