"""
Tell the Steam client about library folders.

Commands travel as ``steam://<command>/<arg>`` URLs handed to the
client binary inside the desktop user's systemd manager. Delivery is
fire-and-forget: the only feedback is the exit status of the transient
unit, which says nothing about whether Steam acted on the URL.
"""

import logging
import shlex
import subprocess
import time
from dataclasses import dataclass
from typing import Callable, Optional

import psutil

from library_automount.device import DeviceHandle
from library_automount.volume_probe import VolumeInfoProbe

log = logging.getLogger(__name__)

ADD_LIBRARY = "addlibraryfolder"
REMOVE_LIBRARY = "removelibraryfolder"


def urlencode(text: str) -> str:
    """Percent-encode every byte of ``text``, unreserved characters included."""
    return "".join(f"%{byte:02x}" for byte in text.encode("utf-8"))


def process_running(name: str) -> bool:
    """Equivalent of ``pgrep -x name``."""
    for proc in psutil.process_iter(["name"]):
        if proc.info.get("name") == name:
            return True
    return False


class PeerHandle:
    """The Steam client as seen from a root service."""

    def __init__(self,
                 process: str = "steam",
                 helper_process: str = "steamwebhelper",
                 client: str = "./.steam/root/ubuntu12_32/steam",
                 scheme: str = "steam",
                 uid: int = 1000,
                 runner=subprocess.run):
        self.process = process
        self.helper_process = helper_process
        self.client = client
        self.scheme = scheme
        self.uid = uid
        self._run = runner

    def is_running(self) -> bool:
        return process_running(self.process)

    def is_ready(self) -> bool:
        # steamwebhelper only appears once the client UI is coming up
        return process_running(self.helper_process)

    def url(self, command: str, argument: str) -> str:
        return f"{self.scheme}://{command}/{argument}"

    def send(self, url: str) -> int:
        """Hand ``url`` to the client in the user's manager; return the exit status."""
        # TODO: pass -ifrunning and resend while it returns -1 and the client
        # is still alive; that would replace RetriggerPolicy's blind delay.
        cmd = [
            "systemd-run", "-M", f"{self.uid}@", "--user", "--collect", "--wait",
            "sh", "-c", f"{self.client} {shlex.quote(url)}",
        ]
        cp = self._run(cmd, capture_output=True, text=True, check=False)
        if cp.returncode != 0 and cp.stderr:
            log.warning("steam client: %s", cp.stderr.strip())
        return cp.returncode


@dataclass
class RetriggerPolicy:
    """
    How long to wait for the client before re-announcing a library.

    A retrigger usually races the client's own startup. We poll for the
    helper process, then sleep a fixed delay because the URL handler
    comes up some seconds after it.
    """

    wait_timeout: int = 10
    poll_interval: float = 1.0
    settle_delay: float = 6.0
    sleep: Callable[[float], None] = time.sleep

    def wait_for_peer_ready(self, peer: PeerHandle) -> bool:
        log.info("Waiting up to %s seconds for steam to load", self.wait_timeout)
        polls = 0
        while not peer.is_ready():
            if polls >= self.wait_timeout:
                log.info("steam not ready after %s seconds, continuing anyway", self.wait_timeout)
                return False
            polls += 1
            self.sleep(self.poll_interval)
        return True

    def prepare(self, peer: PeerHandle) -> None:
        self.wait_for_peer_ready(peer)
        if self.settle_delay:
            self.sleep(self.settle_delay)


class PeerNotifier:
    def __init__(self, peer: PeerHandle, probe: VolumeInfoProbe):
        self.peer = peer
        self.probe = probe

    def notify(self, command: str, device: DeviceHandle, mount_path: Optional[str] = None) -> bool:
        """
        Send ``command`` for the device's library; True if a URL was sent.

        The live mount point wins over ``mount_path`` since the drive may
        already have been mounted somewhere else.
        """
        if not self.peer.is_running():
            log.info("Could not send steam URL %s for %s -- steam not running", command, device)
            return False

        current = self.probe.current_mount_point(device) or mount_path
        if not current:
            log.warning("No mount point known for %s, not sending %s", device, command)
            return False

        url = self.peer.url(command, urlencode(current))
        status = self.peer.send(url)
        if status != 0:
            log.warning("Steam URL %s exited with status %s", url, status)
        else:
            log.info("Sent URL to steam: %s", url)
        return True
