"""
Action state machine run once per udev-triggered invocation.

    mount      lock -> mount + scaffold -> addlibraryfolder
    unmount    lock -> mount point? -> removelibraryfolder
    retrigger  lock -> mount point? -> wait for steam -> addlibraryfolder

Each action is a single pass; nothing is retried here. Re-delivery is
up to whoever triggers us.
"""

import logging
from pathlib import Path

from library_automount.device import DeviceHandle
from library_automount.device_lock import DEFAULT_LOCK_DIR, DEFAULT_LOCK_PREFIX, DeviceLock
from library_automount.errors import EXIT_OK, AutomountError, LockBusy, UsageError
from library_automount.mount_service import MountService
from library_automount.peer import ADD_LIBRARY, REMOVE_LIBRARY, PeerNotifier, RetriggerPolicy

log = logging.getLogger(__name__)

MOUNT = "mount"
UNMOUNT = "unmount"
RETRIGGER = "retrigger"

ACTIONS = {
    MOUNT: MOUNT,
    UNMOUNT: UNMOUNT,
    RETRIGGER: RETRIGGER,
    # udev action names, as passed by the systemd unit
    "add": MOUNT,
    "remove": UNMOUNT,
}


def resolve_action(token: str) -> str:
    try:
        return ACTIONS[token]
    except KeyError:
        raise UsageError(f"unknown action: {token!r}") from None


class ActionDispatcher:
    def __init__(self, mount_service: MountService, notifier: PeerNotifier,
                 retrigger_policy: RetriggerPolicy | None = None,
                 lock_dir: str | Path = DEFAULT_LOCK_DIR,
                 lock_prefix: str = DEFAULT_LOCK_PREFIX):
        self.mount_service = mount_service
        self.notifier = notifier
        self.probe = mount_service.probe
        self.retrigger_policy = retrigger_policy or RetriggerPolicy()
        self.lock_dir = lock_dir
        self.lock_prefix = lock_prefix

    def dispatch(self, action_token: str, device_name: str) -> int:
        """Run one action for one device and return the process exit status."""
        try:
            action = resolve_action(action_token)
            device = DeviceHandle(device_name)
        except UsageError as exc:
            log.error("%s", exc)
            return exc.exit_status

        handler = {
            MOUNT: self.do_mount,
            UNMOUNT: self.do_unmount,
            RETRIGGER: self.do_retrigger,
        }[action]

        try:
            with DeviceLock(device, self.lock_dir, self.lock_prefix):
                handler(device)
        except LockBusy as exc:
            # Never report success here: systemd would mark the unit started
            # and ignore further start requests without anything mounted.
            log.warning("%s: ignoring action %s", exc, action_token)
            return exc.exit_status
        except AutomountError as exc:
            log.error("%s", exc)
            return exc.exit_status
        return EXIT_OK

    def do_mount(self, device: DeviceHandle) -> None:
        result = self.mount_service.mount(device)
        if result is None:
            return
        self.notifier.notify(ADD_LIBRARY, device, result.mount_path)

    def do_unmount(self, device: DeviceHandle) -> None:
        # The mount service tears the mount down; we only tell steam.
        mount_point = self.probe.current_mount_point(device)
        if not mount_point:
            log.info("%s is not mounted, nothing to remove", device)
            return
        self.notifier.notify(REMOVE_LIBRARY, device, mount_point)

    def do_retrigger(self, device: DeviceHandle) -> None:
        mount_point = self.probe.current_mount_point(device)
        if not mount_point:
            log.info("%s is not mounted, nothing to announce", device)
            return
        # Retriggers typically run in parallel with steam starting up.
        self.retrigger_policy.prepare(self.notifier.peer)
        self.notifier.notify(ADD_LIBRARY, device, mount_point)
