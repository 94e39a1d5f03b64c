import argparse
import logging
import sys

from library_automount.config_loader import load_settings
from library_automount.dispatcher import ACTIONS, ActionDispatcher
from library_automount.errors import EXIT_FAILURE
from library_automount.logger import configure_logging
from library_automount.mount_service import MountService
from library_automount.peer import PeerHandle, PeerNotifier, RetriggerPolicy
from library_automount.volume_probe import VolumeInfoProbe

log = logging.getLogger(__name__)


class _ArgumentParser(argparse.ArgumentParser):
    # Exit status 2 means "unsupported filesystem" to our callers.
    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(EXIT_FAILURE, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="library-automount",
        description="Mount a removable drive as a Steam library and tell Steam about it.",
    )
    parser.add_argument("action", metavar="{mount|unmount|retrigger}",
                        help="what to do (udev's add/remove are accepted too)")
    parser.add_argument("device", help="device short name, e.g. sdb1")
    parser.add_argument("--config", default=None,
                        help="settings JSON (default: $LIBRARY_AUTOMOUNT_CONFIG or "
                             "/etc/library-automount/settings.json)")
    parser.add_argument("--log-level", default=None, help="override the configured log level")
    parser.add_argument("--log-file", default=None, help="also append log lines to this file")
    return parser


def build_dispatcher(settings: dict) -> ActionDispatcher:
    user = settings["library_user"]
    mount_cfg = settings["mount"]
    peer_cfg = settings["peer"]
    retrigger_cfg = settings["retrigger"]

    probe = VolumeInfoProbe(fstab_path=mount_cfg["fstab"])
    mount_service = MountService(
        probe,
        uid=int(user["uid"]),
        gid=int(user["gid"]),
        options=mount_cfg["options"],
        settle_timeout=mount_cfg["settle_timeout"],
    )
    peer = PeerHandle(
        process=peer_cfg["process"],
        helper_process=peer_cfg["helper_process"],
        client=peer_cfg["client"],
        scheme=peer_cfg["scheme"],
        uid=int(user["uid"]),
    )
    policy = RetriggerPolicy(
        wait_timeout=int(retrigger_cfg["wait_timeout"]),
        poll_interval=float(retrigger_cfg["poll_interval"]),
        settle_delay=float(retrigger_cfg["settle_delay"]),
    )
    return ActionDispatcher(
        mount_service,
        PeerNotifier(peer, probe),
        retrigger_policy=policy,
        lock_dir=settings["lock"]["directory"],
        lock_prefix=settings["lock"]["prefix"],
    )


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.action not in ACTIONS:
        parser.print_usage(sys.stderr)
        return EXIT_FAILURE

    settings = load_settings(args.config)
    configure_logging(args.log_level or settings["log_level"], log_file=args.log_file)
    log.debug("Handling %s for %s", args.action, args.device)

    try:
        return build_dispatcher(settings).dispatch(args.action, args.device)
    except Exception:
        log.exception("Unexpected failure handling %s %s", args.action, args.device)
        return EXIT_FAILURE
