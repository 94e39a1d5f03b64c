import sys
import types
import unittest
from pathlib import Path
from unittest import mock

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = REPO_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from library_automount import mount_service
from library_automount.device import DeviceHandle
from library_automount.errors import (
    EXIT_FAILURE,
    EXIT_UNSUPPORTED_FS,
    FilesystemNotSupported,
    MountReplyParseError,
    MountServiceError,
    SettleTimeout,
)
from library_automount.mount_service import MountResult, MountService, parse_mount_reply
from library_automount.volume_probe import VolumeMetadata

REPLY = '{"type":"s","data":["/run/media/1000/ABCD-1234"]}\n'


class FakeProbe:
    def __init__(self, meta, in_fstab=False):
        self.meta = meta
        self.in_fstab = in_fstab
        self.fstab_path = Path("/etc/fstab")

    def metadata(self, device):
        return self.meta

    def is_known_in_fstab(self, uuid):
        return self.in_fstab


class FakeRunner:
    """Answers udevadm and systemd-run with canned results."""

    def __init__(self, settle=0, mount=(0, REPLY, "")):
        self.settle = settle
        self.mount = mount
        self.settle_stderr = ""
        self.calls = []

    def __call__(self, cmd, **kwargs):
        self.calls.append(cmd)
        if cmd[0] == "udevadm":
            return types.SimpleNamespace(returncode=self.settle, stdout="", stderr=self.settle_stderr)
        rc, out, err = self.mount
        return types.SimpleNamespace(returncode=rc, stdout=out, stderr=err)

    @property
    def programs(self):
        return [c[0] for c in self.calls]


EXT4 = VolumeMetadata(uuid="ABCD-1234", label=None, fstype="ext4")


class ParseReplyTests(unittest.TestCase):
    def test_expected_shape(self):
        self.assertEqual(parse_mount_reply(REPLY), "/run/media/1000/ABCD-1234")

    def test_malformed(self):
        for reply in ("", "not json", "[]", '{"type":"s"}', '{"data":[]}', '{"data":[42]}', '{"data":[""]}'):
            self.assertIsNone(parse_mount_reply(reply), reply)


class MountServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.device = DeviceHandle("sdb1")
        patcher = mock.patch.object(MountService, "prepare_library")
        self.prepare = patcher.start()
        self.addCleanup(patcher.stop)

    def test_success(self):
        runner = FakeRunner()
        svc = MountService(FakeProbe(EXT4), runner=runner)

        result = svc.mount(self.device)

        self.assertEqual(result, MountResult("/run/media/1000/ABCD-1234"))
        self.assertEqual(runner.programs, ["udevadm", "systemd-run"])
        self.prepare.assert_called_once_with("/run/media/1000/ABCD-1234")

    def test_udisks_call_shape(self):
        cmd = MountService(FakeProbe(EXT4), uid=1000).udisks_mount_command(self.device)
        self.assertEqual(cmd[:3], ["systemd-run", "--uid=1000", "--pipe"])
        self.assertIn("--allow-interactive-authorization=false", cmd)
        self.assertIn("/org/freedesktop/UDisks2/block_devices/sdb1", cmd)
        self.assertEqual(cmd[-6:], ["auth.no_user_interaction", "b", "true", "options", "s", "rw,noatime"])

    def test_fstab_drive_is_left_alone(self):
        runner = FakeRunner()
        svc = MountService(FakeProbe(EXT4, in_fstab=True), runner=runner)
        self.assertIsNone(svc.mount(self.device))
        self.assertEqual(runner.calls, [])

    def test_wrong_fstype(self):
        runner = FakeRunner()
        svc = MountService(FakeProbe(VolumeMetadata(uuid="ABCD-1234", fstype="ntfs")), runner=runner)
        with self.assertRaises(FilesystemNotSupported) as ctx:
            svc.mount(self.device)
        self.assertEqual(ctx.exception.exit_status, EXIT_UNSUPPORTED_FS)
        self.assertIn("ntfs", str(ctx.exception))
        self.assertEqual(runner.calls, [])

    def test_missing_fstype(self):
        svc = MountService(FakeProbe(VolumeMetadata()), runner=FakeRunner())
        with self.assertRaises(FilesystemNotSupported):
            svc.mount(self.device)

    def test_settle_failure_reports_stderr(self):
        runner = FakeRunner(settle=1)
        runner.settle_stderr = "Timed out for waiting the udev queue being empty."
        svc = MountService(FakeProbe(EXT4), runner=runner)
        with self.assertRaises(SettleTimeout) as ctx:
            svc.mount(self.device)
        self.assertIn("Timed out for waiting", str(ctx.exception))

    def test_settle_failure(self):
        runner = FakeRunner(settle=1)
        svc = MountService(FakeProbe(EXT4), settle_timeout=30, runner=runner)
        with self.assertRaises(SettleTimeout):
            svc.mount(self.device)
        self.assertEqual(runner.calls, [["udevadm", "settle", "--timeout=30"]])

    def test_udisks_failure(self):
        runner = FakeRunner(mount=(1, "", "Call failed: Not authorized"))
        svc = MountService(FakeProbe(EXT4), runner=runner)
        with self.assertRaises(MountServiceError) as ctx:
            svc.mount(self.device)
        self.assertEqual(ctx.exception.status, 1)
        self.assertIn("Not authorized", str(ctx.exception))
        self.assertEqual(ctx.exception.exit_status, EXIT_FAILURE)
        self.prepare.assert_not_called()

    def test_unparseable_reply_keeps_raw_payload(self):
        runner = FakeRunner(mount=(0, '{"type":"o","data":[]}', ""))
        svc = MountService(FakeProbe(EXT4), runner=runner)
        with self.assertRaises(MountReplyParseError) as ctx:
            svc.mount(self.device)
        self.assertEqual(ctx.exception.reply, '{"type":"o","data":[]}')
        self.assertIn('{"type":"o","data":[]}', str(ctx.exception))
        self.prepare.assert_not_called()


class PrepareLibraryTests(unittest.TestCase):
    def test_scaffold_errors_are_logged_not_raised(self):
        svc = MountService(FakeProbe(EXT4), runner=FakeRunner())
        with mock.patch.object(mount_service, "remove_lost_found"), \
             mock.patch.object(mount_service, "LibraryScaffold") as scaffold_cls, \
             self.assertLogs(mount_service.log, level="ERROR") as logs:
            scaffold_cls.return_value.ensure.side_effect = PermissionError("read-only")
            svc.prepare_library("/run/media/1000/ABCD-1234")
        self.assertIn("read-only", logs.output[0])


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
