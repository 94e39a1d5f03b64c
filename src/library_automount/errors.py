"""
Exception hierarchy for library-automount.

Every error carries the process exit status the dispatcher reports for
it, so a supervising systemd unit can tell "skipped" from "failed" from
"wrong filesystem".
"""

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_UNSUPPORTED_FS = 2


class AutomountError(RuntimeError):
    """Base class for all library-automount errors."""

    exit_status = EXIT_FAILURE


class UsageError(AutomountError):
    """Unknown action or malformed device name."""


class LockBusy(AutomountError):
    """Another invocation holds the lock for this device."""

    def __init__(self, lock_path):
        super().__init__(f"{lock_path} is active")
        self.lock_path = lock_path


# ---- Mount errors ------------------------------

class FilesystemNotSupported(AutomountError):
    """The device does not carry the one filesystem type we automount."""

    exit_status = EXIT_UNSUPPORTED_FS

    def __init__(self, device, fstype, metadata=None):
        super().__init__(f"Error mounting {device}: wrong fstype: {fstype} - {metadata}")
        self.fstype = fstype
        self.metadata = metadata


class SettleTimeout(AutomountError):
    """`udevadm settle` did not return successfully."""


class MountServiceError(AutomountError):
    """UDisks2 (or the systemd-run wrapper around it) returned non-zero."""

    def __init__(self, device, status, stderr=""):
        message = f"Error mounting {device} (status = {status})"
        if stderr:
            message = f"{message}: {stderr}"
        super().__init__(message)
        self.status = status
        self.stderr = stderr


class MountReplyParseError(AutomountError):
    """UDisks2 reported success but the reply held no mount path."""

    def __init__(self, device, reply):
        super().__init__(
            f"Error when mounting {device}: udisks returned success but could not parse reply:\n"
            f"---\n{reply}\n---"
        )
        self.reply = reply
