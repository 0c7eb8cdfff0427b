import subprocess
from dataclasses import dataclass
from logging import getLogger
from os.path import isfile, join
from typing import Optional

from .config import Settings

LOG = getLogger(__name__)


class InstallerError(Exception):
    pass


@dataclass(frozen=True)
class InstallHandle:
    pid: Optional[int]
    signal_pid: Optional[int]
    log_path: str


def installer_binary(settings: Settings) -> str:
    return join(settings.installer_path, "Contents", "Resources", "startosinstall")


def installer_args(settings: Settings, signal_pid: Optional[int]) -> list[str]:
    args = [
        installer_binary(settings),
        "--agreetolicense",
        "--nointeraction",
        "--forcequitapps",
    ]
    if signal_pid is not None:
        args += ["--pidtosignal", str(signal_pid)]
    return args


class Launcher:
    def __init__(self, settings: Settings):
        self.settings = settings

    def launch(self, signal_pid: Optional[int]) -> InstallHandle:
        args = installer_args(self.settings, signal_pid)
        if self.settings.dry_run:
            LOG.info("Dry run; would launch %s", " ".join(args))
            return InstallHandle(None, signal_pid, self.settings.install_log)
        if not isfile(args[0]):
            raise InstallerError(f"Installer binary not found at {args[0]}")
        try:
            with open(self.settings.install_log, "a", encoding="utf-8") as log_handle:
                process = subprocess.Popen(
                    args,
                    stdin=subprocess.DEVNULL,
                    stdout=log_handle,
                    stderr=subprocess.STDOUT,
                    start_new_session=True,
                )
        except OSError as error:
            raise InstallerError(f"Failed to launch installer: {error}") from error
        LOG.info("Installer started as pid %s; output in %s", process.pid, self.settings.install_log)
        return InstallHandle(process.pid, signal_pid, self.settings.install_log)
