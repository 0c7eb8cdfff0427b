from dataclasses import dataclass
from enum import Enum, IntEnum
from logging import getLogger
from os.path import isfile
from time import sleep

from .config import Settings
from .installer import installer_binary
from .probe import (
    display_assertions,
    encryption_in_progress,
    free_space_gb,
    on_ac_power,
    os_major_version,
)
from .prompt import Prompter, PromptVariant

LOG = getLogger(__name__)


class ExitCode(IntEnum):
    SUCCESS = 0
    UNKNOWN_ERROR = 10
    NO_AC_POWER = 11
    PAYLOAD_MISSING = 12
    ENCRYPTION_IN_PROGRESS = 13
    ALREADY_CURRENT = 14
    INSUFFICIENT_SPACE = 15


class GateKind(Enum):
    PASS = "pass"
    ABORT = "abort"
    WAIT = "wait"


@dataclass(frozen=True)
class GateResult:
    kind: GateKind
    reason: str = ""
    exit_code: ExitCode = ExitCode.SUCCESS

    @property
    def passed(self) -> bool:
        return self.kind is GateKind.PASS


PASS = GateResult(GateKind.PASS)


def abort(reason: str, exit_code: ExitCode) -> GateResult:
    return GateResult(GateKind.ABORT, reason, exit_code)


def wait(reason: str) -> GateResult:
    return GateResult(GateKind.WAIT, reason, ExitCode.SUCCESS)


def check_version(settings: Settings) -> GateResult:
    installed = os_major_version()
    if installed >= settings.target_major_version:
        LOG.info("Installed major version %s >= target %s", installed, settings.target_major_version)
        return abort("already current", ExitCode.ALREADY_CURRENT)
    return PASS


def check_installer_present(settings: Settings) -> GateResult:
    binary = installer_binary(settings)
    if not isfile(binary):
        LOG.warning("Installer payload missing; no %s", binary)
        return abort("payload missing", ExitCode.PAYLOAD_MISSING)
    return PASS


def check_display_busy(settings: Settings) -> GateResult:
    holders = display_assertions(settings.assertion_ignore)
    if holders:
        LOG.info("Display sleep prevented by %s; not prompting", ", ".join(holders))
        return wait("display busy")
    return PASS


def check_encryption(settings: Settings) -> GateResult:
    if encryption_in_progress():
        LOG.warning("FileVault encryption is still in progress")
        return abort("encryption in progress", ExitCode.ENCRYPTION_IN_PROGRESS)
    return PASS


def check_power(settings: Settings, prompter: Prompter) -> GateResult:
    if on_ac_power():
        return PASS
    window = settings.power_poll_seconds * settings.power_poll_attempts
    LOG.info("Running on battery; polling for AC power for up to %ss", window)
    notice = prompter.notify(PromptVariant.POWER_WAIT, duration=window)
    try:
        for attempt in range(1, settings.power_poll_attempts + 1):
            sleep(settings.power_poll_seconds)
            if on_ac_power():
                LOG.info("AC power connected after %s poll(s)", attempt)
                return PASS
    finally:
        notice.close()
    LOG.error("No AC power after %s polls", settings.power_poll_attempts)
    return abort("no AC power", ExitCode.NO_AC_POWER)


def check_free_space(settings: Settings, prompter: Prompter) -> GateResult:
    free_gb = free_space_gb("/")
    if free_gb < settings.min_free_gb:
        LOG.error("Only %.1f GB free; %s GB required", free_gb, settings.min_free_gb)
        prompter.notify(PromptVariant.LOW_SPACE, free_gb=free_gb)
        return abort("insufficient space", ExitCode.INSUFFICIENT_SPACE)
    LOG.info("%.1f GB free on the system volume", free_gb)
    return PASS
