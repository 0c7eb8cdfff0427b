import re
from logging import getLogger
from shutil import disk_usage
from typing import Iterable

from .utils import run_cmd

LOG = getLogger(__name__)

DISPLAY_ASSERTIONS = ("NoDisplaySleepAssertion", "PreventUserIdleDisplaySleep")
_ASSERTION_LINE = re.compile(r"pid\s+\d+\(([^)]+)\):.*?\b(" + "|".join(DISPLAY_ASSERTIONS) + r")\b")
GIB = 1024 ** 3


class ProbeError(Exception):
    pass


def _query(argv: list[str]) -> str:
    try:
        result = run_cmd(argv)
    except OSError as error:
        raise ProbeError(f"Cannot run {argv[0]}: {error}") from error
    if result.returncode != 0:
        raise ProbeError(f"{' '.join(argv)} exited with {result.returncode}: {result.stderr.strip()}")
    return result.stdout


def parse_major_version(product_version: str) -> int:
    head = product_version.strip().split(".", 1)[0]
    try:
        return int(head)
    except ValueError as error:
        raise ProbeError(f"Unrecognised OS version {product_version!r}") from error


def parse_power_source(pmset_output: str) -> bool:
    first_line = pmset_output.strip().splitlines()[0] if pmset_output.strip() else ""
    if "AC Power" in first_line:
        return True
    if "Battery Power" in first_line or "UPS Power" in first_line:
        return False
    raise ProbeError(f"Unrecognised power source {first_line!r}")


def parse_encryption_status(fdesetup_output: str) -> bool:
    return "Encryption in progress" in fdesetup_output


def parse_display_assertions(pmset_output: str, ignore: Iterable[str] = ()) -> list[str]:
    ignored = set(ignore)
    holders: list[str] = []
    for line in pmset_output.splitlines():
        match = _ASSERTION_LINE.search(line)
        if match is None:
            continue
        process = match.group(1)
        if process in ignored:
            LOG.debug("Ignoring %s held by %s", match.group(2), process)
            continue
        if process not in holders:
            holders.append(process)
    return holders


def os_major_version() -> int:
    return parse_major_version(_query(["/usr/bin/sw_vers", "-productVersion"]))


def on_ac_power() -> bool:
    return parse_power_source(_query(["/usr/bin/pmset", "-g", "ps"]))


def encryption_in_progress() -> bool:
    return parse_encryption_status(_query(["/usr/bin/fdesetup", "status"]))


def display_assertions(ignore: Iterable[str] = ()) -> list[str]:
    return parse_display_assertions(_query(["/usr/bin/pmset", "-g", "assertions"]), ignore)


def free_space_gb(path: str = "/") -> float:
    try:
        usage = disk_usage(path)
    except OSError as error:
        raise ProbeError(f"Cannot stat {path}: {error}") from error
    return usage.free / GIB
