import re
from dataclasses import dataclass
from logging import getLogger
from os import getenv

LOG = getLogger(__name__)

DEFAULT_MAX_POSTPONEMENTS = 3
DEFAULT_PROMPT_TIMEOUT_SECONDS = 7200
DEFAULT_CONTACT_INFO = "your IT department"
DEFAULT_DEFERRAL_OFFSETS = (3600, 7200, 14400)
DEFAULT_TARGET_MAJOR_VERSION = 11
DEFAULT_TARGET_NAME = "macOS Big Sur"
DEFAULT_INSTALLER_PATH = "/Applications/Install macOS Big Sur.app"
DEFAULT_INSTALL_LOG = "/var/log/sursis-startosinstall.log"
DEFAULT_STATE_FILE = "/Users/Shared/.sursis_postponements"
DEFAULT_HELPER_PATH = (
    "/Library/Application Support/JAMF/bin/jamfHelper.app/Contents/MacOS/jamfHelper"
)
DEFAULT_MIN_FREE_GB = 40
DEFAULT_POWER_POLL_SECONDS = 15
DEFAULT_POWER_POLL_ATTEMPTS = 20
DEFAULT_ASSERTION_IGNORE = "coreaudiod"
DEFAULT_SCHEDULE = "0 10 * * *"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_TZ = "UTC"


@dataclass(frozen=True)
class Settings:
    max_postponements: int
    prompt_timeout_seconds: int
    contact_info: str
    deferral_offsets: tuple[int, int, int]
    target_major_version: int
    target_name: str
    installer_path: str
    install_log: str
    state_file: str
    helper_path: str
    icon: str
    min_free_gb: int
    power_poll_seconds: int
    power_poll_attempts: int
    assertion_ignore: frozenset[str]
    schedule: str
    timezone: str
    strict_storage: bool
    dry_run: bool
    log_level: str


def load_settings() -> Settings:
    installer_path = getenv("SURSIS_INSTALLER_PATH", DEFAULT_INSTALLER_PATH)
    return Settings(
        max_postponements=max(0, _env_int("SURSIS_MAX_POSTPONEMENTS", DEFAULT_MAX_POSTPONEMENTS)),
        prompt_timeout_seconds=_env_positive_int("SURSIS_PROMPT_TIMEOUT_SECONDS", DEFAULT_PROMPT_TIMEOUT_SECONDS),
        contact_info=getenv("SURSIS_CONTACT_INFO", DEFAULT_CONTACT_INFO),
        deferral_offsets=_env_offsets("SURSIS_DEFERRAL_OFFSETS", DEFAULT_DEFERRAL_OFFSETS),
        target_major_version=_env_int("SURSIS_TARGET_MAJOR_VERSION", DEFAULT_TARGET_MAJOR_VERSION),
        target_name=getenv("SURSIS_TARGET_NAME", DEFAULT_TARGET_NAME),
        installer_path=installer_path,
        install_log=getenv("SURSIS_INSTALL_LOG", DEFAULT_INSTALL_LOG),
        state_file=getenv("SURSIS_STATE_FILE", DEFAULT_STATE_FILE),
        helper_path=getenv("SURSIS_HELPER_PATH", DEFAULT_HELPER_PATH),
        icon=getenv("SURSIS_ICON", f"{installer_path}/Contents/Resources/InstallAssistant.icns"),
        min_free_gb=_env_positive_int("SURSIS_MIN_FREE_GB", DEFAULT_MIN_FREE_GB),
        power_poll_seconds=_env_positive_int("SURSIS_POWER_POLL_SECONDS", DEFAULT_POWER_POLL_SECONDS),
        power_poll_attempts=_env_positive_int("SURSIS_POWER_POLL_ATTEMPTS", DEFAULT_POWER_POLL_ATTEMPTS),
        assertion_ignore=_env_csv_set("SURSIS_ASSERTION_IGNORE", DEFAULT_ASSERTION_IGNORE),
        schedule=getenv("SURSIS_SCHEDULE", DEFAULT_SCHEDULE),
        timezone=getenv("SURSIS_TZ", DEFAULT_TZ),
        strict_storage=_env_bool("SURSIS_STRICT_STORAGE", False),
        dry_run=_env_bool("SURSIS_DRY_RUN", False),
        log_level=getenv("SURSIS_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper(),
    )


def _env_bool(name: str, default: bool) -> bool:
    value = getenv(name)
    if value is None:
        return default
    lowered = value.strip().lower()
    return lowered in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_positive_int(name: str, default: int) -> int:
    value = _env_int(name, default)
    if value <= 0:
        return default
    return value


def _env_csv_set(name: str, default: str) -> frozenset[str]:
    raw = getenv(name, default)
    return frozenset(item for item in re.split(r"[,\s]+", raw.strip()) if item)


def _env_offsets(name: str, default: tuple[int, int, int]) -> tuple[int, int, int]:
    raw = getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        values = tuple(int(item) for item in re.split(r"[,\s]+", raw.strip()) if item)
    except ValueError:
        LOG.warning("Ignoring %s=%r; expected three integers", name, raw)
        return default
    if len(values) != 3 or any(value <= 0 for value in values):
        LOG.warning("Ignoring %s=%r; expected three positive integers", name, raw)
        return default
    if list(values) != sorted(set(values)):
        LOG.warning("Deferral offsets %s are not strictly increasing", values)
    return values
