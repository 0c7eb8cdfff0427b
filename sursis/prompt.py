import subprocess
from dataclasses import dataclass
from enum import Enum
from logging import getLogger
from typing import Optional

from .config import Settings
from .utils import format_duration, run_cmd

LOG = getLogger(__name__)

RC_DISMISSED = 239
RC_TIMED_OUT = 243


class PromptError(Exception):
    pass


class MalformedPromptResult(PromptError):
    pass


class PromptVariant(Enum):
    STANDARD = "standard"
    REMINDER = "reminder"
    FORCED = "forced"
    DEFER_CONFIRM = "defer_confirm"
    POSTPONE_CONFIRM = "postpone_confirm"
    POWER_WAIT = "power_wait"
    LOW_SPACE = "low_space"
    PREPARING = "preparing"
    ERROR = "error"


class Outcome(Enum):
    INSTALL = "install"
    POSTPONE = "postpone"
    DEFER = "defer"
    TIMED_OUT = "timed_out"
    DISMISSED = "dismissed"


@dataclass(frozen=True)
class PromptDecision:
    outcome: Outcome
    offset: int = 0


@dataclass(frozen=True)
class Template:
    window_type: str
    heading: str
    description: str
    button1: Optional[str] = None
    button2: Optional[str] = None
    delay_options: bool = False
    countdown: bool = False


TEMPLATES: dict[PromptVariant, Template] = {
    PromptVariant.STANDARD: Template(
        window_type="utility",
        heading="{target} upgrade available",
        description=(
            "Your Mac is ready to upgrade to {target}. The upgrade takes about an hour "
            "and your Mac will restart several times.\n\n"
            "Choose to start now or pick a delay, or postpone until tomorrow. "
            "You can postpone {remaining} more time(s).\n\n"
            "Questions? Contact {contact}."
        ),
        button1="OK",
        button2="Postpone",
        delay_options=True,
        countdown=True,
    ),
    PromptVariant.REMINDER: Template(
        window_type="utility",
        heading="{target} upgrade reminder",
        description=(
            "The upgrade to {target} is ready to begin. Save your work and click "
            "Upgrade, or postpone until tomorrow.\n\n"
            "Questions? Contact {contact}."
        ),
        button1="Upgrade",
        button2="Postpone",
        countdown=True,
    ),
    PromptVariant.FORCED: Template(
        window_type="utility",
        heading="{target} upgrade required",
        description=(
            "You have used all of your postponements. The upgrade to {target} will "
            "start when the timer runs out. Save your work now.\n\n"
            "Questions? Contact {contact}."
        ),
        button1="Upgrade",
        countdown=True,
    ),
    PromptVariant.DEFER_CONFIRM: Template(
        window_type="hud",
        heading="Upgrade delayed",
        description="You will be reminded about the {target} upgrade in {duration}.",
        button1="OK",
    ),
    PromptVariant.POSTPONE_CONFIRM: Template(
        window_type="hud",
        heading="Upgrade postponed",
        description=(
            "The {target} upgrade has been postponed. You have {remaining} "
            "postponement(s) left.{next_run}"
        ),
        button1="OK",
    ),
    PromptVariant.POWER_WAIT: Template(
        window_type="hud",
        heading="Connect your power adapter",
        description=(
            "Your Mac is running on battery. Connect it to power within {duration} "
            "so the {target} upgrade can start."
        ),
    ),
    PromptVariant.LOW_SPACE: Template(
        window_type="hud",
        heading="Not enough free space",
        description=(
            "The {target} upgrade needs at least {min_free_gb} GB of free space. "
            "Only {free_gb:.1f} GB is available. Free up space and the upgrade will "
            "be offered again.\n\nQuestions? Contact {contact}."
        ),
        button1="OK",
    ),
    PromptVariant.PREPARING: Template(
        window_type="fs",
        heading="Preparing the {target} upgrade",
        description=(
            "Your Mac will restart automatically when preparation is complete. "
            "Do not turn off or restart your Mac."
        ),
    ),
    PromptVariant.ERROR: Template(
        window_type="hud",
        heading="Upgrade could not start",
        description=(
            "Something went wrong while preparing the {target} upgrade. "
            "Please contact {contact}."
        ),
        button1="OK",
    ),
}


def build_args(settings: Settings, variant: PromptVariant, **context) -> list[str]:
    template = TEMPLATES[variant]
    values = {
        "target": settings.target_name,
        "contact": settings.contact_info,
        "remaining": 0,
        "duration": "",
        "next_run": "",
        "min_free_gb": settings.min_free_gb,
        "free_gb": 0.0,
    }
    values.update(context)
    args = [
        settings.helper_path,
        "-windowType", template.window_type,
        "-title", f"{settings.target_name} Upgrade",
        "-icon", settings.icon,
        "-heading", template.heading.format(**values),
        "-description", template.description.format(**values),
        "-alignDescription", "left",
    ]
    if template.button1:
        args += ["-button1", template.button1, "-defaultButton", "1"]
    if template.button2:
        args += ["-button2", template.button2, "-cancelButton", "2"]
    if template.delay_options:
        delays = (0,) + tuple(settings.deferral_offsets)
        args += ["-showDelayOptions", ", ".join(str(delay) for delay in delays)]
    if template.countdown:
        args += [
            "-timeout", str(settings.prompt_timeout_seconds),
            "-countdown",
            "-alignCountdown", "right",
        ]
    return args


def decode_result(returncode: int, stdout: str) -> PromptDecision:
    """Decode the helper's composite result into a decision.

    The helper prints ``<delay seconds><button number>`` when a delay list is
    shown, e.g. ``36001`` for button 1 with a one-hour delay. Without a delay
    list only the exit status carries the button (0 for button 1, 2 for
    button 2). Closing the window and timing out have dedicated exit codes.
    """
    if returncode == RC_DISMISSED:
        return PromptDecision(Outcome.DISMISSED)
    if returncode == RC_TIMED_OUT:
        return PromptDecision(Outcome.TIMED_OUT)

    raw = stdout.strip()
    if raw:
        if not (raw.isascii() and raw.isdigit()):
            raise MalformedPromptResult(f"Unexpected prompt output {raw!r}")
        button = int(raw[-1])
        delay = int(raw[:-1] or "0")
    elif returncode == 0:
        button, delay = 1, 0
    elif returncode == 2:
        button, delay = 2, 0
    else:
        raise MalformedPromptResult(f"Prompt helper exited with {returncode}")

    if button == 1:
        if delay > 0:
            return PromptDecision(Outcome.DEFER, delay)
        return PromptDecision(Outcome.INSTALL)
    if button == 2:
        return PromptDecision(Outcome.POSTPONE)
    raise MalformedPromptResult(f"Unknown button {button} in {raw!r}")


class Notice:
    def __init__(self, process: Optional[subprocess.Popen] = None):
        self.process = process

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid if self.process is not None else None

    def close(self) -> None:
        if self.process is None or self.process.poll() is not None:
            return
        try:
            self.process.terminate()
        except OSError as error:
            LOG.debug("Could not close notice %s: %s", self.process.pid, error)


class Prompter:
    def __init__(self, settings: Settings):
        self.settings = settings
        self.notices: list[Notice] = []

    def ask(self, variant: PromptVariant, remaining: int = 0) -> PromptDecision:
        args = build_args(self.settings, variant, remaining=remaining)
        LOG.info("Showing %s prompt (timeout %ss)", variant.value, self.settings.prompt_timeout_seconds)
        try:
            result = run_cmd(args)
        except OSError as error:
            raise PromptError(f"Cannot start prompt helper: {error}") from error
        decision = decode_result(result.returncode, result.stdout)
        LOG.info("Prompt %s answered with %s", variant.value, decision)
        return decision

    def notify(self, variant: PromptVariant, **context) -> Notice:
        if "duration" in context and isinstance(context["duration"], int):
            context["duration"] = format_duration(context["duration"])
        args = build_args(self.settings, variant, **context)
        LOG.info("Showing %s notice", variant.value)
        try:
            process = subprocess.Popen(
                args,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as error:
            LOG.warning("Could not show %s notice: %s", variant.value, error)
            return Notice()
        # Detached notices may outlive this process; the handles are never waited on.
        notice = Notice(process)
        self.notices.append(notice)
        return notice
