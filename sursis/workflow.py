from datetime import datetime
from enum import Enum
from logging import getLogger
from time import sleep
from typing import Optional

from croniter import croniter

from .config import Settings
from .gates import (
    ExitCode,
    GateKind,
    check_display_busy,
    check_encryption,
    check_free_space,
    check_installer_present,
    check_power,
    check_version,
)
from .installer import InstallerError, Launcher
from .probe import ProbeError
from .prompt import MalformedPromptResult, Outcome, PromptDecision, PromptError, Prompter, PromptVariant
from .store import PostponementStore, StorageError
from .utils import format_human_local, now_tz

LOG = getLogger(__name__)


class Action(Enum):
    INSTALL = "install"
    POSTPONE = "postpone"
    DEFER = "defer"


_ACTIONS = {
    PromptVariant.STANDARD: {
        Outcome.INSTALL: Action.INSTALL,
        Outcome.TIMED_OUT: Action.INSTALL,
        Outcome.DISMISSED: Action.INSTALL,
        Outcome.POSTPONE: Action.POSTPONE,
        Outcome.DEFER: Action.DEFER,
    },
    PromptVariant.REMINDER: {
        Outcome.INSTALL: Action.INSTALL,
        Outcome.TIMED_OUT: Action.INSTALL,
        Outcome.POSTPONE: Action.POSTPONE,
        Outcome.DISMISSED: Action.POSTPONE,
    },
    PromptVariant.FORCED: {
        Outcome.INSTALL: Action.INSTALL,
        Outcome.TIMED_OUT: Action.INSTALL,
        Outcome.DISMISSED: Action.INSTALL,
    },
}


def resolve_action(settings: Settings, variant: PromptVariant, decision: PromptDecision) -> Action:
    action = _ACTIONS[variant].get(decision.outcome)
    if action is None:
        raise MalformedPromptResult(f"{decision.outcome.value} is not valid for the {variant.value} prompt")
    if action is Action.DEFER and decision.offset not in settings.deferral_offsets:
        raise MalformedPromptResult(f"Deferral of {decision.offset}s is not an offered option")
    return action


def initial_variant(remaining: int) -> PromptVariant:
    if remaining <= 0:
        return PromptVariant.FORCED
    return PromptVariant.STANDARD


def next_reminder(settings: Settings, reference: datetime) -> Optional[datetime]:
    try:
        return croniter(settings.schedule, reference).get_next(datetime)
    except (ValueError, KeyError) as error:
        LOG.warning("Invalid schedule %s: %s", settings.schedule, error)
        return None


def _load_count(settings: Settings, store: PostponementStore) -> Optional[int]:
    try:
        return store.load()
    except StorageError as error:
        if settings.strict_storage:
            LOG.error("Cannot read postponement count: %s", error)
            return None
        LOG.warning("Cannot read postponement count, assuming 0: %s", error)
        return 0


def _fail(prompter: Prompter, message: str) -> ExitCode:
    LOG.error(message)
    prompter.notify(PromptVariant.ERROR)
    return ExitCode.UNKNOWN_ERROR


def _postpone(settings: Settings, store: PostponementStore, prompter: Prompter, count: int) -> ExitCode:
    try:
        count = store.increment()
    except StorageError as error:
        if settings.strict_storage:
            return _fail(prompter, f"Cannot record postponement: {error}")
        LOG.warning("Cannot record postponement, continuing: %s", error)
        count += 1
    remaining = max(0, settings.max_postponements - count)
    reference = now_tz(settings.timezone)
    upcoming = next_reminder(settings, reference)
    next_run = ""
    if upcoming is not None:
        next_run = f" You will be asked again {format_human_local(upcoming, reference)}."
    LOG.info("User postponed the upgrade (%s/%s used)", count, settings.max_postponements)
    prompter.notify(PromptVariant.POSTPONE_CONFIRM, remaining=remaining, next_run=next_run)
    return ExitCode.SUCCESS


def _install(settings: Settings, prompter: Prompter, launcher: Launcher) -> ExitCode:
    for check in (check_power, check_free_space):
        try:
            result = check(settings, prompter)
        except ProbeError as error:
            return _fail(prompter, f"{check.__name__} failed: {error}")
        if not result.passed:
            LOG.error("Not installing: %s", result.reason)
            return result.exit_code
    notice = prompter.notify(PromptVariant.PREPARING)
    try:
        handle = launcher.launch(notice.pid)
    except InstallerError as error:
        notice.close()
        return _fail(prompter, str(error))
    LOG.info("Handed off to installer (pid %s)", handle.pid)
    return ExitCode.SUCCESS


def run(settings: Settings, store: PostponementStore, prompter: Prompter, launcher: Launcher) -> ExitCode:
    for check in (check_version, check_installer_present, check_display_busy, check_encryption):
        try:
            result = check(settings)
        except ProbeError as error:
            return _fail(prompter, f"{check.__name__} failed: {error}")
        if result.kind is GateKind.WAIT:
            LOG.info("Exiting quietly: %s", result.reason)
            return ExitCode.SUCCESS
        if result.kind is GateKind.ABORT:
            LOG.warning("Aborting: %s", result.reason)
            return result.exit_code

    count = _load_count(settings, store)
    if count is None:
        return _fail(prompter, "Postponement count unavailable")
    remaining = settings.max_postponements - count
    variant = initial_variant(remaining)
    LOG.info("%s of %s postponements used; showing %s prompt", count, settings.max_postponements, variant.value)

    while True:
        try:
            decision = prompter.ask(variant, remaining=max(0, remaining))
            action = resolve_action(settings, variant, decision)
        except PromptError as error:
            return _fail(prompter, f"Unusable prompt result: {error}")

        if action is Action.INSTALL:
            return _install(settings, prompter, launcher)
        if action is Action.POSTPONE:
            return _postpone(settings, store, prompter, count)

        LOG.info("User deferred the upgrade by %ss", decision.offset)
        prompter.notify(PromptVariant.DEFER_CONFIRM, duration=decision.offset)
        sleep(decision.offset)
        variant = PromptVariant.REMINDER
