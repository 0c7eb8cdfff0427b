from pathlib import Path
from types import SimpleNamespace
from typing import Iterable, Optional

import pytest

import sursis.gates as gates
from sursis.config import Settings
from sursis.installer import installer_binary
from sursis.prompt import Outcome, PromptDecision, PromptVariant


class DummyNotice:
    def __init__(self, pid: Optional[int] = 4242):
        self.pid = pid
        self.closed = False

    def close(self):
        self.closed = True


class DummyPrompter:
    def __init__(self, decisions: Iterable = ()):
        self.decisions = list(decisions)
        self.asked: list[tuple[PromptVariant, int]] = []
        self.notices: list[tuple[PromptVariant, dict, DummyNotice]] = []

    def ask(self, variant, remaining=0):
        self.asked.append((variant, remaining))
        decision = self.decisions.pop(0)
        if isinstance(decision, Exception):
            raise decision
        return decision

    def notify(self, variant, **context):
        notice = DummyNotice(pid=1000 + len(self.notices))
        self.notices.append((variant, context, notice))
        return notice

    def notified(self) -> list[PromptVariant]:
        return [variant for variant, _, _ in self.notices]


class DummyLauncher:
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.launched: list[Optional[int]] = []

    def launch(self, signal_pid):
        self.launched.append(signal_pid)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(pid=9999, signal_pid=signal_pid, log_path="/tmp/install.log")


class DummyStore:
    def __init__(self, count: int = 0, fail_load: bool = False, fail_increment: bool = False):
        self.count = count
        self.fail_load = fail_load
        self.fail_increment = fail_increment

    def load(self):
        if self.fail_load:
            from sursis.store import StorageError
            raise StorageError("read-only")
        return self.count

    def increment(self):
        if self.fail_increment:
            from sursis.store import StorageError
            raise StorageError("read-only")
        self.count += 1
        return self.count


def make_bundle(settings: Settings) -> Path:
    binary = Path(installer_binary(settings))
    binary.parent.mkdir(parents=True, exist_ok=True)
    binary.write_text("#!/bin/sh\n", encoding="utf-8")
    return binary


def decision(outcome: Outcome, offset: int = 0) -> PromptDecision:
    return PromptDecision(outcome, offset)


@pytest.fixture
def settings(tmp_path) -> Settings:
    installer = tmp_path / "Install macOS Big Sur.app"
    return Settings(
        max_postponements=3,
        prompt_timeout_seconds=7200,
        contact_info="the help desk",
        deferral_offsets=(3600, 7200, 14400),
        target_major_version=11,
        target_name="macOS Big Sur",
        installer_path=str(installer),
        install_log=str(tmp_path / "install.log"),
        state_file=str(tmp_path / "postponements"),
        helper_path="/usr/local/bin/helper",
        icon="/tmp/icon.icns",
        min_free_gb=40,
        power_poll_seconds=15,
        power_poll_attempts=20,
        assertion_ignore=frozenset({"coreaudiod"}),
        schedule="0 10 * * *",
        timezone="UTC",
        strict_storage=False,
        dry_run=False,
        log_level="INFO",
    )


@pytest.fixture
def host(monkeypatch, settings: Settings):
    """A healthy machine: older OS, payload present, idle display, AC, space."""
    state = SimpleNamespace(
        bundle=make_bundle(settings),
        major=10,
        assertions=[],
        encrypting=False,
        power=[True],
        free_gb=100.0,
        sleeps=[],
    )

    def fake_power():
        if len(state.power) > 1:
            return state.power.pop(0)
        return state.power[0]

    monkeypatch.setattr(gates, "os_major_version", lambda: state.major)
    monkeypatch.setattr(gates, "display_assertions", lambda ignore: list(state.assertions))
    monkeypatch.setattr(gates, "encryption_in_progress", lambda: state.encrypting)
    monkeypatch.setattr(gates, "on_ac_power", fake_power)
    monkeypatch.setattr(gates, "free_space_gb", lambda path: state.free_gb)
    monkeypatch.setattr(gates, "sleep", lambda seconds: state.sleeps.append(seconds))
    return state
