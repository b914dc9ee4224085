"""Shared test fixtures for SkillPulse tests."""

from __future__ import annotations

import itertools
import os
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo

import pytest
import yaml

from skillpulse.alarms import MemoryAlarms
from skillpulse.service import SkillPulse, build_service
from skillpulse.store import MemoryStore
from skillpulse.workspace import Settings

UTC = ZoneInfo("UTC")


class FakeClock:
    """Manually advanced clock returning aware datetimes."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, moment: datetime) -> None:
        self.now = moment

    @property
    def ms(self) -> int:
        return int(self.now.timestamp() * 1000)


class RecordingNotifier:
    """Notifier that keeps every event it receives."""

    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []

    async def focus_complete(self, skill_id: str, skill_name: str) -> None:
        self.events.append(("focus_complete", (skill_id, skill_name)))

    async def set_badge(self, text: str, color: str | None = None) -> None:
        self.events.append(("badge", (text, color)))

    async def clear_badge(self) -> None:
        self.events.append(("badge", ("", None)))

    async def state_updated(self, state: dict[str, Any]) -> None:
        self.events.append(("state_updated", state))

    def of(self, kind: str) -> list[Any]:
        return [payload for k, payload in self.events if k == kind]


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Create a temporary data root with a config.yaml."""
    root = tmp_path / "skillpulse"
    root.mkdir(parents=True)
    config = {"timezone": "UTC", "store": "file", "log_level": "DEBUG"}
    (root / "config.yaml").write_text(
        yaml.dump(config, default_flow_style=False), encoding="utf-8"
    )

    os.environ["SKILLPULSE_ROOT"] = str(root)
    yield root
    if "SKILLPULSE_ROOT" in os.environ:
        del os.environ["SKILLPULSE_ROOT"]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 10, 9, 0, tzinfo=UTC))


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def service(clock: FakeClock, notifier: RecordingNotifier) -> SkillPulse:
    """Fully wired in-memory service with sequential skill ids."""
    counter = itertools.count(1)
    return build_service(
        settings=Settings(timezone="UTC", store="memory"),
        store=MemoryStore(),
        alarms=MemoryAlarms(),
        notifier=notifier,
        clock=clock,
        id_factory=lambda: f"skill-{next(counter)}",
    )
