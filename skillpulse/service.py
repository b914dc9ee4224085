"""Wiring and lifecycle for a SkillPulse process."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable

from skillpulse.alarms import Alarm, AlarmScheduler, MemoryAlarms
from skillpulse.commands import CommandProcessor
from skillpulse.hooks import HookNotifier, Notifier
from skillpulse.models import Meta
from skillpulse.reconciler import SchedulerReconciler
from skillpulse.repository import META_KEY, StateRepository
from skillpulse.store import KeyValueStore, open_store
from skillpulse.workspace import Clock, Settings, load_settings, system_clock

logger = logging.getLogger("skillpulse")


class SkillPulse:
    """One store, one alarm facility, one processor and its reconciler."""

    def __init__(
        self,
        settings: Settings,
        store: KeyValueStore,
        alarms: AlarmScheduler,
        notifier: Notifier,
        clock: Clock,
        id_factory: Callable[[], str] | None = None,
    ):
        self.settings = settings
        self.store = store
        self.alarms = alarms
        self.notifier = notifier
        self.repository = StateRepository(store)
        self.processor = CommandProcessor(
            self.repository, alarms, notifier=notifier, clock=clock, id_factory=id_factory,
        )
        self.reconciler = SchedulerReconciler(self.processor)

    @property
    def clock(self) -> Clock:
        return self.processor.clock

    async def install(self) -> bool:
        """Write the initial Meta record unless one already exists."""
        snapshot = await self.repository.read([META_KEY])
        if snapshot.meta() is not None:
            return False
        await self.repository.write_item(META_KEY, Meta().to_dict())
        logger.info("Initialized SkillPulse store")
        return True

    async def start(self) -> None:
        await self.install()
        await self.reconciler.reset_stale_counters()
        await self.reconciler.ensure_scheduled()

    async def dispatch(self, request: Any) -> dict[str, Any]:
        """Process one command, re-registering the daily reset first if lost."""
        try:
            await self.reconciler.ensure_scheduled()
        except Exception:
            logger.warning("Could not verify the daily reset alarm", exc_info=True)
        return await self.processor.dispatch(request)

    async def handle_alarm(self, alarm: Alarm) -> None:
        await self.reconciler.handle_alarm(alarm)


def build_service(
    root: Path | None = None,
    *,
    settings: Settings | None = None,
    store: KeyValueStore | None = None,
    alarms: AlarmScheduler | None = None,
    notifier: Notifier | None = None,
    clock: Clock | None = None,
    id_factory: Callable[[], str] | None = None,
) -> SkillPulse:
    """Assemble a service from config.yaml, overriding any part that is passed in."""
    if settings is None:
        settings = load_settings(root)
    return SkillPulse(
        settings=settings,
        store=store if store is not None else open_store(settings, root),
        alarms=alarms if alarms is not None else MemoryAlarms(),
        notifier=notifier if notifier is not None else HookNotifier(root),
        clock=clock or system_clock(settings.tz()),
        id_factory=id_factory,
    )
