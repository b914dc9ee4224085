"""State repository: canonical keys and size-checked access to the store."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from skillpulse.errors import QuotaExceededError, SkillPulseError, StoreError
from skillpulse.fileio import serialized_size
from skillpulse.models import DayLog, FocusTimer, Meta, Skill, User, skills_from_list
from skillpulse.store import KeyValueStore

logger = logging.getLogger("skillpulse")


# ── Keys & limits ─────────────────────────────────────────────

USER_KEY = "user"
SKILLS_KEY = "skills"
META_KEY = "sp_meta"
FOCUS_TIMER_KEY = "active_focus_timer"
DAYLOG_PREFIX = "daylog_"

# the backing store rejects items above 8192 bytes; keep a margin
ITEM_SIZE_LIMIT = 7000


def daylog_key(skill_id: str) -> str:
    return f"{DAYLOG_PREFIX}{skill_id}"


# ── Snapshot ──────────────────────────────────────────────────


@dataclass
class Snapshot:
    """One consistent read of raw store items, with typed accessors."""

    items: dict[str, Any] = field(default_factory=dict)

    def user(self) -> User | None:
        raw = self.items.get(USER_KEY)
        return User.from_dict(raw) if raw else None

    def meta(self) -> Meta | None:
        raw = self.items.get(META_KEY)
        return Meta.from_dict(raw) if raw else None

    def skills(self) -> list[Skill]:
        return skills_from_list(self.items.get(SKILLS_KEY))

    def day_log(self, skill_id: str) -> DayLog:
        return DayLog.from_dict(self.items.get(daylog_key(skill_id)))

    def focus_timer(self) -> FocusTimer | None:
        return FocusTimer.from_dict(self.items.get(FOCUS_TIMER_KEY))


@dataclass
class WriteReport:
    """Per-key outcome of a best-effort joint write."""

    results: dict[str, SkillPulseError | None] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return all(err is None for err in self.results.values())

    @property
    def failed(self) -> list[str]:
        return [k for k, err in self.results.items() if err is not None]

    @property
    def written(self) -> list[str]:
        return [k for k, err in self.results.items() if err is None]

    def raise_for_failure(self) -> None:
        """Raise a StoreError naming the failed keys, logging any partial write."""
        if self.ok:
            return
        first = self.results[self.failed[0]]
        if self.written:
            logger.error(
                "Partial write: %s updated, %s stale; state may be inconsistent",
                ", ".join(self.written), ", ".join(self.failed),
            )
        raise StoreError(f"partial write: failed keys {', '.join(self.failed)}: {first}")


# ── Repository ────────────────────────────────────────────────


class StateRepository:
    """Owns the canonical read/write paths over a key-value store."""

    def __init__(self, store: KeyValueStore, item_size_limit: int = ITEM_SIZE_LIMIT):
        self.store = store
        self.item_size_limit = item_size_limit
        self._take_lock = asyncio.Lock()

    async def read_all(self) -> Snapshot:
        return Snapshot(await self._get(None))

    async def read(self, keys: Iterable[str]) -> Snapshot:
        return Snapshot(await self._get(list(keys)))

    async def _get(self, keys: list[str] | None) -> dict[str, Any]:
        try:
            return await self.store.get(keys)
        except SkillPulseError:
            raise
        except Exception as e:
            raise StoreError(f"store read failed: {e}") from e

    def _check_size(self, key: str, value: Any) -> None:
        size = serialized_size(value)
        if size > self.item_size_limit:
            raise QuotaExceededError(
                f"Item {key} size ({size} bytes) exceeds safe quota ({self.item_size_limit} bytes)"
            )

    async def write_item(self, key: str, value: Any) -> None:
        self._check_size(key, value)
        try:
            await self.store.set(key, value)
        except SkillPulseError:
            raise
        except Exception as e:
            raise StoreError(f"store write failed for {key}: {e}") from e

    async def write_many(self, values: dict[str, Any]) -> WriteReport:
        """Write each key independently; not atomic across keys.

        Every value is size-checked before the first write, so an oversized
        item raises ``QuotaExceededError`` with nothing written.
        """
        for key, value in values.items():
            self._check_size(key, value)
        report = WriteReport()
        for key, value in values.items():
            try:
                await self.write_item(key, value)
                report.results[key] = None
            except SkillPulseError as e:
                report.results[key] = e
        return report

    async def remove_keys(self, keys: Iterable[str]) -> None:
        try:
            await self.store.remove(list(keys))
        except Exception as e:
            raise StoreError(f"store remove failed: {e}") from e

    async def clear_all(self) -> None:
        try:
            await self.store.clear()
        except Exception as e:
            raise StoreError(f"store clear failed: {e}") from e

    async def take_and_clear(
        self,
        key: str,
        predicate: Callable[[Any], bool] | None = None,
    ) -> Any:
        """Return the stored value and remove it, exclusively within this process.

        With a *predicate*, a value that does not satisfy it is left in
        place and ``None`` is returned.
        """
        async with self._take_lock:
            value = (await self._get([key])).get(key)
            if value is None:
                return None
            if predicate is not None and not predicate(value):
                return None
            await self.remove_keys([key])
            return value
