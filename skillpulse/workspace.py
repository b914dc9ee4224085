"""Data root, settings, local clock and path helpers for SkillPulse."""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from pathlib import Path
from typing import Any, Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import tzlocal

from skillpulse.fileio import read_yaml, write_yaml_atomic

logger = logging.getLogger("skillpulse")

Clock = Callable[[], datetime]

VALID_STORES = {"file", "memory"}

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def workspace_root() -> Path:
    """Get the data root directory (holds config.yaml, hooks.yaml, store.json)."""
    return Path(
        os.environ.get("SKILLPULSE_ROOT", str(Path.home() / "skillpulse"))
    ).expanduser().resolve()


# ── Settings ──────────────────────────────────────────────────


@dataclass
class Settings:
    timezone: str | None = None  # None = process local timezone
    store: str = "file"
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Settings:
        if not d or not isinstance(d, dict):
            return cls()
        store = str(d.get("store", "file")).strip().lower() or "file"
        if store not in VALID_STORES:
            logger.warning("Unknown store backend %r in config.yaml, using 'file'", store)
            store = "file"
        tz = d.get("timezone")
        return cls(
            timezone=str(tz) if tz else None,
            store=store,
            log_level=str(d.get("log_level", "INFO")).upper(),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"store": self.store, "log_level": self.log_level}
        if self.timezone:
            d["timezone"] = self.timezone
        return d

    def tz(self) -> tzinfo:
        """Configured timezone, falling back to the process local one."""
        if self.timezone:
            try:
                return ZoneInfo(self.timezone)
            except (ZoneInfoNotFoundError, ValueError):
                logger.warning("Unknown timezone %r in config.yaml, using local time", self.timezone)
        return local_timezone()


def load_settings(root: Path | None = None) -> Settings:
    """Load config.yaml from the data root; missing file means defaults."""
    return Settings.from_dict(read_yaml(config_path(root)))


def ensure_workspace(root: Path | None = None) -> Settings:
    """Create the data root with a default config.yaml if none exists."""
    if root is None:
        root = workspace_root()
    path = config_path(root)
    if not path.exists():
        write_yaml_atomic(path, Settings().to_dict())
    return load_settings(root)


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Configure process-wide logging for the service."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    return logger


# ── Local clock ───────────────────────────────────────────────


def local_timezone() -> tzinfo:
    """The process zone with its DST rules, from ``TZ`` or the system setting."""
    return tzlocal.get_localzone()


def system_clock(tz: tzinfo | None = None) -> Clock:
    """Return a clock producing aware datetimes in *tz* (local by default)."""
    zone = tz or local_timezone()
    return lambda: datetime.now(zone)


def to_ms(moment: datetime) -> int:
    """Epoch milliseconds for an aware datetime, truncated."""
    return (moment - EPOCH) // timedelta(milliseconds=1)


def from_ms(ms: int | float, tz: tzinfo) -> datetime:
    return (EPOCH + timedelta(milliseconds=ms)).astimezone(tz)


def date_key(d: date | datetime) -> str:
    """Calendar-date key, YYYY-MM-DD."""
    if isinstance(d, datetime):
        d = d.date()
    return d.isoformat()


def parse_date_key(key: str) -> date:
    return date.fromisoformat(key)


def next_daily_reset(now: datetime, hour: int, minute: int) -> datetime:
    """Next local occurrence of hour:minute strictly after *now*."""
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= now:
        candidate = (now + timedelta(days=1)).replace(hour=hour, minute=minute, second=0, microsecond=0)
    return candidate


# ── Path helpers ──────────────────────────────────────────────

def config_path(root: Path | None = None) -> Path:
    if root is None:
        root = workspace_root()
    return root / "config.yaml"


def hooks_config_path(root: Path | None = None) -> Path:
    if root is None:
        root = workspace_root()
    return root / "hooks.yaml"


def store_path(root: Path | None = None) -> Path:
    if root is None:
        root = workspace_root()
    return root / "store.json"
