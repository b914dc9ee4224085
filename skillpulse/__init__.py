"""SkillPulse core library: growth engine, state store, commands and scheduling.

Public API re-exports for convenient imports:
    from skillpulse import build_service, CommandProcessor, calculate_level, ...
"""

# Workspace, settings & clock
from skillpulse.workspace import (
    workspace_root,
    Settings,
    load_settings,
    ensure_workspace,
    setup_logging,
    system_clock,
    date_key,
    config_path,
    hooks_config_path,
    store_path,
)

# Errors
from skillpulse.errors import (
    SkillPulseError,
    ValidationError,
    NotFoundError,
    QuotaExceededError,
    StoreError,
    BusinessRuleRejection,
    RearmError,
    DailyCapError,
    split_error,
)

# Models
from skillpulse.models import (
    User,
    Skill,
    DayLog,
    FocusTimer,
    Meta,
)

# Growth engine
from skillpulse.growth import (
    momentum,
    growth_rate,
    apply_compounding,
    activity_score,
    calculate_level,
    total_points_needed,
    personality_level,
    sort_skills,
)

# Store & repository
from skillpulse.store import MemoryStore, JsonFileStore, open_store
from skillpulse.repository import StateRepository, Snapshot, WriteReport

# Alarms & notifications
from skillpulse.alarms import Alarm, MemoryAlarms, APSchedulerAlarms
from skillpulse.hooks import HookNotifier, NullNotifier, run_hooks

# Commands, scheduling & read model
from skillpulse.commands import CommandProcessor
from skillpulse.reconciler import SchedulerReconciler
from skillpulse.state import build_state, assemble_state
from skillpulse.achievements import analyze_achievements
from skillpulse.service import SkillPulse, build_service
