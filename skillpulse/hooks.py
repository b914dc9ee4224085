"""Side-effect notifications for SkillPulse.

Notifications are fire-and-forget: a failing or missing listener never
fails the command that triggered it. ``HookNotifier`` runs shell
commands configured in hooks.yaml, passing a JSON context on stdin.

Hook points:
- on_focus_complete   focus session finished (naturally or early)
- on_badge_update     badge text changed (empty text = cleared)
- on_state_updated    state changed outside a caller's command
"""

from __future__ import annotations

import asyncio
import json
import logging
import subprocess
from pathlib import Path
from typing import Any, Protocol

from skillpulse.fileio import read_yaml
from skillpulse.workspace import hooks_config_path, workspace_root

logger = logging.getLogger("skillpulse")


VALID_HOOK_POINTS = {
    "on_focus_complete",
    "on_badge_update",
    "on_state_updated",
}

DEFAULT_TIMEOUT = 30

RUNNING_BADGE_COLOR = "#10b981"
PAUSED_BADGE_COLOR = "#f59e0b"


class Notifier(Protocol):
    async def focus_complete(self, skill_id: str, skill_name: str) -> None: ...

    async def set_badge(self, text: str, color: str | None = None) -> None: ...

    async def clear_badge(self) -> None: ...

    async def state_updated(self, state: dict[str, Any]) -> None: ...


class NullNotifier:
    """Notifier with no listeners."""

    async def focus_complete(self, skill_id: str, skill_name: str) -> None:
        return None

    async def set_badge(self, text: str, color: str | None = None) -> None:
        return None

    async def clear_badge(self) -> None:
        return None

    async def state_updated(self, state: dict[str, Any]) -> None:
        return None


def load_hooks_config(root: Path | None = None) -> dict[str, Any]:
    """Load hooks configuration from hooks.yaml."""
    if root is None:
        root = workspace_root()
    path = hooks_config_path(root)
    if not path.exists():
        return {}
    return read_yaml(path)


def run_hooks(
    hook_point: str,
    context: dict[str, Any],
    root: Path | None = None,
) -> list[dict[str, Any]]:
    """Run all hooks registered for a given hook point.

    Context is passed as JSON via stdin to each hook subprocess.
    Returns list of results with stdout/stderr and exit codes.
    """
    if hook_point not in VALID_HOOK_POINTS:
        return []

    if root is None:
        root = workspace_root()

    config = load_hooks_config(root)
    hooks = config.get(hook_point, [])

    if not hooks or not isinstance(hooks, list):
        return []

    results = []
    context_json = json.dumps(context, ensure_ascii=False)

    for hook in hooks:
        if isinstance(hook, str):
            command = hook
            timeout = DEFAULT_TIMEOUT
        elif isinstance(hook, dict):
            command = hook.get("command", "")
            timeout = hook.get("timeout", DEFAULT_TIMEOUT)
        else:
            continue

        if not command:
            continue

        result: dict[str, Any] = {"command": command, "hook_point": hook_point}
        try:
            proc = subprocess.run(
                command,
                shell=True,
                input=context_json,
                capture_output=True,
                text=True,
                timeout=timeout,
                cwd=str(root),
            )
            result["exit_code"] = proc.returncode
            result["stdout"] = proc.stdout[:4096]
            result["stderr"] = proc.stderr[:4096]
        except subprocess.TimeoutExpired:
            result["exit_code"] = -1
            result["error"] = f"Hook timed out after {timeout}s"
        except OSError as e:
            result["exit_code"] = -1
            result["error"] = str(e)

        if result["exit_code"] != 0:
            logger.warning("Hook %r for %s failed: %s", command, hook_point,
                           result.get("error") or result.get("stderr", "").strip())
        results.append(result)

    return results


class HookNotifier:
    """Notifier that dispatches each event to the configured shell hooks."""

    def __init__(self, root: Path | None = None):
        self.root = root
        self.last_results: list[dict[str, Any]] = []

    async def _emit(self, hook_point: str, context: dict[str, Any]) -> None:
        try:
            self.last_results = await asyncio.to_thread(run_hooks, hook_point, context, self.root)
        except Exception:
            logger.warning("Notification %s could not be delivered", hook_point, exc_info=True)

    async def focus_complete(self, skill_id: str, skill_name: str) -> None:
        await self._emit("on_focus_complete", {
            "event": "focus_complete",
            "skillId": skill_id,
            "skillName": skill_name or "a skill",
            "title": "Focus Complete!",
            "message": f"{skill_name or 'a skill'} - Progress recorded",
        })

    async def set_badge(self, text: str, color: str | None = None) -> None:
        await self._emit("on_badge_update", {"event": "badge", "text": text, "color": color})

    async def clear_badge(self) -> None:
        await self._emit("on_badge_update", {"event": "badge", "text": "", "color": None})

    async def state_updated(self, state: dict[str, Any]) -> None:
        await self._emit("on_state_updated", {"event": "state_updated", "summary": state.get("summary", {})})
