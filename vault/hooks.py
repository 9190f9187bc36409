"""Shell hooks fired after a memory is saved.

Configured in vault/hooks.yaml, one list of commands per event:

    post_save:
      - ./notify.sh
    on_streak_break:
      - command: ./sad_trombone.sh
        timeout: 5

Events, in firing order:
- post_save        every persisted memory (today or backfill)
- post_backfill    a memory for a past day
- on_streak_break  a save for today that ended the previous run

Each command runs in the workspace root with the save as JSON on stdin and
DAYVAULT_EVENT / DAYVAULT_DAY in its environment.
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from vault.fileio import read_yaml
from vault.models import SaveResult
from vault.workspace import hooks_config_path, workspace_root

logger = logging.getLogger(__name__)

HOOK_POINTS = ("post_save", "post_backfill", "on_streak_break")

DEFAULT_TIMEOUT = 30.0
OUTPUT_CAP = 4096


@dataclass
class HookCommand:
    command: str
    timeout: float = DEFAULT_TIMEOUT

    @classmethod
    def from_config(cls, raw: Any) -> HookCommand | None:
        """A bare string or a {command, timeout} mapping; anything else is ignored."""
        if isinstance(raw, str):
            return cls(raw) if raw.strip() else None
        if isinstance(raw, dict) and raw.get("command"):
            return cls(str(raw["command"]), _timeout(raw.get("timeout")))
        return None


def _timeout(value: Any) -> float:
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return DEFAULT_TIMEOUT
    return seconds if 0 < seconds < float("inf") else DEFAULT_TIMEOUT


def load_hooks(root: Path | None = None) -> dict[str, list[HookCommand]]:
    """Commands per event from hooks.yaml. A broken file disables hooks."""
    path = hooks_config_path(root)
    try:
        raw = read_yaml(path)
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Ignoring unreadable hooks config %s: %s", path, e)
        return {}

    hooks: dict[str, list[HookCommand]] = {}
    for point in HOOK_POINTS:
        listed = raw.get(point) or []
        if not isinstance(listed, list):
            logger.warning("hooks.yaml: %s must be a list, ignoring it", point)
            continue
        commands = [c for c in (HookCommand.from_config(item) for item in listed) if c]
        if commands:
            hooks[point] = commands
    return hooks


def save_context(result: SaveResult) -> dict[str, Any]:
    """JSON payload describing a persisted save."""
    entry = result.entry
    return {
        "day": entry.day_key,
        "mood": entry.mood,
        "category": entry.category,
        "reflection": entry.reflection,
        "backfill": result.backfill,
        "usedFreeCredit": result.used_free_credit,
        "streak": result.streak.current,
        "bestStreak": result.streak.best,
        "lastRun": result.streak.last_run,
        "card": result.card_path,
    }


def events_for(result: SaveResult) -> list[str]:
    events = ["post_save"]
    if result.backfill:
        events.append("post_backfill")
    if result.streak_broken:
        events.append("on_streak_break")
    return events


def _run(hook: HookCommand, event: str, payload: str, day: str, root: Path) -> dict[str, Any]:
    outcome: dict[str, Any] = {"command": hook.command, "hook_point": event}
    env = {**os.environ, "DAYVAULT_EVENT": event, "DAYVAULT_DAY": day}
    try:
        proc = subprocess.run(
            hook.command,
            shell=True,
            input=payload,
            capture_output=True,
            text=True,
            timeout=hook.timeout,
            cwd=str(root),
            env=env,
        )
    except subprocess.TimeoutExpired:
        logger.warning("Hook %r (%s) timed out after %ss", hook.command, event, hook.timeout)
        outcome.update(exit_code=-1, error=f"Hook timed out after {hook.timeout:g}s")
        return outcome
    except OSError as e:
        logger.warning("Hook %r (%s) failed to start: %s", hook.command, event, e)
        outcome.update(exit_code=-1, error=str(e))
        return outcome

    if proc.returncode != 0:
        logger.warning("Hook %r (%s) exited with %d", hook.command, event, proc.returncode)
    outcome.update(
        exit_code=proc.returncode,
        stdout=proc.stdout[:OUTPUT_CAP],
        stderr=proc.stderr[:OUTPUT_CAP],
    )
    return outcome


def run_hooks(
    hook_point: str,
    context: dict[str, Any],
    root: Path | None = None,
) -> list[dict[str, Any]]:
    """Run the commands registered for one event; failures are reported, never raised."""
    if hook_point not in HOOK_POINTS:
        return []
    if root is None:
        root = workspace_root()
    commands = load_hooks(root).get(hook_point, [])
    payload = json.dumps({**context, "event": hook_point}, ensure_ascii=False)
    day = str(context.get("day", ""))
    return [_run(hook, hook_point, payload, day, root) for hook in commands]


def fire_save_hooks(result: SaveResult, root: Path | None = None) -> dict[str, list[dict[str, Any]]]:
    """Fire every event a save qualifies for, in order. Returns results per event."""
    context = save_context(result)
    return {event: run_hooks(event, context, root) for event in events_for(result)}
