from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Dict

import yaml

logger = logging.getLogger(__name__)


def _detect_format(path: Path) -> str:
    ext = path.suffix.lower().lstrip(".")
    if ext in {"json", "yaml", "yml"}:
        return ext
    # Default to JSON for unknown extensions.
    return "json"


def load_state(path: str) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        return {}

    text = p.read_text(encoding="utf-8")
    if _detect_format(p) in {"yaml", "yml"}:
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text)

    if not isinstance(data, dict):
        raise ValueError(f"State file must be an object/dict, got {type(data)}")
    return data


def save_state(path: str, state: Dict[str, Any]) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    if _detect_format(p) in {"yaml", "yml"}:
        p.write_text(yaml.safe_dump(state, sort_keys=False), encoding="utf-8")
    else:
        p.write_text(json.dumps(state, indent=2, sort_keys=True) + "\n", encoding="utf-8")


def ensure_defaults(state: Dict[str, Any]) -> Dict[str, Any]:
    """Fill required keys without overriding recorded values."""

    exe = state.setdefault("execution", {})
    exe.setdefault("started_at", None)
    exe.setdefault("finished_at", None)
    exe.setdefault("current_step", None)
    exe.setdefault("completed_steps", [])
    exe.setdefault("storage_states", [])
    exe.setdefault("errors", [])
    return state


def has_run(state: Dict[str, Any]) -> bool:
    exe = state.get("execution") or {}
    return bool(exe.get("started_at"))


def mark_started(state: Dict[str, Any]) -> None:
    state.setdefault("execution", {})["started_at"] = time.time()


def mark_finished(state: Dict[str, Any]) -> None:
    state.setdefault("execution", {})["finished_at"] = time.time()


def mark_step_completed(state: Dict[str, Any], step_id: str) -> None:
    completed = state.setdefault("execution", {}).setdefault("completed_steps", [])
    if step_id not in completed:
        completed.append(step_id)


def record_storage_state(state: Dict[str, Any], name: str) -> None:
    """Remember the last disk/LVM state reached, for manual recovery."""

    exe = state.setdefault("execution", {})
    exe.setdefault("storage_states", []).append({"state": name, "at": time.time()})
    exe["storage_state"] = name


def record_error(state: Dict[str, Any], *, step: Any, error: str) -> None:
    state.setdefault("execution", {}).setdefault("errors", []).append({"step": step, "error": error})
