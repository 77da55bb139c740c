"""Session keys and best-effort helpers over the key-value collaborator."""

import json
import sys

SESSION_KEYS = {
    "analysis": "current_analysis",
    "requirement": "current_requirement",
    "form_data": "current_form_data",
    "context": "current_context",
    "iterations": "current_iterations",
    "iteration_index": "current_iteration_index",
    "provider": "current_ai_provider",
}


def get_session_data(kv, key: str):
    """Return the JSON value stored under ``key``, or None if absent or unreadable."""
    try:
        raw = kv.get(key)
        return json.loads(raw) if raw else None
    except (OSError, json.JSONDecodeError) as exc:
        print(f"[RF] Warning: failed to read session data for key {key}: {exc}", file=sys.stderr)
        return None


def set_session_data(kv, key: str, data) -> None:
    try:
        kv.set(key, json.dumps(data))
    except (OSError, TypeError, ValueError) as exc:
        print(f"[RF] Warning: failed to save session data for key {key}: {exc}", file=sys.stderr)


def clear_session_data_except(kv, keys_to_keep: list[str] | None = None) -> None:
    keys_to_keep = keys_to_keep or []
    for key in SESSION_KEYS.values():
        if key in keys_to_keep:
            continue
        try:
            kv.remove(key)
        except OSError as exc:
            print(f"[RF] Warning: failed to remove session key {key}: {exc}", file=sys.stderr)


def clear_all_session_data(kv) -> None:
    clear_session_data_except(kv, [])
