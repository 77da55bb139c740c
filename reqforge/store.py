"""Persists the iteration history and current pointer.

The history lives in a string key-value collaborator as JSON. Durability is
best-effort: a failed write is logged and the in-memory session carries on.
"""

import copy
import json
import os
import sys
import tempfile
from pathlib import Path
from typing import Protocol

from reqforge.analysis import normalize_analysis, validate_iteration_data
from reqforge.state import Iteration
from reqforge.utils.session import SESSION_KEYS

ITERATIONS_KEY = SESSION_KEYS["iterations"]
INDEX_KEY = SESSION_KEYS["iteration_index"]
ANALYSIS_KEY = SESSION_KEYS["analysis"]


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...


class InMemoryKeyValueStore:
    """Dict-backed store for tests and throwaway sessions."""

    def __init__(self, initial: dict[str, str] | None = None):
        self.data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def remove(self, key: str) -> None:
        self.data.pop(key, None)


class JsonFileKeyValueStore:
    """All keys in one JSON object on disk. Writes go through a temp file + rename."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _read_all(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            print(f"[RF] Warning: could not read {self.path}: {exc}. Treating as empty.", file=sys.stderr)
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp_name, self.path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get(self, key: str) -> str | None:
        value = self._read_all().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def remove(self, key: str) -> None:
        data = self._read_all()
        if key in data:
            del data[key]
            self._write_all(data)


def _rehydrate(record: dict) -> Iteration:
    """Re-apply ingestion rules to a persisted record. Raises ValueError if malformed."""
    iteration = {**record, "analysis": normalize_analysis(record["analysis"])}
    if record.get("user_edits") is not None:
        iteration["user_edits"] = normalize_analysis(record["user_edits"])
    else:
        iteration.pop("user_edits", None)
    return iteration


class IterationStore:
    """Serialize/deserialize ``(iterations, current_index)`` under fixed keys."""

    def __init__(self, kv: KeyValueStore):
        self.kv = kv

    def load(self) -> tuple[list[Iteration], int]:
        """Rehydrate the history. Missing or malformed data yields ``([], 0)``."""
        try:
            raw_iterations = self.kv.get(ITERATIONS_KEY)
            raw_index = self.kv.get(INDEX_KEY)
        except OSError as exc:
            print(f"[RF] Warning: could not read iteration history: {exc}", file=sys.stderr)
            return [], 0

        if not raw_iterations:
            return [], 0

        try:
            iterations = json.loads(raw_iterations)
        except json.JSONDecodeError as exc:
            print(f"[RF] Warning: stored iterations are not valid JSON ({exc}). Starting empty.", file=sys.stderr)
            return [], 0

        if not isinstance(iterations, list) or not all(validate_iteration_data(it) for it in iterations):
            print("[RF] Warning: stored iterations failed validation. Starting empty.", file=sys.stderr)
            return [], 0
        if not iterations:
            return [], 0

        try:
            iterations = [_rehydrate(it) for it in iterations]
        except ValueError as exc:
            print(f"[RF] Warning: stored analysis is malformed ({exc}). Starting empty.", file=sys.stderr)
            return [], 0

        try:
            index = int(json.loads(raw_index)) if raw_index is not None else 0
        except (json.JSONDecodeError, TypeError, ValueError):
            print(f"[RF] Warning: stored iteration index {raw_index!r} is invalid. Using 0.", file=sys.stderr)
            index = 0
        index = max(0, min(index, len(iterations) - 1))

        return iterations, index

    def save(self, iterations: list[Iteration], current_index: int) -> bool:
        """Persist the history. Returns False (and logs) instead of raising on failure."""
        try:
            self.kv.set(ITERATIONS_KEY, json.dumps(iterations))
            self.kv.set(INDEX_KEY, json.dumps(current_index))
            if iterations:
                self.kv.set(ANALYSIS_KEY, json.dumps(iterations[current_index]["analysis"]))
        except (OSError, TypeError, ValueError) as exc:
            print(f"[RF] Warning: failed to persist iteration history: {exc}", file=sys.stderr)
            return False
        return True

    def clear(self) -> None:
        for key in (ITERATIONS_KEY, INDEX_KEY, ANALYSIS_KEY):
            try:
                self.kv.remove(key)
            except OSError as exc:
                print(f"[RF] Warning: failed to remove {key}: {exc}", file=sys.stderr)


def snapshot(iterations: list[Iteration]) -> list[Iteration]:
    """Deep copy of a history, for read-only projections handed to callers."""
    return copy.deepcopy(iterations)
