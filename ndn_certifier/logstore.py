"""Append-only, mergeable log of measurements and evaluations."""

from __future__ import annotations

import json
import logging
import os
from bisect import bisect_left
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from threading import RLock
from typing import Any, Dict, Generic, Iterable, List, Mapping, MutableMapping, Optional, Sequence, Tuple, TypeVar

from .errors import LogOrderError
from .records import (
    Evaluation,
    Identity,
    Measurement,
    Metric,
    MetricValue,
    Task,
    identity_from_name,
)

logger = logging.getLogger(__name__)

R = TypeVar("R")

Entry = Tuple[Any, Any]
# Time-ordered collections are keyed by (timestamp, index) so equal clock
# readings from different cycles stay distinct.
TimeKey = Tuple[datetime, int]
Table = Dict[str, Dict[str, Any]]

_COLLECTIONS = (
    "measurements_by_index",
    "measurements_by_time",
    "evaluations_by_index",
    "evaluations_by_time",
)


def merge_sequence(mine: List[Entry], theirs: Sequence[Entry]) -> None:
    """Merge the sorted ``theirs`` into the sorted ``mine`` in place.

    Entries newer than the receiver's tail are appended; older entries are
    folded in only when their key is absent. Existing entries are never
    replaced, so repeating a merge has no effect.
    """

    if not theirs:
        return
    if not mine:
        mine.extend(theirs)
        return
    tail = mine[-1][0]
    if theirs[0][0] > tail:
        mine.extend(theirs)
        return
    newer: List[Entry] = []
    for key, value in theirs:
        if key > tail:
            newer.append((key, value))
            continue
        position = bisect_left(mine, key, key=lambda entry: entry[0])
        if position < len(mine) and mine[position][0] == key:
            continue
        mine.insert(position, (key, value))
    mine.extend(newer)


class LogQueries:
    """Read helpers shared by :class:`LogStore` and :class:`LogView`."""

    def _sequence(self, collection: str, key: Identity) -> Sequence[Entry]:  # pragma: no cover - interface
        raise NotImplementedError

    def measurements(self, metric: Metric) -> Sequence[Tuple[int, MetricValue]]:
        return self._sequence("measurements_by_index", metric)

    def evaluations(self, task: Task) -> Sequence[Tuple[int, bool]]:
        return self._sequence("evaluations_by_index", task)

    def recent_measurements(self, metric: Metric, count: int, *, upto_index: int) -> List[Any]:
        """Return up to ``count`` most recent payloads of ``metric`` at or before ``upto_index``.

        Values are returned oldest first.
        """

        values: List[Any] = []
        for index, data in reversed(self.measurements(metric)):
            if index > upto_index:
                continue
            values.append(data.expect(metric))
            if len(values) == count:
                break
        values.reverse()
        return values

    def evaluations_since(self, task: Task, cutoff: datetime) -> List[Tuple[datetime, bool]]:
        """Return evaluations of ``task`` recorded at or after ``cutoff``, newest first.

        The scan walks backwards and stops at the first entry older than the cutoff.
        """

        found: List[Tuple[datetime, bool]] = []
        for (timestamp, _), value in reversed(self._sequence("evaluations_by_time", task)):
            if timestamp < cutoff:
                break
            found.append((timestamp, value))
        return found

    def last_evaluation(self, task: Task) -> Optional[bool]:
        entries = self.evaluations(task)
        return entries[-1][1] if entries else None


class LogStore(LogQueries):
    """Time series of every measurement and evaluation produced by the agent.

    Each per-key sequence is sorted by strictly increasing index (or by
    timestamp, then index) and a given ``(identity, index)`` pair is written
    at most once.
    """

    def __init__(self) -> None:
        self.measurements_by_index: Dict[Metric, List[Tuple[int, MetricValue]]] = {}
        self.measurements_by_time: Dict[Metric, List[Tuple[TimeKey, MetricValue]]] = {}
        self.evaluations_by_index: Dict[Task, List[Tuple[int, bool]]] = {}
        self.evaluations_by_time: Dict[Task, List[Tuple[TimeKey, bool]]] = {}
        self.duration_by_index: Dict[int, float] = {}

    # ------------------------------------------------------------------
    # Mutators
    # ------------------------------------------------------------------
    def insert_measurement(self, measurement: Measurement) -> None:
        metric = measurement.metric
        self._check_order(self.measurements_by_index, metric, measurement.index)
        self._check_order(self.measurements_by_time, metric, (measurement.timestamp, measurement.index))
        self.measurements_by_index.setdefault(metric, []).append((measurement.index, measurement.data))
        self.measurements_by_time.setdefault(metric, []).append(
            ((measurement.timestamp, measurement.index), measurement.data)
        )

    def insert_evaluation(self, evaluation: Evaluation) -> None:
        task = evaluation.task
        self._check_order(self.evaluations_by_index, task, evaluation.index)
        self._check_order(self.evaluations_by_time, task, (evaluation.timestamp, evaluation.index))
        self.evaluations_by_index.setdefault(task, []).append((evaluation.index, evaluation.value))
        self.evaluations_by_time.setdefault(task, []).append(
            ((evaluation.timestamp, evaluation.index), evaluation.value)
        )

    def insert_duration(self, index: int, seconds: float) -> None:
        if index in self.duration_by_index:
            raise LogOrderError(f"Duration for cycle {index} already recorded")
        self.duration_by_index[index] = float(seconds)

    def with_measurement(self, measurement: Measurement) -> "LogStore":
        self.insert_measurement(measurement)
        return self

    def with_evaluation(self, evaluation: Evaluation) -> "LogStore":
        self.insert_evaluation(evaluation)
        return self

    def merge(self, other: "LogStore") -> "LogStore":
        """Fold ``other`` into this store; idempotent and never lossy."""

        for name in _COLLECTIONS:
            target: MutableMapping[Any, List[Entry]] = getattr(self, name)
            for key, entries in getattr(other, name).items():
                if key not in target:
                    target[key] = list(entries)
                else:
                    merge_sequence(target[key], entries)
        for index, seconds in other.duration_by_index.items():
            self.duration_by_index.setdefault(index, seconds)
        return self

    def trim(self, limit: int) -> None:
        """Keep at most ``limit`` entries per key; ``0`` disables trimming."""

        if limit <= 0:
            return
        for name in _COLLECTIONS:
            for entries in getattr(self, name).values():
                if len(entries) > limit:
                    del entries[:-limit]
        if len(self.duration_by_index) > limit:
            for index in sorted(self.duration_by_index)[:-limit]:
                del self.duration_by_index[index]

    @staticmethod
    def _check_order(collection: Dict[Any, List[Entry]], key: Identity, position: Any) -> None:
        entries = collection.get(key)
        if entries and entries[-1][0] >= position:
            raise LogOrderError(
                f"{key.value}: entry at {position!r} does not follow {entries[-1][0]!r}"
            )

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------
    def _sequence(self, collection: str, key: Identity) -> Sequence[Entry]:
        return getattr(self, collection).get(key, ())

    def latest_index(self) -> Optional[int]:
        """Highest cycle index recorded anywhere in the store."""

        candidates: List[int] = list(self.duration_by_index)
        for name in ("measurements_by_index", "evaluations_by_index"):
            for entries in getattr(self, name).values():
                if entries:
                    candidates.append(entries[-1][0])
        return max(candidates) if candidates else None

    def is_empty(self) -> bool:
        return not self.duration_by_index and not any(getattr(self, name) for name in _COLLECTIONS)

    def copy(self) -> "LogStore":
        clone = LogStore()
        for name in _COLLECTIONS:
            setattr(clone, name, {key: list(entries) for key, entries in getattr(self, name).items()})
        clone.duration_by_index = dict(self.duration_by_index)
        return clone

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LogStore):
            return NotImplemented
        return all(getattr(self, name) == getattr(other, name) for name in _COLLECTIONS) and (
            self.duration_by_index == other.duration_by_index
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def to_table(self) -> Table:
        """Flatten the store into a JSON-ready mapping grouped by key."""

        table: Table = {}
        for name in _COLLECTIONS:
            grouped: Dict[str, Any] = {}
            for key, entries in getattr(self, name).items():
                grouped[key.value] = [
                    [_encode_position(position), _encode_value(value)] for position, value in entries
                ]
            table[name] = grouped
        table["duration_by_index"] = {
            str(index): seconds for index, seconds in sorted(self.duration_by_index.items())
        }
        return table

    @classmethod
    def from_table(cls, table: Mapping[str, Any]) -> "LogStore":
        """Rebuild a store from the output of :meth:`to_table`."""

        store = cls()
        for name in _COLLECTIONS:
            by_time = name.endswith("_by_time")
            target: Dict[Any, List[Entry]] = getattr(store, name)
            for key_name, rows in (table.get(name) or {}).items():
                identity = identity_from_name(key_name)
                entries: List[Entry] = []
                for position, value in rows:
                    if by_time:
                        timestamp, index = position
                        decoded_position: Any = (datetime.fromisoformat(timestamp), int(index))
                    else:
                        decoded_position = int(position)
                    if isinstance(identity, Metric):
                        value = MetricValue.of(identity, value)
                    else:
                        value = bool(value)
                    entries.append((decoded_position, value))
                entries.sort(key=lambda entry: entry[0])
                target[identity] = entries
        for index, seconds in (table.get("duration_by_index") or {}).items():
            store.duration_by_index[int(index)] = float(seconds)
        return store


def _encode_position(position: Any) -> Any:
    if isinstance(position, tuple):
        timestamp, index = position
        return [timestamp.isoformat(), index]
    return position


def _encode_value(value: Any) -> Any:
    if isinstance(value, MetricValue):
        return value.to_json()
    return value


class LogView(LogQueries):
    """Read-only overlay of a branch log on top of a base store."""

    def __init__(self, base: LogStore, overlay: Optional[LogStore] = None) -> None:
        self._base = base
        self._overlay = overlay

    def _sequence(self, collection: str, key: Identity) -> Sequence[Entry]:
        base = self._base._sequence(collection, key)
        if self._overlay is None:
            return base
        extra = self._overlay._sequence(collection, key)
        if not extra:
            return base
        combined = list(base)
        merge_sequence(combined, extra)
        return combined


@dataclass(frozen=True)
class Logged(Generic[R]):
    """A task result paired with the log accumulated along its branch."""

    record: R
    logs: LogStore


def merge_logs(parts: Iterable[LogStore]) -> LogStore:
    merged = LogStore()
    for part in parts:
        merged.merge(part)
    return merged


class SharedLogStore:
    """Canonical store owned by the orchestrator.

    Readers copy a consistent snapshot at cycle start; the end-of-cycle merge
    and the shutdown flush take the same lock.
    """

    def __init__(self, store: Optional[LogStore] = None, *, history_limit: int = 0) -> None:
        self._store = store if store is not None else LogStore()
        self._history_limit = history_limit
        self._lock = RLock()

    @classmethod
    def load(cls, path: Path, *, history_limit: int = 0) -> "SharedLogStore":
        """Restore the store persisted at ``path``; start empty when absent or unreadable."""

        store = LogStore()
        if path.exists():
            try:
                table = json.loads(path.read_text(encoding="utf-8"))
                store = LogStore.from_table(table)
                logger.info("Restored log store from %s (latest cycle %s)", path, store.latest_index())
            except (OSError, ValueError, KeyError, TypeError) as exc:
                logger.warning("Ignoring unreadable state file %s: %s", path, exc)
                store = LogStore()
        store.trim(history_limit)
        return cls(store, history_limit=history_limit)

    def snapshot(self) -> LogStore:
        with self._lock:
            return self._store.copy()

    def commit(self, delta: LogStore) -> None:
        """Merge a cycle's accumulated log under a single exclusive write."""

        with self._lock:
            self._store.merge(delta)
            self._store.trim(self._history_limit)

    def next_index(self) -> int:
        with self._lock:
            latest = self._store.latest_index()
        return 0 if latest is None else latest + 1

    def to_table(self) -> Table:
        with self._lock:
            return self._store.to_table()

    def flush(self, path: Path) -> Path:
        """Write the flattened table to ``path``, creating parent directories."""

        table = self.to_table()
        path.parent.mkdir(parents=True, exist_ok=True)
        temporary = path.with_name(path.name + ".tmp")
        temporary.write_text(json.dumps(table, separators=(",", ":"), allow_nan=False), encoding="utf-8")
        os.replace(temporary, path)
        logger.info("Persisted log store to %s", path)
        return path


__all__ = [
    "LogQueries",
    "LogStore",
    "LogView",
    "Logged",
    "SharedLogStore",
    "Table",
    "merge_logs",
    "merge_sequence",
]
