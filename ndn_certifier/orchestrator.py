"""Cycle orchestration: build the evaluation DAG, run it and commit its log."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Union

from .client import SnapshotClient
from .constraints import CONSTRAINTS
from .cycle import DEFAULT_TIMEOUT, DEFAULT_WINDOW, Cycle, SnapshotCache
from .errors import BranchFailed, ContractError, TransientError
from .logstore import Logged, SharedLogStore, merge_logs
from .metrics import METRICS
from .records import Clock, Constraint, Identity, Metric, Property, Rule, utcnow
from .rules import PROPERTIES, RULES

logger = logging.getLogger(__name__)

Outcome = Union[Logged, BaseException]
Reporter = Callable[["CycleReport"], None]

ALL_IDENTITIES: List[Identity] = [*Metric, *Constraint, *Rule, *Property]


class CycleState(str, Enum):
    IDLE = "idle"
    SNAPSHOTTING = "snapshotting"
    EVALUATING = "evaluating"
    MERGING = "merging"
    SLEEPING = "sleeping"


# ---------------------------------------------------------------------------
# Evaluation DAG
# ---------------------------------------------------------------------------


class CycleGraph:
    """Memoized task graph for one cycle.

    Every identity is scheduled at most once; a node awaits only its direct
    dependencies and returns its record together with its branch log.
    """

    def __init__(self, cycle: Cycle) -> None:
        self._cycle = cycle
        self._nodes: Dict[Identity, asyncio.Task] = {}

    def node(self, identity: Identity) -> asyncio.Task:
        task = self._nodes.get(identity)
        if task is None:
            task = asyncio.ensure_future(self._run(identity))
            self._nodes[identity] = task
        return task

    async def run(self, identities: Sequence[Identity] = ALL_IDENTITIES) -> Dict[Identity, Outcome]:
        outcomes = await asyncio.gather(*(self.node(identity) for identity in identities), return_exceptions=True)
        return dict(zip(identities, outcomes))

    async def _run(self, identity: Identity) -> Logged:
        try:
            return await self._compute(identity)
        except BranchFailed as exc:
            logger.debug("Cycle %s: %s", self._cycle.index, exc)
            raise
        except ContractError as exc:
            logger.error("Cycle %s: contract violation in %s: %s", self._cycle.index, identity.value, exc)
            raise
        except TransientError as exc:
            logger.warning("Cycle %s: %s failed: %s", self._cycle.index, identity.value, exc)
            raise
        except Exception:
            logger.exception("Cycle %s: unexpected error in %s", self._cycle.index, identity.value)
            raise

    async def _compute(self, identity: Identity) -> Logged:
        if isinstance(identity, Metric):
            return await METRICS[identity](self._cycle)
        if isinstance(identity, Constraint):
            spec = CONSTRAINTS[identity]
        elif isinstance(identity, Rule):
            spec = RULES[identity]
        else:
            spec = PROPERTIES[identity]
        upstream = await self._dependencies(identity, spec.dependencies)
        logs = merge_logs(result.logs for result in upstream)
        evaluation = spec.evaluate(self._cycle.context(logs), [result.record for result in upstream])
        return Logged(evaluation, logs.with_evaluation(evaluation))

    async def _dependencies(self, identity: Identity, dependencies: Sequence[Identity]) -> List[Logged]:
        outcomes = await asyncio.gather(*(self.node(dep) for dep in dependencies), return_exceptions=True)
        for dependency, outcome in zip(dependencies, outcomes):
            if isinstance(outcome, BranchFailed):
                raise BranchFailed(identity.value, outcome.origin, outcome.cause)
            if isinstance(outcome, BaseException):
                raise BranchFailed(identity.value, dependency.value, outcome)
        return list(outcomes)


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


@dataclass
class CycleReport:
    """Outcome of one cycle; printed, never persisted."""

    index: int
    started_at: datetime
    duration: float
    properties: Dict[Property, Optional[bool]] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def verdict(self) -> bool:
        return bool(self.properties) and all(value is True for value in self.properties.values())

    def as_dict(self) -> Dict[str, object]:
        return {
            "index": self.index,
            "started_at": self.started_at.isoformat(),
            "duration": round(self.duration, 6),
            "properties": {prop.value: value for prop, value in self.properties.items()},
            "verdict": self.verdict,
            "failures": dict(self.failures),
        }

    def summary_line(self) -> str:
        labels = {True: "pass", False: "FAIL", None: "ERROR"}
        parts = [f"{prop.value}={labels[value]}" for prop, value in self.properties.items()]
        verdict = "pass" if self.verdict else "FAIL"
        return f"cycle {self.index}: {' '.join(parts)} verdict={verdict} ({self.duration:.3f}s)"


def _describe(error: BaseException) -> str:
    if isinstance(error, BranchFailed):
        return f"{error.origin}: {error.cause}"
    return f"{type(error).__name__}: {error}"


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class CycleOrchestrator:
    """Drives the polling loop and owns the canonical log store."""

    def __init__(
        self,
        client: SnapshotClient,
        store: SharedLogStore,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        poll_interval: float = 1.0,
        window: timedelta = DEFAULT_WINDOW,
        clock: Clock = utcnow,
        reporter: Optional[Reporter] = None,
    ) -> None:
        self._client = client
        self._store = store
        self._timeout = timeout
        self._poll_interval = poll_interval
        self._window = window
        self._clock = clock
        self._reporter = reporter
        self._next_index = store.next_index()
        self.state = CycleState.IDLE

    @classmethod
    def from_settings(
        cls,
        settings,
        client: SnapshotClient,
        store: SharedLogStore,
        *,
        reporter: Optional[Reporter] = None,
    ) -> "CycleOrchestrator":
        return cls(
            client,
            store,
            timeout=settings.timeout_ms / 1000.0,
            poll_interval=settings.poll_interval,
            window=timedelta(seconds=settings.rule_window),
            reporter=reporter,
        )

    @property
    def store(self) -> SharedLogStore:
        return self._store

    @property
    def next_index(self) -> int:
        return self._next_index

    async def run_cycle(self) -> CycleReport:
        """Run one cycle and commit its log in a single write."""

        index = self._next_index
        self._next_index += 1
        started_at = self._clock()
        started = time.perf_counter()

        self.state = CycleState.SNAPSHOTTING
        snapshots = SnapshotCache(self._client, timeout=self._timeout)
        cycle = Cycle(
            index=index,
            snapshots=snapshots,
            history=self._store.snapshot(),
            clock=self._clock,
            window=self._window,
        )
        snapshots.prefetch()

        self.state = CycleState.EVALUATING
        try:
            outcomes = await CycleGraph(cycle).run()
        finally:
            await snapshots.close()

        self.state = CycleState.MERGING
        duration = time.perf_counter() - started
        delta = merge_logs(outcome.logs for outcome in outcomes.values() if isinstance(outcome, Logged))
        delta.insert_duration(index, duration)
        self._store.commit(delta)

        report = CycleReport(index=index, started_at=started_at, duration=duration)
        for prop in Property:
            outcome = outcomes.get(prop)
            report.properties[prop] = outcome.record.value if isinstance(outcome, Logged) else None
        for identity, outcome in outcomes.items():
            if isinstance(outcome, BaseException):
                report.failures[identity.value] = _describe(outcome)
        self.state = CycleState.IDLE
        return report

    async def run_forever(self, stop: asyncio.Event) -> None:
        """Run cycles until ``stop`` is set; a failing cycle never ends the loop."""

        while not stop.is_set():
            try:
                report = await self.run_cycle()
            except Exception:
                logger.exception("Cycle failed")
            else:
                if self._reporter is not None:
                    self._reporter(report)
            self.state = CycleState.SLEEPING
            try:
                await asyncio.wait_for(stop.wait(), self._poll_interval)
            except asyncio.TimeoutError:
                pass
            self.state = CycleState.IDLE


__all__ = [
    "ALL_IDENTITIES",
    "CycleGraph",
    "CycleOrchestrator",
    "CycleReport",
    "CycleState",
]
