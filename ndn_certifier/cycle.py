"""Per-cycle context: memoized snapshot fetches and evaluation inputs."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from .client import SnapshotClient
from .errors import ContractError, SnapshotTimeout
from .logstore import LogStore, LogView, Logged
from .records import Clock, Evaluation, Measurement, Metric, MetricValue, Task, utcnow
from .snapshots import CertificateDetail, CertificateList, ForwarderStatus

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 1.0
DEFAULT_WINDOW = timedelta(minutes=2)

CallKey = Tuple[str, ...]


class SnapshotCache:
    """Shares each external call across every consumer of the cycle.

    The first request for a call identity starts an :class:`asyncio.Task`;
    later requests await the same task. Each await is bounded by its own
    timeout and never cancels the shared fetch.
    """

    def __init__(self, client: SnapshotClient, *, timeout: float = DEFAULT_TIMEOUT) -> None:
        self._client = client
        self._timeout = timeout
        self._tasks: Dict[CallKey, asyncio.Task] = {}

    @property
    def timeout(self) -> float:
        return self._timeout

    def prefetch(self) -> None:
        """Start the three cycle-wide snapshot fetches."""

        self._task(("forwarder_status",), self._client.get_forwarder_status)
        self._task(("certificate_list",), self._client.list_certificates)
        self._task(("host_memory",), self._client.get_host_memory)

    async def forwarder_status(self) -> ForwarderStatus:
        return await self._fetch(("forwarder_status",), self._client.get_forwarder_status, ForwarderStatus)

    async def certificate_list(self) -> CertificateList:
        return await self._fetch(("certificate_list",), self._client.list_certificates, CertificateList)

    async def certificate_detail(self, identity: str) -> CertificateDetail:
        return await self._fetch(
            ("certificate_detail", identity),
            lambda: self._client.get_certificate_detail(identity),
            CertificateDetail,
        )

    async def host_memory(self) -> int:
        return await self._fetch(("host_memory",), self._client.get_host_memory, int)

    def calls(self) -> Tuple[CallKey, ...]:
        return tuple(self._tasks)

    async def close(self) -> None:
        """Cancel fetches nobody awaited and collect their outcomes."""

        pending = [(key, task) for key, task in self._tasks.items() if not task.done()]
        for key, task in pending:
            logger.debug("Cancelling unfinished fetch %s", "/".join(key))
            task.cancel()
        await asyncio.gather(*self._tasks.values(), return_exceptions=True)

    def _task(self, key: CallKey, factory: Callable[[], Awaitable[Any]]) -> asyncio.Task:
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._tasks[key] = task
        return task

    async def _fetch(self, key: CallKey, factory: Callable[[], Awaitable[Any]], expected: type) -> Any:
        task = self._task(key, factory)
        try:
            result = await asyncio.wait_for(asyncio.shield(task), self._timeout)
        except asyncio.TimeoutError as exc:
            raise SnapshotTimeout("/".join(key), self._timeout) from exc
        if not isinstance(result, expected) or (expected is int and isinstance(result, bool)):
            raise ContractError(
                f"Wrong dependency type provided for {'/'.join(key)}: "
                f"expected {expected.__name__}, got {type(result).__name__}"
            )
        return result


@dataclass
class Cycle:
    """Inputs shared by every task evaluated during one polling cycle."""

    index: int
    snapshots: SnapshotCache
    history: LogStore = field(default_factory=LogStore)
    clock: Clock = utcnow
    window: timedelta = DEFAULT_WINDOW

    def measure(self, metric: Metric, value: Any) -> Logged[Measurement]:
        measurement = Measurement(data=MetricValue.of(metric, value), index=self.index, timestamp=self.clock())
        return Logged(measurement, LogStore().with_measurement(measurement))

    def context(self, logs: Optional[LogStore] = None) -> "EvaluationContext":
        return EvaluationContext(
            index=self.index,
            now=self.clock(),
            history=LogView(self.history, logs),
            window=self.window,
        )


@dataclass(frozen=True)
class EvaluationContext:
    """What a constraint, rule or property sees when it evaluates."""

    index: int
    now: datetime
    history: LogView
    window: timedelta = DEFAULT_WINDOW

    def evaluation(self, task: Task, value: bool) -> Evaluation:
        return Evaluation(task=task, value=bool(value), index=self.index, timestamp=self.now)


__all__ = [
    "Cycle",
    "DEFAULT_TIMEOUT",
    "DEFAULT_WINDOW",
    "EvaluationContext",
    "SnapshotCache",
]
