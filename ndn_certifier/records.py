"""Identities and immutable records produced by the evaluation DAG."""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple, Union

from pydantic import BaseModel, TypeAdapter, ValidationError

from .errors import ContractError
from .snapshots import PacketStatistics, SignatureCounts


Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class Metric(str, Enum):
    """Metric identities (M1 to M14)."""

    M1 = "M1"
    M2 = "M2"
    M3 = "M3"
    M4 = "M4"
    M5 = "M5"
    M6 = "M6"
    M7 = "M7"
    M8 = "M8"
    M9 = "M9"
    M10 = "M10"
    M11 = "M11"
    M12 = "M12"
    M13 = "M13"
    M14 = "M14"


class Constraint(str, Enum):
    """Constraint identities (C1 to C15)."""

    C1 = "C1"
    C2 = "C2"
    C3 = "C3"
    C4 = "C4"
    C5 = "C5"
    C6 = "C6"
    C7 = "C7"
    C8 = "C8"
    C9 = "C9"
    C10 = "C10"
    C11 = "C11"
    C12 = "C12"
    C13 = "C13"
    C14 = "C14"
    C15 = "C15"


class Rule(str, Enum):
    """Rule identities (R1 to R8)."""

    R1 = "R1"
    R2 = "R2"
    R3 = "R3"
    R4 = "R4"
    R5 = "R5"
    R6 = "R6"
    R7 = "R7"
    R8 = "R8"


class Property(str, Enum):
    """Top-level property identities (P1 to P3)."""

    P1 = "P1"
    P2 = "P2"
    P3 = "P3"


Task = Union[Constraint, Rule, Property]
Identity = Union[Metric, Constraint, Rule, Property]


def identity_from_name(name: str) -> Identity:
    """Resolve a persisted key such as ``"M3"`` or ``"R2"`` back to its enum."""

    for enum_cls in (Metric, Constraint, Rule, Property):
        try:
            return enum_cls(name)
        except ValueError:
            continue
    raise KeyError(f"Unknown metric or task identity {name!r}")


# Payload shape of each metric; fixed for the lifetime of the store.
METRIC_PAYLOADS: Dict[Metric, Any] = {
    Metric.M1: str,
    Metric.M2: int,
    Metric.M3: int,
    Metric.M4: PacketStatistics,
    Metric.M5: Dict[str, str],
    Metric.M6: Dict[int, int],
    Metric.M7: Dict[int, PacketStatistics],
    Metric.M8: Dict[int, PacketStatistics],
    Metric.M9: Dict[int, PacketStatistics],
    Metric.M10: Dict[int, PacketStatistics],
    Metric.M11: Dict[str, Tuple[datetime, datetime]],
    Metric.M12: Optional[str],
    Metric.M13: int,
    Metric.M14: SignatureCounts,
}

_ADAPTERS: Dict[Metric, TypeAdapter] = {
    metric: TypeAdapter(payload) for metric, payload in METRIC_PAYLOADS.items()
}


def to_jsonable(value: Any) -> Any:
    """Convert a metric payload into JSON-compatible primitives.

    Non-finite floats become ``None``; the statistics models read ``None``
    back as NaN.
    """

    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, BaseModel):
        return to_jsonable(value.model_dump())
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(key): to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    return value


@dataclass(frozen=True)
class MetricValue:
    """A metric payload tagged with the metric that produced it."""

    metric: Metric
    value: Any

    @classmethod
    def of(cls, metric: Metric, value: Any) -> "MetricValue":
        """Validate ``value`` against the payload shape declared for ``metric``."""

        try:
            validated = _ADAPTERS[metric].validate_python(value)
        except ValidationError as exc:
            raise ContractError(f"Invalid payload for {metric.value}: {exc}") from exc
        return cls(metric=metric, value=validated)

    def expect(self, metric: Metric) -> Any:
        if self.metric is not metric:
            raise ContractError(
                f"Wrong dependency type provided: expected {metric.value}, got {self.metric.value}"
            )
        return self.value

    def to_json(self) -> Any:
        return to_jsonable(self.value)


@dataclass(frozen=True)
class Measurement:
    """Output of a metric computation for one cycle."""

    data: MetricValue
    index: int
    timestamp: datetime

    @property
    def metric(self) -> Metric:
        return self.data.metric

    def value_for(self, metric: Metric) -> Any:
        """Return the payload, raising :class:`ContractError` on a tag mismatch."""

        return self.data.expect(metric)

    def as_dict(self) -> dict[str, object]:
        return {
            "metric": self.metric.value,
            "data": self.data.to_json(),
            "index": self.index,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class Evaluation:
    """Boolean verdict of a constraint, rule or property for one cycle."""

    task: Task
    value: bool
    index: int
    timestamp: datetime

    def as_dict(self) -> dict[str, object]:
        return {
            "task": self.task.value,
            "value": self.value,
            "index": self.index,
            "timestamp": self.timestamp.isoformat(),
        }


__all__ = [
    "Clock",
    "Constraint",
    "Evaluation",
    "Identity",
    "METRIC_PAYLOADS",
    "Measurement",
    "Metric",
    "MetricValue",
    "Property",
    "Rule",
    "Task",
    "identity_from_name",
    "to_jsonable",
    "utcnow",
]
