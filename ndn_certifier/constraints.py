"""Constraint stage: per-cycle boolean checks over metric measurements."""
from __future__ import annotations

import math
from dataclasses import dataclass
from statistics import stdev
from typing import Callable, Dict, Iterable, Mapping, Optional, Sequence, Tuple

from .cycle import EvaluationContext
from .errors import ContractError
from .records import Constraint, Evaluation, Measurement, Metric
from .snapshots import PacketStatistics, SignatureCounts

CS_ENTRY_SIZE = 8192
MAX_CS_CAPACITY = 100_000
MEMORY_SHARE_PERCENT = 80
USAGE_SHARE_PERCENT = 80
TRAILING_SAMPLES = 5
MAX_USAGE_STDEV = 5.0
MAX_ENTRY_SIZE_STDEV = 5.0
MIN_ENTRY_SIZE_AVG = 20.0
MAX_PENDING_INTERESTS = 100
MIN_PACKET_SIZE = 10
COMPONENT_RANGE = (3.0, 12.0)

ConstraintCheck = Callable[..., bool]


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------


def c1(ctx: EvaluationContext, policy: str) -> bool:
    """The content store uses LRU replacement."""

    return policy == "lru"


def c2(ctx: EvaluationContext, capacity: int, memory: int) -> bool:
    """A full content store fits in 80% of host memory."""

    return capacity * CS_ENTRY_SIZE * 100 <= memory * MEMORY_SHARE_PERCENT


def c3(ctx: EvaluationContext, capacity: int) -> bool:
    return capacity <= MAX_CS_CAPACITY


def c4(ctx: EvaluationContext, usage: int, capacity: int) -> bool:
    """The content store is at least 80% full."""

    return usage >= capacity * USAGE_SHARE_PERCENT // 100


def c5(ctx: EvaluationContext, usage: int) -> bool:
    """Content store usage is stable over the last five recorded cycles.

    The current measurement is part of the sample; with fewer than five
    samples, or before cycle 4, the check does not pass.
    """

    if ctx.index < TRAILING_SAMPLES - 1:
        return False
    samples = ctx.history.recent_measurements(Metric.M3, TRAILING_SAMPLES, upto_index=ctx.index)
    if len(samples) < TRAILING_SAMPLES:
        return False
    return stdev(samples) < MAX_USAGE_STDEV


def c6(ctx: EvaluationContext, sizes: PacketStatistics) -> bool:
    return sizes.std_dev <= MAX_ENTRY_SIZE_STDEV


def c7(ctx: EvaluationContext, sizes: PacketStatistics) -> bool:
    return sizes.avg >= MIN_ENTRY_SIZE_AVG


def c8(ctx: EvaluationContext, pending: Mapping[int, int]) -> bool:
    """No face has 100 or more unanswered interests."""

    return all(count < MAX_PENDING_INTERESTS for count in pending.values())


def _minimum_sizes(per_face: Mapping[int, PacketStatistics]) -> bool:
    return all(stats.min >= MIN_PACKET_SIZE for stats in per_face.values())


def _component_averages(per_face: Mapping[int, PacketStatistics]) -> bool:
    low, high = COMPONENT_RANGE
    # faces without traffic report NaN and are skipped
    return all(low < stats.avg < high for stats in per_face.values() if not math.isnan(stats.avg))


def c9(ctx: EvaluationContext, interest_sizes: Mapping[int, PacketStatistics]) -> bool:
    return _minimum_sizes(interest_sizes)


def c10(ctx: EvaluationContext, interest_components: Mapping[int, PacketStatistics]) -> bool:
    return _component_averages(interest_components)


def c11(ctx: EvaluationContext, data_sizes: Mapping[int, PacketStatistics]) -> bool:
    return _minimum_sizes(data_sizes)


def c12(ctx: EvaluationContext, data_components: Mapping[int, PacketStatistics]) -> bool:
    return _component_averages(data_components)


def c13(ctx: EvaluationContext, validity: Mapping[str, Tuple]) -> bool:
    """Every certificate is inside its validity period right now."""

    return all(not_before < ctx.now < not_after for not_before, not_after in validity.values())


def c14(ctx: EvaluationContext, default_certificate: Optional[str]) -> bool:
    return default_certificate is not None


def c15(ctx: EvaluationContext, signatures: SignatureCounts) -> bool:
    """No cached packet carries an invalid signature."""

    return signatures.invalid == 0


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConstraintSpec:
    """A constraint check together with the metrics it reads, in argument order."""

    constraint: Constraint
    dependencies: Tuple[Metric, ...]
    check: ConstraintCheck

    def evaluate(self, ctx: EvaluationContext, measurements: Sequence[Measurement]) -> Evaluation:
        if len(measurements) != len(self.dependencies):
            raise ContractError(
                f"{self.constraint.value} expects {len(self.dependencies)} dependencies, "
                f"got {len(measurements)}"
            )
        values = [
            measurement.value_for(metric) for metric, measurement in zip(self.dependencies, measurements)
        ]
        return ctx.evaluation(self.constraint, self.check(ctx, *values))


def _specs(entries: Iterable[Tuple[Constraint, Tuple[Metric, ...], ConstraintCheck]]) -> Dict[Constraint, ConstraintSpec]:
    return {constraint: ConstraintSpec(constraint, deps, check) for constraint, deps, check in entries}


CONSTRAINTS: Dict[Constraint, ConstraintSpec] = _specs(
    [
        (Constraint.C1, (Metric.M1,), c1),
        (Constraint.C2, (Metric.M2, Metric.M13), c2),
        (Constraint.C3, (Metric.M2,), c3),
        (Constraint.C4, (Metric.M3, Metric.M2), c4),
        (Constraint.C5, (Metric.M3,), c5),
        (Constraint.C6, (Metric.M4,), c6),
        (Constraint.C7, (Metric.M4,), c7),
        (Constraint.C8, (Metric.M6,), c8),
        (Constraint.C9, (Metric.M7,), c9),
        (Constraint.C10, (Metric.M9,), c10),
        (Constraint.C11, (Metric.M8,), c11),
        (Constraint.C12, (Metric.M10,), c12),
        (Constraint.C13, (Metric.M11,), c13),
        (Constraint.C14, (Metric.M12,), c14),
        (Constraint.C15, (Metric.M14,), c15),
    ]
)


def evaluate_constraint(
    constraint: Constraint, ctx: EvaluationContext, measurements: Sequence[Measurement]
) -> Evaluation:
    """Evaluate ``constraint`` over the measurements of its dependencies."""

    return CONSTRAINTS[constraint].evaluate(ctx, measurements)


__all__ = [
    "CONSTRAINTS",
    "CS_ENTRY_SIZE",
    "ConstraintSpec",
    "evaluate_constraint",
] + [f"c{number}" for number in range(1, 16)]
