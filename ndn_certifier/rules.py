"""Rule and property stages: aggregates over recorded evaluations."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Sequence, Tuple, Union

from .cycle import EvaluationContext
from .errors import ContractError
from .logstore import LogQueries
from .records import Constraint, Evaluation, Property, Rule, Task

Aggregate = Union[Rule, Property]


def windowed_all(history: LogQueries, task: Task, now: datetime, window: timedelta) -> bool:
    """True when ``task`` has at least one evaluation in the window and all of them passed.

    The window is ``[now - window, now]``; an empty window does not pass.
    """

    entries = history.evaluations_since(task, now - window)
    return bool(entries) and all(value for _, value in entries)


@dataclass(frozen=True)
class AggregateSpec:
    """An AND over the evaluations of ``dependencies``.

    Windowed aggregates read the trailing window of each dependency from the
    history; instantaneous ones only look at the current cycle's results.
    """

    task: Aggregate
    dependencies: Tuple[Task, ...]
    windowed: bool = True

    def evaluate(self, ctx: EvaluationContext, evaluations: Sequence[Evaluation]) -> Evaluation:
        if len(evaluations) != len(self.dependencies):
            raise ContractError(
                f"{self.task.value} expects {len(self.dependencies)} dependencies, got {len(evaluations)}"
            )
        for expected, evaluation in zip(self.dependencies, evaluations):
            if evaluation.task is not expected:
                raise ContractError(
                    f"Wrong dependency type provided to {self.task.value}: "
                    f"expected {expected.value}, got {evaluation.task.value}"
                )
        if self.windowed:
            value = all(windowed_all(ctx.history, task, ctx.now, ctx.window) for task in self.dependencies)
        else:
            value = all(evaluation.value for evaluation in evaluations)
        return ctx.evaluation(self.task, value)


RULES: Dict[Rule, AggregateSpec] = {
    Rule.R1: AggregateSpec(Rule.R1, (Constraint.C1, Constraint.C2, Constraint.C3), windowed=False),
    Rule.R2: AggregateSpec(Rule.R2, (Constraint.C4, Constraint.C5, Constraint.C6, Constraint.C7)),
    Rule.R3: AggregateSpec(Rule.R3, (Constraint.C8,)),
    Rule.R4: AggregateSpec(Rule.R4, (Constraint.C9, Constraint.C10)),
    Rule.R5: AggregateSpec(Rule.R5, (Constraint.C11, Constraint.C12)),
    Rule.R6: AggregateSpec(Rule.R6, (Constraint.C13,)),
    Rule.R7: AggregateSpec(Rule.R7, (Constraint.C14,)),
    Rule.R8: AggregateSpec(Rule.R8, (Constraint.C15,)),
}

PROPERTIES: Dict[Property, AggregateSpec] = {
    Property.P1: AggregateSpec(Property.P1, (Rule.R1, Rule.R2, Rule.R3, Rule.R4, Rule.R5)),
    Property.P2: AggregateSpec(Property.P2, (Rule.R6, Rule.R7)),
    Property.P3: AggregateSpec(Property.P3, (Rule.R6, Rule.R7, Rule.R8)),
}


def evaluate_rule(rule: Rule, ctx: EvaluationContext, evaluations: Sequence[Evaluation]) -> Evaluation:
    return RULES[rule].evaluate(ctx, evaluations)


def evaluate_property(prop: Property, ctx: EvaluationContext, evaluations: Sequence[Evaluation]) -> Evaluation:
    return PROPERTIES[prop].evaluate(ctx, evaluations)


__all__ = [
    "AggregateSpec",
    "PROPERTIES",
    "RULES",
    "evaluate_property",
    "evaluate_rule",
    "windowed_all",
]
