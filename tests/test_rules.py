from __future__ import annotations

from datetime import timedelta

import pytest

from fakes import BASE_TIME

from ndn_certifier.cycle import EvaluationContext
from ndn_certifier.errors import ContractError
from ndn_certifier.logstore import LogStore, LogView
from ndn_certifier.records import Constraint, Evaluation, Property, Rule
from ndn_certifier.rules import PROPERTIES, RULES, evaluate_property, evaluate_rule, windowed_all

WINDOW = timedelta(minutes=2)


def _record(store: LogStore, task, value: bool, index: int, seconds_ago: float) -> Evaluation:
    evaluation = Evaluation(task=task, value=value, index=index, timestamp=BASE_TIME - timedelta(seconds=seconds_ago))
    store.insert_evaluation(evaluation)
    return evaluation


def _context(history: LogStore, index: int = 10) -> EvaluationContext:
    return EvaluationContext(index=index, now=BASE_TIME, history=LogView(history), window=WINDOW)


def test_false_inside_window_fails_even_after_older_success() -> None:
    store = LogStore()
    _record(store, Constraint.C8, True, 0, 300)
    _record(store, Constraint.C8, False, 1, 30)
    assert not windowed_all(store, Constraint.C8, BASE_TIME, WINDOW)


def test_empty_window_is_false() -> None:
    store = LogStore()
    _record(store, Constraint.C8, True, 0, 300)
    assert not windowed_all(store, Constraint.C8, BASE_TIME, WINDOW)
    assert not windowed_all(LogStore(), Constraint.C8, BASE_TIME, WINDOW)


def test_window_boundary_is_inclusive() -> None:
    store = LogStore()
    _record(store, Constraint.C8, False, 0, 121)
    _record(store, Constraint.C8, True, 1, 120)
    assert windowed_all(store, Constraint.C8, BASE_TIME, WINDOW)


def test_old_failures_fall_out_of_the_window() -> None:
    store = LogStore()
    _record(store, Constraint.C14, False, 0, 600)
    for index, seconds_ago in enumerate([90, 60, 30, 0], start=1):
        _record(store, Constraint.C14, True, index, seconds_ago)
    assert windowed_all(store, Constraint.C14, BASE_TIME, WINDOW)


def test_instantaneous_rule_uses_current_values_only() -> None:
    history = LogStore()
    _record(history, Constraint.C1, False, 3, 30)
    current = [
        _record(history, Constraint.C1, True, 4, 0),
        _record(history, Constraint.C2, True, 4, 0),
        _record(history, Constraint.C3, True, 4, 0),
    ]
    assert not RULES[Rule.R1].windowed
    assert evaluate_rule(Rule.R1, _context(history, index=4), current).value

    failing = [current[0], current[1], Evaluation(task=Constraint.C3, value=False, index=4, timestamp=BASE_TIME)]
    assert not evaluate_rule(Rule.R1, _context(history, index=4), failing).value


def test_windowed_rule_reads_history_of_every_dependency() -> None:
    history = LogStore()
    latest = []
    for constraint in (Constraint.C9, Constraint.C10):
        _record(history, constraint, True, 1, 60)
        latest.append(_record(history, constraint, True, 2, 0))
    assert evaluate_rule(Rule.R4, _context(history, index=2), latest).value

    broken = LogStore()
    _record(broken, Constraint.C9, True, 1, 60)
    _record(broken, Constraint.C10, False, 1, 60)
    current = [_record(broken, Constraint.C9, True, 2, 0), _record(broken, Constraint.C10, True, 2, 0)]
    result = evaluate_rule(Rule.R4, _context(broken, index=2), current)
    assert result.task is Rule.R4
    assert not result.value


def test_rule_rejects_wrong_dependency() -> None:
    history = LogStore()
    wrong = [_record(history, Constraint.C14, True, 0, 0)]
    with pytest.raises(ContractError):
        evaluate_rule(Rule.R3, _context(history, index=0), wrong)


def test_property_dependencies() -> None:
    assert PROPERTIES[Property.P1].dependencies == (Rule.R1, Rule.R2, Rule.R3, Rule.R4, Rule.R5)
    assert PROPERTIES[Property.P2].dependencies == (Rule.R6, Rule.R7)
    assert PROPERTIES[Property.P3].dependencies == (Rule.R6, Rule.R7, Rule.R8)


def test_property_is_windowed_over_rules() -> None:
    history = LogStore()
    _record(history, Rule.R8, False, 0, 45)
    current = [
        _record(history, Rule.R6, True, 1, 0),
        _record(history, Rule.R7, True, 1, 0),
        _record(history, Rule.R8, True, 1, 0),
    ]
    ctx = _context(history, index=1)
    assert evaluate_property(Property.P2, ctx, current[:2]).value
    assert not evaluate_property(Property.P3, ctx, current).value
