"""NDN certification agent exports."""

from .client import CommandSnapshotClient, SnapshotClient
from .config import Settings, get_settings
from .constraints import CONSTRAINTS, evaluate_constraint
from .cycle import Cycle, EvaluationContext, SnapshotCache
from .errors import (
    BranchFailed,
    CertifierError,
    CommandFailed,
    ContractError,
    LogOrderError,
    MalformedResponse,
    SnapshotError,
    SnapshotTimeout,
    TransientError,
)
from .logstore import LogStore, LogView, Logged, SharedLogStore, merge_logs
from .metrics import METRICS
from .orchestrator import CycleGraph, CycleOrchestrator, CycleReport, CycleState
from .records import Constraint, Evaluation, Measurement, Metric, MetricValue, Property, Rule
from .rules import PROPERTIES, RULES, evaluate_property, evaluate_rule, windowed_all

__all__ = [
    "BranchFailed",
    "CONSTRAINTS",
    "CertifierError",
    "CommandFailed",
    "CommandSnapshotClient",
    "Constraint",
    "ContractError",
    "Cycle",
    "CycleGraph",
    "CycleOrchestrator",
    "CycleReport",
    "CycleState",
    "Evaluation",
    "EvaluationContext",
    "LogOrderError",
    "LogStore",
    "LogView",
    "Logged",
    "METRICS",
    "MalformedResponse",
    "Measurement",
    "Metric",
    "MetricValue",
    "PROPERTIES",
    "Property",
    "RULES",
    "Rule",
    "Settings",
    "SharedLogStore",
    "SnapshotCache",
    "SnapshotClient",
    "SnapshotError",
    "SnapshotTimeout",
    "TransientError",
    "evaluate_constraint",
    "evaluate_property",
    "evaluate_rule",
    "get_settings",
    "merge_logs",
    "windowed_all",
]
