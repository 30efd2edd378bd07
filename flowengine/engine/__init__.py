"""Workflow Engine - The brain of the system"""
from .engine import WorkflowEngine
from .condition_evaluator import ConditionEvaluator
from .history_writer import HistoryWriter
from .definition_validator import DefinitionValidator
from .sla_sweep import SlaSweep

__all__ = [
    "WorkflowEngine",
    "ConditionEvaluator",
    "HistoryWriter",
    "DefinitionValidator",
    "SlaSweep",
]
