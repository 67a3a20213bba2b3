"""Execution package: safety gate and command executor."""

from .safety import SafetyGate, SafetyVerdict, Verdict
from .executor import CommandExecutor, ExecutionResult

__all__ = [
    "SafetyGate",
    "SafetyVerdict",
    "Verdict",
    "CommandExecutor",
    "ExecutionResult",
]
