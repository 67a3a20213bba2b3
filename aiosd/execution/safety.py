"""Centralized command safety rules.

EXECUTOR-LEVEL enforcement. The model cannot override.

This module defines:
- Destructive command patterns that are never auto-executed
- Privilege-escalated variants of the same
- The SafetyGate used by the dispatch router before any execution

Matching is plain substring matching on the raw command text. These checks
are advisory; they are not a sandbox.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Tuple


# ============================================================================
# BLOCKED PATTERNS
# ============================================================================

DANGEROUS_PATTERNS: Tuple[str, ...] = (
    "rm -rf /",
    "rm -rf /*",
    "dd if=",
    "mkfs",
    "format",
    "fdisk",
    "parted",
    "shutdown",
    "reboot",
    "halt",
    "poweroff",
    "kill -9 1",
    "chmod 777 /",
    "chown root:root /",
    "> /dev/sda",
    "> /dev/sdb",
    ":(){ :|:& };:",  # Fork bomb
)

SUDO_DANGEROUS_PATTERNS: Tuple[str, ...] = (
    "sudo rm -rf",
    "sudo dd",
    "sudo mkfs",
    "sudo fdisk",
    "sudo parted",
)

CONFIRM_MARKER = "CONFIRM_REQUIRED"


class Verdict(Enum):
    """Gate outcome"""
    SAFE = "safe"
    BLOCKED = "blocked"


@dataclass
class SafetyVerdict:
    verdict: Verdict
    pattern: str = ""

    @property
    def is_safe(self) -> bool:
        return self.verdict is Verdict.SAFE


# ============================================================================
# VALIDATION FUNCTIONS
# ============================================================================

def find_dangerous_pattern(command: str) -> str:
    """Return the first matching pattern, or "" if none matches"""
    for pattern in DANGEROUS_PATTERNS:
        if pattern in command:
            return pattern

    if "sudo " in command:
        for pattern in SUDO_DANGEROUS_PATTERNS:
            if pattern in command:
                return pattern

    return ""


def confirmation_marker(command: str) -> str:
    return f"{CONFIRM_MARKER}: {command}"


class SafetyGate:
    """Advisory pre-execution check

    Args:
        enforce: apply the blocklist. False only when safety mode is off or
            the bypass option is set explicitly in config.
    """

    def __init__(self, enforce: bool = True):
        self.enforce = enforce
        if not enforce:
            logging.warning("Safety gate bypassed: destructive command patterns will NOT be blocked")

    def check(self, command: str) -> SafetyVerdict:
        if not command or not command.strip():
            return SafetyVerdict(Verdict.BLOCKED, "<empty>")

        if not self.enforce:
            return SafetyVerdict(Verdict.SAFE)

        pattern = find_dangerous_pattern(command)
        if pattern:
            logging.warning(f"Blocked dangerous command pattern: {pattern}")
            return SafetyVerdict(Verdict.BLOCKED, pattern)

        return SafetyVerdict(Verdict.SAFE)
