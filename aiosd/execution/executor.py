"""Command Executor - runs shell commands for sessions

# =============================================================================
# SINGLE EXECUTION AUTHORITY
# All command execution MUST flow through this module.
# =============================================================================

NO AI. NO retries. Just execution.

The safety gate is consulted by the caller BEFORE execute() is reached.
Output capture is bounded: stdout+stderr go to a temp file and at most
MAX_OUTPUT_BYTES are read back.
"""

import logging
import subprocess
import tempfile
from dataclasses import dataclass
from typing import Dict, Any, Optional


MAX_OUTPUT_BYTES = 4096
EXECUTION_TIMEOUT = 120
TIMEOUT_EXIT_CODE = 124


@dataclass
class ExecutionResult:
    output: str
    exit_code: int
    truncated: bool = False
    timed_out: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "execution_result": self.output,
            "exit_code": self.exit_code,
        }


class CommandExecutor:
    """Runs one shell command with a timeout and bounded output"""

    def __init__(self, timeout: float = EXECUTION_TIMEOUT, max_output: int = MAX_OUTPUT_BYTES):
        self.timeout = timeout
        self.max_output = max_output

    def execute(self, command: str, cwd: Optional[str] = None) -> ExecutionResult:
        logging.info(f"Executing command: {command}")

        with tempfile.TemporaryFile() as capture:
            try:
                completed = subprocess.run(
                    command,
                    shell=True,
                    cwd=cwd or None,
                    stdin=subprocess.DEVNULL,
                    stdout=capture,
                    stderr=subprocess.STDOUT,
                    timeout=self.timeout,
                )
                exit_code = completed.returncode
                timed_out = False
            except subprocess.TimeoutExpired:
                logging.warning(f"Command timed out after {self.timeout}s: {command}")
                exit_code = TIMEOUT_EXIT_CODE
                timed_out = True
            except OSError as e:
                logging.error(f"Failed to execute command '{command}': {e}")
                return ExecutionResult("ERROR: Failed to execute command", -1)

            capture.seek(0)
            raw = capture.read(self.max_output + 1)

        truncated = len(raw) > self.max_output
        output = raw[:self.max_output].decode("utf-8", errors="replace")

        if timed_out:
            output = f"{output}\nERROR: command timed out after {self.timeout}s".lstrip("\n")
        elif not output:
            output = f"Command executed successfully (exit code: {exit_code})"

        if truncated:
            logging.debug(f"Output truncated to {self.max_output} bytes")

        return ExecutionResult(output, exit_code, truncated, timed_out)
