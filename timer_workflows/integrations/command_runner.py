"""
Command runner behind run_command actions.

Commands are given as an argument list, or as a string split with shlex, and
executed without a shell. Execution is off
unless explicitly enabled in configuration, since rule authors control the
command text.
"""

import shlex
import subprocess
from typing import Any, Dict, Optional, Sequence, Union

from timer_workflows.utils.logger import get_logger, StructuredLogger


class CommandError(Exception):
    """Raised when a command is refused, cannot start, times out or exits non-zero."""

    def __init__(self, message: str, exit_code: Optional[int] = None):
        super().__init__(message)
        self.exit_code = exit_code


class SubprocessCommandRunner:
    """Run commands as subprocesses and return their exit code and output."""

    def __init__(
        self,
        enabled: bool = False,
        timeout_seconds: float = 30,
        check: bool = True,
        logger: Optional[StructuredLogger] = None,
    ):
        self.enabled = enabled
        self.timeout_seconds = timeout_seconds
        self.check = check
        self.logger = logger or get_logger(__name__)

    def run(self, command: Union[str, Sequence[str]]) -> Dict[str, Any]:
        if not self.enabled:
            raise CommandError("Command execution is disabled (WORKFLOW_COMMANDS_ENABLED=false)")

        if command is None or isinstance(command, str):
            argv = shlex.split(command or "")
        else:
            argv = [str(arg) for arg in command]
        if not argv:
            raise CommandError("Empty command")

        try:
            completed = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
                check=False,
            )
        except FileNotFoundError as e:
            raise CommandError(f"Command not found: {argv[0]}") from e
        except subprocess.TimeoutExpired as e:
            raise CommandError(f"Command timed out after {self.timeout_seconds}s") from e

        self.logger.info(
            "Command finished",
            operation="run_command",
            context={"program": argv[0], "exit_code": completed.returncode},
        )

        if self.check and completed.returncode != 0:
            raise CommandError(
                f"Command exited with {completed.returncode}: {completed.stderr.strip()[:200]}",
                exit_code=completed.returncode,
            )

        return {
            "exit_code": completed.returncode,
            "stdout": completed.stdout,
            "stderr": completed.stderr,
        }
