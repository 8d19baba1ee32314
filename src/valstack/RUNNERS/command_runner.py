# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Execution of host commands (apt, systemctl, docker, crontab) with bounded runtime.
"""
import shutil
import subprocess
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..UTILS.logger import get_logger

logger = get_logger(__name__)


@dataclass
class CommandResult:
    """Outcome of a finished command."""

    args: List[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandError(Exception):
    """A command could not be started, timed out or exited non-zero."""

    def __init__(self, args: List[str], message: str, result: Optional[CommandResult] = None):
        self.command = args
        self.result = result
        super().__init__(f"{args[0]}: {message}")


class CommandRunner:
    """
    Runs a command to completion and returns its output.
    """

    def __init__(self, timeout: Optional[float] = 900.0):
        """
        Args:
            timeout: Seconds a single command may run before it is killed.
        """
        self.timeout = timeout

    def which(self, program: str) -> Optional[str]:
        return shutil.which(program)

    def run(self,
            command: List[str],
            input_text: Optional[str] = None,
            env: Optional[Dict[str, str]] = None,
            cwd: Optional[str] = None,
            check: bool = True) -> CommandResult:
        """
        Runs the command.

        Args:
            command: Program and arguments. Never passed through a shell.
            input_text: Text fed to stdin.
            env: Environment for the process; inherits the current one if None.
            cwd: Working directory.
            check: Raise on a non-zero exit status.

        Returns:
            The result of the command.

        Raises:
            CommandError: If the command cannot run, times out, or fails with check set.
        """
        logger.debug("Running %s", command[0])
        try:
            completed = subprocess.run(
                command,
                input=input_text,
                env=env,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                # Avoid shell=True for security reasons (CWE-78)
                shell=False,
            )
        except FileNotFoundError:
            raise CommandError(command, "command not found") from None
        except subprocess.TimeoutExpired:
            raise CommandError(command, f"timed out after {self.timeout}s") from None
        except OSError as e:
            raise CommandError(command, str(e)) from e

        result = CommandResult(
            args=list(command),
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )
        if check and not result.ok:
            detail = result.stderr.strip().splitlines()
            reason = detail[-1] if detail else "no output"
            raise CommandError(command, f"exited with status {result.returncode}: {reason}", result)
        return result
