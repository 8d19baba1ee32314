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
Installation of scheduled tasks into the host's recurring-task store.

Installing is a read-filter-append-replace sequence run under an exclusive
lock, so repeated provisioning runs leave exactly one registration per task
identity and a concurrent writer using the same lock cannot lose an update.
"""
import contextlib
import fcntl
import os
from typing import Iterator, List, Optional

from ..MODELS.scheduled_task import ScheduledTask
from ..RUNNERS.command_runner import CommandError, CommandRunner
from ..errors import RegistrationStoreError
from ..UTILS.fs import atomic_write
from ..UTILS.logger import get_logger

logger = get_logger(__name__)


class RegistrationStore:
    """
    A store of registration lines that can be read whole and replaced whole.
    """

    lock_path: str

    def read(self) -> List[str]:
        raise NotImplementedError

    def replace(self, lines: List[str]):
        raise NotImplementedError


class CrontabStore(RegistrationStore):
    """
    The invoking user's crontab, driven through the crontab command.

    crontab installs a new table from stdin in one step and keeps the old one
    if it rejects the input.
    """

    def __init__(self, runner: Optional[CommandRunner] = None, lock_path: Optional[str] = None):
        self.runner = runner or CommandRunner(timeout=30)
        self.lock_path = lock_path or os.path.join(
            os.path.expanduser("~"), ".cache", "valstack", "crontab.lock"
        )

    def read(self) -> List[str]:
        try:
            result = self.runner.run(["crontab", "-l"], check=False)
        except CommandError as e:
            raise RegistrationStoreError(f"cannot read crontab: {e}") from e
        if result.ok:
            return result.stdout.splitlines()
        # Exit status 1 with "no crontab for <user>" is an empty table.
        if "no crontab" in result.stderr.lower():
            return []
        raise RegistrationStoreError(
            f"cannot read crontab (status {result.returncode}): {result.stderr.strip()}"
        )

    def replace(self, lines: List[str]):
        try:
            self.runner.run(["crontab", "-"], input_text=_join(lines))
        except CommandError as e:
            raise RegistrationStoreError(f"cannot write crontab: {e}") from e


class FileRegistrationStore(RegistrationStore):
    """
    A cron table kept in a plain file, such as an /etc/cron.d entry.

    Replacement goes through a temp file and os.replace.
    """

    def __init__(self, path: str):
        self.path = os.path.abspath(path)
        self.lock_path = self.path + ".lock"

    def read(self) -> List[str]:
        if not os.path.exists(self.path):
            return []
        try:
            with open(self.path, 'r') as f:
                return f.read().splitlines()
        except OSError as e:
            raise RegistrationStoreError(f"cannot read {self.path}: {e}") from e

    def replace(self, lines: List[str]):
        try:
            atomic_write(self.path, _join(lines), mode=0o644)
        except OSError as e:
            raise RegistrationStoreError(f"cannot write {self.path}: {e}") from e


class ScheduledTaskInstaller:
    """
    Installs and removes scheduled tasks by identity.
    """

    def __init__(self, store: RegistrationStore):
        """
        Args:
            store: Where registrations live.
        """
        self.store = store

    def install(self, task: ScheduledTask) -> List[str]:
        """
        Registers the task, replacing every earlier registration of the same identity.

        Args:
            task: The task to register.

        Returns:
            The full registration set after the update.

        Raises:
            RegistrationStoreError: If the store cannot be read or written; the
                previous registrations are then left as they were.
        """
        with self._locked():
            current = self.store.read()
            kept = _strip_trailing_blanks([line for line in current if not task.matches(line)])
            updated = kept + [task.registration_line()]
            self.store.replace(updated)

        replaced = sum(1 for line in current if task.matches(line))
        logger.info(
            "Registered %s (%s), replacing %d earlier registration(s)",
            task.identity, task.schedule.render(), replaced,
        )
        return updated

    def uninstall(self, identity: str) -> int:
        """
        Removes every registration of a task identity.

        Returns:
            The number of removed registrations.
        """
        with self._locked():
            current = self.store.read()
            kept = [line for line in current if identity not in line]
            removed = len(current) - len(kept)
            if removed:
                self.store.replace(_strip_trailing_blanks(kept))
        logger.info("Removed %d registration(s) of %s", removed, identity)
        return removed

    def registrations(self, identity: str) -> List[str]:
        """
        Returns the registration lines of a task identity.
        """
        return [line for line in self.store.read() if identity in line]

    @contextlib.contextmanager
    def _locked(self) -> Iterator[None]:
        lock_dir = os.path.dirname(self.store.lock_path)
        try:
            os.makedirs(lock_dir, exist_ok=True)
            handle = open(self.store.lock_path, 'a')
        except OSError as e:
            raise RegistrationStoreError(f"cannot open lock {self.store.lock_path}: {e}") from e
        with handle:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


def _strip_trailing_blanks(lines: List[str]) -> List[str]:
    lines = list(lines)
    while lines and not lines[-1].strip():
        lines.pop()
    return lines


def _join(lines: List[str]) -> str:
    # cron ignores a final line without a newline.
    return "\n".join(lines) + "\n" if lines else ""
