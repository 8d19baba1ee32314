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
Unit tests for the scheduled-task installer and its registration stores.
"""
import fcntl
import os
import threading
import pytest
from conftest import FakeCrontab
from valstack.MANAGERS.schedule_manager import (
    CrontabStore,
    FileRegistrationStore,
    ScheduledTaskInstaller,
)
from valstack.MODELS.scheduled_task import CronSchedule, ScheduledTask
from valstack.errors import RegistrationStoreError


def _task(root, command=("echo", "new")):
    return ScheduledTask(
        identity="validator_cron.sh",
        schedule=CronSchedule.parse("49 21 * * *"),
        command=list(command),
        script_path=f"{root}/validator_cron.sh",
        log_path=f"{root}/validator_cron.log",
        working_dir=str(root),
    )


def _crontab_store(tmp_path, fake):
    return CrontabStore(runner=fake, lock_path=str(tmp_path / "locks" / "crontab.lock"))


class TestScheduledTaskInstaller:
    """Tests for ScheduledTaskInstaller."""

    def test_install_into_empty_crontab(self, tmp_path):
        """Test that a missing crontab counts as an empty one."""
        fake = FakeCrontab()
        installer = ScheduledTaskInstaller(_crontab_store(tmp_path, fake))
        installer.install(_task(tmp_path))
        assert fake.lines() == [
            f"49 21 * * * {tmp_path}/validator_cron.sh >> {tmp_path}/validator_cron.log 2>&1"
        ]

    def test_install_twice_is_idempotent(self, tmp_path):
        """Test that repeated installation keeps a single registration."""
        fake = FakeCrontab()
        installer = ScheduledTaskInstaller(_crontab_store(tmp_path, fake))
        installer.install(_task(tmp_path))
        installer.install(_task(tmp_path))
        assert len(installer.registrations("validator_cron.sh")) == 1
        assert len(fake.lines()) == 1

    def test_stale_entry_replaced(self, tmp_path):
        """Test that a stale registration is replaced by the new one."""
        fake = FakeCrontab([
            "0 * * * * /usr/bin/backup",
            "12 49 21 * * /old/validator_cron.sh >> /old/validator_cron.log 2>&1",
        ])
        installer = ScheduledTaskInstaller(_crontab_store(tmp_path, fake))
        task = _task(tmp_path)
        installer.install(task)
        matching = installer.registrations("validator_cron.sh")
        assert matching == [task.registration_line()]
        assert "0 * * * * /usr/bin/backup" in fake.lines()

    def test_trailing_blank_lines_do_not_accumulate(self, tmp_path):
        """Test that blank trailing lines are not carried into every rewrite."""
        fake = FakeCrontab(["0 * * * * /usr/bin/backup", "", ""])
        installer = ScheduledTaskInstaller(_crontab_store(tmp_path, fake))
        installer.install(_task(tmp_path))
        installer.install(_task(tmp_path))
        assert fake.lines() == ["0 * * * * /usr/bin/backup", _task(tmp_path).registration_line()]

    def test_write_failure_keeps_previous(self, tmp_path):
        """Test that a failing write surfaces and leaves the table untouched."""
        previous = ["0 * * * * /usr/bin/backup"]
        fake = FakeCrontab(previous, writable=False)
        installer = ScheduledTaskInstaller(_crontab_store(tmp_path, fake))
        with pytest.raises(RegistrationStoreError):
            installer.install(_task(tmp_path))
        assert fake.lines() == previous

    def test_uninstall(self, tmp_path):
        """Test removal by identity."""
        fake = FakeCrontab(["0 * * * * /usr/bin/backup"])
        installer = ScheduledTaskInstaller(_crontab_store(tmp_path, fake))
        installer.install(_task(tmp_path))
        assert installer.uninstall("validator_cron.sh") == 1
        assert fake.lines() == ["0 * * * * /usr/bin/backup"]
        assert installer.uninstall("validator_cron.sh") == 0


class TestCrontabStore:
    """Tests for CrontabStore error handling."""

    def test_unreadable_crontab(self, tmp_path):
        """Test that other crontab failures are not mistaken for an empty table."""
        from valstack.RUNNERS.command_runner import CommandResult

        class Broken(FakeCrontab):
            def run(self, command, **kwargs):
                return CommandResult(list(command), 2, "", "crontab: cannot open spool")

        with pytest.raises(RegistrationStoreError):
            _crontab_store(tmp_path, Broken()).read()


class TestFileRegistrationStore:
    """Tests for FileRegistrationStore."""

    def test_missing_file_is_empty(self, tmp_path):
        """Test that a missing file reads as no registrations."""
        assert FileRegistrationStore(str(tmp_path / "valstack")).read() == []

    def test_install_into_file(self, tmp_path):
        """Test installation into a cron file."""
        path = tmp_path / "cron.d" / "valstack"
        installer = ScheduledTaskInstaller(FileRegistrationStore(str(path)))
        installer.install(_task(tmp_path))
        installer.install(_task(tmp_path))
        content = path.read_text()
        assert content.endswith("\n")
        assert content.count("validator_cron.sh") == 1
        assert not [p for p in os.listdir(path.parent) if p.endswith(".tmp")]


class TestInstallLocking:
    """Tests for the exclusive lock around a store update."""

    def test_install_waits_for_lock_holder(self, tmp_path):
        """Test that an install blocks while another writer holds the lock."""
        store = FileRegistrationStore(str(tmp_path / "cron.d" / "valstack"))
        os.makedirs(os.path.dirname(store.lock_path))
        installer = ScheduledTaskInstaller(store)

        with open(store.lock_path, "a") as holder:
            fcntl.flock(holder.fileno(), fcntl.LOCK_EX)
            worker = threading.Thread(target=installer.install, args=(_task(tmp_path),))
            worker.start()
            worker.join(timeout=0.5)
            assert worker.is_alive()
            assert store.read() == []
            fcntl.flock(holder.fileno(), fcntl.LOCK_UN)

        worker.join(timeout=10)
        assert not worker.is_alive()
        assert len(installer.registrations("validator_cron.sh")) == 1

    def test_concurrent_installs_keep_every_line(self, tmp_path):
        """Test that concurrent installs of different tasks lose no update."""
        path = str(tmp_path / "cron.d" / "valstack")
        FileRegistrationStore(path).replace(["0 * * * * /usr/bin/backup"])
        tasks = [
            ScheduledTask(
                identity=f"task_{i}.sh",
                schedule=CronSchedule.parse("0 1 * * *"),
                command=["true"],
                script_path=f"{tmp_path}/task_{i}.sh",
                log_path=f"{tmp_path}/task_{i}.log",
                working_dir=str(tmp_path),
            )
            for i in range(8)
        ]
        # One installer per thread, as separate provisioning runs would have.
        workers = [
            threading.Thread(target=ScheduledTaskInstaller(FileRegistrationStore(path)).install, args=(task,))
            for task in tasks
        ]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join(timeout=10)

        lines = FileRegistrationStore(path).read()
        assert "0 * * * * /usr/bin/backup" in lines
        for task in tasks:
            assert [line for line in lines if task.matches(line)] == [task.registration_line()]
