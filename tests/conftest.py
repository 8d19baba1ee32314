"""
Shared fixtures: stub command runners standing in for apt, docker and crontab.
"""
import pytest
from valstack.MODELS.provision_config import ProvisionConfig
from valstack.MODELS.provision_inputs import ProvisionInputs
from valstack.RUNNERS.command_runner import CommandError, CommandResult


class FakeRunner:
    """Records commands and answers them from a table of canned results."""

    def __init__(self, installed=("docker",), responses=None, fail_on=None):
        self.installed = set(installed)
        self.responses = responses or {}
        self.fail_on = fail_on
        self.calls = []

    def which(self, program):
        return f"/usr/bin/{program}" if program in self.installed else None

    def run(self, command, input_text=None, env=None, cwd=None, check=True):
        self.calls.append({"args": list(command), "input": input_text, "cwd": cwd})
        if self.fail_on and self.fail_on(command):
            result = CommandResult(list(command), 1, "", "boom")
            if check:
                raise CommandError(command, "exited with status 1: boom", result)
            return result
        stdout = self.responses.get(tuple(command[:2]), "")
        if command[:2] == ["apt-get", "install"] and "docker-ce" in command:
            self.installed.add("docker")
        return CommandResult(list(command), 0, stdout, "")

    def commands(self):
        return [c["args"] for c in self.calls]


class FakeCrontab:
    """Simulates the crontab command with an in-memory table."""

    def __init__(self, lines=None, writable=True):
        self.table = None if lines is None else "\n".join(lines) + "\n"
        self.writable = writable
        self.writes = 0

    def which(self, program):
        return "/usr/bin/crontab"

    def run(self, command, input_text=None, env=None, cwd=None, check=True):
        if command == ["crontab", "-l"]:
            if self.table is None:
                return CommandResult(list(command), 1, "", "no crontab for root\n")
            return CommandResult(list(command), 0, self.table, "")
        if command == ["crontab", "-"]:
            if not self.writable:
                raise CommandError(command, "exited with status 1: permission denied")
            self.table = input_text
            self.writes += 1
            return CommandResult(list(command), 0, "", "")
        raise AssertionError(f"unexpected command {command}")

    def lines(self):
        return [] if self.table is None else self.table.splitlines()


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def config():
    return ProvisionConfig()


@pytest.fixture
def inputs(tmp_path):
    return ProvisionInputs.build(
        private_key="0xabc",
        address="0x123",
        public_ip="1.2.3.4",
        root_dir=str(tmp_path / "aztec-sequencer"),
    )
