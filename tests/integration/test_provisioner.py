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
Integration tests for full provisioning runs against stubbed host commands.
"""
import os
import pytest
from conftest import FakeCrontab, FakeRunner
from valstack.MANAGERS.provisioner import Provisioner
from valstack.MANAGERS.runtime_manager import RuntimeManager
from valstack.MANAGERS.schedule_manager import CrontabStore, ScheduledTaskInstaller
from valstack.MODELS.provision_config import ProvisionConfig
from valstack.PARSERS.compose_parser import ComposeParser
from valstack.errors import InputError, OutputError, PortCollisionError, VolumeError


def _provisioner(tmp_path, inputs, runner=None, crontab=None, config=None):
    runner = runner or FakeRunner()
    crontab = crontab or FakeCrontab()
    return Provisioner(
        inputs,
        config or ProvisionConfig(),
        runtime=RuntimeManager(
            runner=runner,
            keyring_path=str(tmp_path / "keyrings" / "docker.gpg"),
            sources_path=str(tmp_path / "sources" / "docker.list"),
        ),
        installer=ScheduledTaskInstaller(
            CrontabStore(runner=crontab, lock_path=str(tmp_path / "crontab.lock"))
        ),
    )


def test_full_run(tmp_path, inputs):
    runner = FakeRunner()
    crontab = FakeCrontab()
    result = _provisioner(tmp_path, inputs, runner, crontab).up()
    root = inputs.root_dir

    for name in ("docker-compose.yml", ".env", "prometheus.yml", "validator_cron.sh", "jwt/jwt.hex"):
        assert os.path.exists(os.path.join(root, name)), name
    for name in ("geth-data", "lighthouse-data", "aztec-data"):
        assert os.path.isdir(os.path.join(root, name)), name

    assert result.started is True
    assert runner.commands()[-1] == ["docker", "compose", "up", "-d"]
    assert crontab.lines() == [result.task.registration_line()]
    assert result.urls == {
        "Prometheus": "http://1.2.3.4:9090",
        "Grafana": "http://1.2.3.4:3000",
    }

    parsed = ComposeParser().parse(result.compose_path)
    assert set(parsed.validate_topology()) == {"execution", "consensus", "aztec-node", "prometheus", "grafana"}


def test_rerun_preserves_state(tmp_path, inputs):
    crontab = FakeCrontab(["0 * * * * /usr/bin/backup"])
    _provisioner(tmp_path, inputs, crontab=crontab).up()

    root = inputs.root_dir
    chaindata = os.path.join(root, "geth-data", "chaindata")
    with open(chaindata, "w") as f:
        f.write("blocks")
    keystore = os.path.join(root, "aztec-data", "state.db")
    with open(keystore, "w") as f:
        f.write("validator state")
    secret_before = open(os.path.join(root, "jwt", "jwt.hex")).read()

    result = _provisioner(tmp_path, inputs, crontab=crontab).up()

    assert open(chaindata).read() == "blocks"
    assert open(keystore).read() == "validator state"
    assert open(os.path.join(root, "jwt", "jwt.hex")).read() == secret_before
    assert result.secret.created is False
    assert result.created_dirs == []
    assert [l for l in crontab.lines() if "validator_cron.sh" in l] == [result.task.registration_line()]
    assert "0 * * * * /usr/bin/backup" in crontab.lines()


def test_render_only_touches_root(tmp_path, inputs):
    runner = FakeRunner(installed=())
    crontab = FakeCrontab()
    result = _provisioner(tmp_path, inputs, runner, crontab).render()
    assert runner.calls == []
    assert crontab.writes == 0
    assert result.task is None
    assert os.path.exists(result.compose_path)


def test_collision_aborts_before_runtime(tmp_path, inputs):
    runner = FakeRunner(installed=())
    config = ProvisionConfig(port_overrides={"prometheus": {9090: 3000}})
    with pytest.raises(PortCollisionError):
        _provisioner(tmp_path, inputs, runner, config=config).up()
    assert runner.calls == []
    assert not os.path.exists(inputs.root_dir)


def test_installs_runtime_when_missing(tmp_path, inputs):
    runner = FakeRunner(installed=())
    result = _provisioner(tmp_path, inputs, runner).up(install_task=False)
    assert result.runtime_installed is True
    assert result.task is None
    assert ["systemctl", "enable", "docker"] in runner.commands()


def test_unusable_task_aborts_before_any_change(tmp_path, inputs):
    runner = FakeRunner(installed=())
    crontab = FakeCrontab()
    config = ProvisionConfig(registration={"identity": "validator cron.sh"})
    with pytest.raises(InputError) as exc:
        _provisioner(tmp_path, inputs, runner, crontab, config=config).up()
    assert "validator task" in str(exc.value)
    assert not os.path.exists(inputs.root_dir)
    assert runner.calls == []
    assert crontab.writes == 0


def test_root_is_a_file(tmp_path, inputs):
    with open(inputs.root_dir, "w") as f:
        f.write("")
    with pytest.raises(VolumeError) as exc:
        _provisioner(tmp_path, inputs).render()
    assert str(exc.value).startswith("volumes: cannot create provisioning directory")


def test_unwritable_output_named(tmp_path, inputs, monkeypatch):
    from valstack.CONVERTERS import to_prometheus

    def fail(path, content, mode=None):
        raise PermissionError(13, "Permission denied", path)

    monkeypatch.setattr(to_prometheus, "atomic_write", fail)
    with pytest.raises(OutputError) as exc:
        _provisioner(tmp_path, inputs).render()
    assert str(exc.value).startswith("output: cannot write")
    assert "prometheus.yml" in str(exc.value)
