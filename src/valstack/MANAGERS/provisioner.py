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
Sequencing of a provisioning run, from the shared secret to the running stack.
"""
import os
from dataclasses import dataclass, field
from typing import Dict, Optional

from ..BUILDERS.task_builder import build_registration_task
from ..BUILDERS.topology_builder import GRAFANA, PROMETHEUS, TopologyBuilder
from ..CONVERTERS.to_compose import ComposeConverter
from ..CONVERTERS.to_cron_script import CronScriptConverter
from ..CONVERTERS.to_prometheus import PrometheusConverter
from ..MODELS.orchestration_config import TopologyDescription
from ..MODELS.provision_config import ProvisionConfig
from ..MODELS.provision_inputs import ProvisionInputs
from ..MODELS.scheduled_task import ScheduledTask
from ..errors import VolumeError
from ..UTILS.logger import get_logger, register_secret
from .runtime_manager import RuntimeManager
from .schedule_manager import CrontabStore, ScheduledTaskInstaller
from .secret_manager import SecretManager, SharedSecret
from .volume_manager import VolumeManager

logger = get_logger(__name__)


@dataclass
class ProvisionResult:
    """What a provisioning run produced."""

    root_dir: str
    description: TopologyDescription
    secret: SharedSecret
    compose_path: str
    prometheus_path: str
    created_dirs: list = field(default_factory=list)
    task: Optional[ScheduledTask] = None
    runtime_installed: bool = False
    started: bool = False
    urls: Dict[str, str] = field(default_factory=dict)


class Provisioner:
    """
    Runs the provisioning steps in order. Every step is safe to repeat and any
    failure aborts the run.
    """

    def __init__(self,
                 inputs: ProvisionInputs,
                 config: Optional[ProvisionConfig] = None,
                 runtime: Optional[RuntimeManager] = None,
                 installer: Optional[ScheduledTaskInstaller] = None):
        """
        Initializes the provisioner.

        :param inputs: Validated inputs of the run.
        :param config: Stack configuration; defaults if None.
        :param runtime: Container runtime manager.
        :param installer: Scheduled-task installer; the user's crontab if None.
        """
        self.inputs = inputs
        self.config = config or ProvisionConfig()
        self.builder = TopologyBuilder(self.config)
        self.runtime = runtime or RuntimeManager()
        self.installer = installer or ScheduledTaskInstaller(CrontabStore())
        self.volumes = VolumeManager(inputs.root_dir)
        register_secret(inputs.private_key.get_secret_value())

    def render(self, rotate_secret: bool = False) -> ProvisionResult:
        """
        Writes the secret, the compose project and the scrape configuration.

        :param rotate_secret: Replace an existing shared secret.
        :return: The result of the run so far.
        """
        root = self.inputs.root_dir
        # Port and dependency checks need only the secret path, not its value.
        description = self.builder.generate(self.inputs)
        topology = description.topology

        try:
            os.makedirs(root, exist_ok=True)
        except OSError as e:
            raise VolumeError(f"cannot create provisioning directory {root}: {e}") from e
        secret = SecretManager(self.inputs.secret_path).ensure(rotate=rotate_secret)

        created = self.volumes.prepare_services(topology.services.values())
        prometheus_path = PrometheusConverter(description.scrape).convert(root)
        compose_path = ComposeConverter(topology).convert(root)

        missing = self.volumes.missing_files(topology.services.values())
        if missing:
            raise VolumeError(f"file mounts without a host file: {', '.join(missing)}")

        return ProvisionResult(
            root_dir=root,
            description=description,
            secret=secret,
            compose_path=compose_path,
            prometheus_path=prometheus_path,
            created_dirs=created,
            urls=self.connection_urls(description),
        )

    def up(self,
           rotate_secret: bool = False,
           install_runtime: bool = True,
           install_task: bool = True,
           start: bool = True) -> ProvisionResult:
        """
        Runs the full provisioning sequence.

        :param rotate_secret: Replace an existing shared secret.
        :param install_runtime: Install Docker if it is missing.
        :param install_task: Register the recurring validator registration.
        :param start: Start the containers.
        :return: The result of the run.
        """
        # Built before anything is written so an unusable task aborts the run early.
        task = self.registration_task() if install_task else None
        result = self.render(rotate_secret=rotate_secret)

        if install_runtime:
            result.runtime_installed = self.runtime.ensure_runtime_present()

        if task is not None:
            result.task = install_registration(task, self.installer)

        if start:
            self.runtime.compose_up(result.root_dir)
            result.started = True

        logger.info("Setup completed")
        return result

    def registration_task(self) -> ScheduledTask:
        return build_registration_task(self.inputs, self.inputs.root_dir, self.config)

    def connection_urls(self, description: TopologyDescription) -> Dict[str, str]:
        services = description.topology.services
        return {
            "Prometheus": f"http://{self._url_host()}:{services[PROMETHEUS].host_port_for(9090)}",
            "Grafana": f"http://{self._url_host()}:{services[GRAFANA].host_port_for(3000)}",
        }

    def _url_host(self) -> str:
        ip = self.inputs.public_ip
        return f"[{ip}]" if ":" in ip else ip


def install_registration(task: ScheduledTask, installer: ScheduledTaskInstaller) -> ScheduledTask:
    """
    Writes the script a scheduled task runs and registers the task.

    :param task: The task to install.
    :param installer: Where the task is registered.
    :return: The installed task.
    """
    CronScriptConverter(task).convert()
    installer.install(task)
    return task
