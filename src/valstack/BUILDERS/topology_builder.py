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
Builds the service topology of the validator stack and its scrape configuration.
"""
import os
from typing import Dict, List

from ..MODELS.orchestration_config import OrchestrationConfig, TopologyDescription
from ..MODELS.provision_config import ProvisionConfig
from ..MODELS.provision_inputs import ProvisionInputs
from ..MODELS.scrape_config import ScrapeConfig, ScrapeJob
from ..MODELS.service_definition import (
    MetricsEndpoint,
    NetworkMode,
    PortMapping,
    ServiceDefinition,
    VolumeMount,
)
from ..MANAGERS.network_manager import NetworkManager
from ..errors import InputError
from ..UTILS.logger import get_logger

EXECUTION = "execution"
CONSENSUS = "consensus"
SEQUENCER = "aztec-node"
PROMETHEUS = "prometheus"
GRAFANA = "grafana"

# Container ports of each service; host ports equal these unless overridden.
SERVICE_PORTS: Dict[str, List[int]] = {
    EXECUTION: [8545, 8551, 6060],
    CONSENSUS: [5052, 5054],
    SEQUENCER: [8080, 40400],
    PROMETHEUS: [9090],
    GRAFANA: [3000],
}

JWT_TARGET = "/root/jwt.hex"
PROMETHEUS_CONFIG = "prometheus.yml"
GRAFANA_VOLUME = "grafana-storage"
SEQUENCER_CONTAINER = "aztec-sequencer"
AZTEC_CLI = "/usr/src/yarn-project/aztec/dest/bin/index.js"

logger = get_logger(__name__)


class TopologyBuilder:
    """
    Turns the inputs of a provisioning run into the docker-compose topology.

    The result depends on its inputs only; nothing is read from or written to
    disk here.
    """

    def __init__(self, config: ProvisionConfig):
        """
        Args:
            config: Images, networks and port overrides of the stack.
        """
        self.config = config
        self._check_overrides()

    def generate(self, inputs: ProvisionInputs) -> TopologyDescription:
        """
        Generates the topology and the scrape configuration.

        Args:
            inputs: Validated inputs of the run.

        Returns:
            The topology description.

        Raises:
            PortCollisionError: If port overrides make two services share a host port.
            DependencyError: If the dependency edges are inconsistent.
        """
        services: Dict[str, ServiceDefinition] = {}
        services[EXECUTION] = self._execution(inputs)
        services[CONSENSUS] = self._consensus(inputs, services[EXECUTION])
        services[SEQUENCER] = self._sequencer(inputs, services[EXECUTION], services[CONSENSUS])
        services[PROMETHEUS] = self._prometheus()
        services[GRAFANA] = self._grafana()

        topology = OrchestrationConfig(services=services, volumes=[GRAFANA_VOLUME])
        order = topology.validate_topology()
        logger.debug("Start order: %s", ", ".join(order))

        description = TopologyDescription(topology=topology, scrape=self.scrape_config(topology))
        logger.info(
            "Generated topology with %d services and %d scrape jobs",
            len(services), len(description.scrape.jobs),
        )
        return description

    def scrape_config(self, topology: OrchestrationConfig) -> ScrapeConfig:
        """
        Builds one scrape job per service exposing a metrics endpoint.

        The scraper runs inside the compose network, so targets use service names.
        """
        jobs = []
        for svc in topology.services.values():
            if svc.metrics is None:
                continue
            jobs.append(ScrapeJob(
                job_name=svc.metrics.job_name,
                targets=[NetworkManager.endpoint(svc, svc.metrics.port)],
            ))
        return ScrapeConfig(scrape_interval=self.config.scrape_interval, jobs=jobs)

    def _check_overrides(self):
        for service, mapping in self.config.port_overrides.items():
            if service not in SERVICE_PORTS:
                raise InputError(
                    f"port override for unknown service '{service}' "
                    f"(known: {', '.join(SERVICE_PORTS)})"
                )
            for container_port in mapping:
                if container_port not in SERVICE_PORTS[service]:
                    raise InputError(
                        f"service '{service}' has no port {container_port} to override "
                        f"(ports: {', '.join(str(p) for p in SERVICE_PORTS[service])})"
                    )

    def host_port(self, service: str, container_port: int) -> int:
        """
        Returns the host port a service port is published on, overrides applied.
        """
        return self.config.port_overrides.get(service, {}).get(container_port, container_port)

    def _ports(self, service: str, host_network: bool = False) -> List[PortMapping]:
        ports = []
        for container_port in SERVICE_PORTS[service]:
            host_port = self.host_port(service, container_port)
            # In the host network the process binds the host port itself.
            ports.append(PortMapping(
                host=host_port,
                container=host_port if host_network else container_port,
            ))
        return ports

    def _secret_mount(self, inputs: ProvisionInputs) -> VolumeMount:
        return VolumeMount(
            source=_bind_source(inputs.root_dir, inputs.secret_path),
            target=JWT_TARGET,
            read_only=True,
            is_file=True,
        )

    def _execution(self, inputs: ProvisionInputs) -> ServiceDefinition:
        return ServiceDefinition(
            name=EXECUTION,
            container_name="geth",
            image_name=self.config.images.execution,
            cmd=[
                f"--{self.config.l1_network}",
                "--http",
                "--http.api", "eth,net,web3,txpool",
                "--http.addr", "0.0.0.0",
                "--http.vhosts", "*",
                "--authrpc.jwtsecret", JWT_TARGET,
                "--authrpc.addr", "0.0.0.0",
                "--authrpc.vhosts", "*",
                "--metrics",
                "--metrics.addr", "0.0.0.0",
                "--metrics.port", "6060",
            ],
            ports=self._ports(EXECUTION),
            volumes=[
                VolumeMount(source="./geth-data", target="/root/.ethereum"),
                self._secret_mount(inputs),
            ],
            metrics=MetricsEndpoint(job_name="geth", port=6060),
        )

    def _consensus(self, inputs: ProvisionInputs, execution: ServiceDefinition) -> ServiceDefinition:
        return ServiceDefinition(
            name=CONSENSUS,
            container_name="lighthouse",
            image_name=self.config.images.consensus,
            cmd=[
                "lighthouse", "bn",
                "--network", self.config.l1_network,
                "--execution-endpoint", f"http://{NetworkManager.endpoint(execution, 8551)}",
                "--execution-jwt", JWT_TARGET,
                "--checkpoint-sync-url", self.config.checkpoint_sync_url,
                "--http",
                "--http-address", "0.0.0.0",
                "--metrics",
                "--metrics-address", "0.0.0.0",
            ],
            ports=self._ports(CONSENSUS),
            volumes=[
                VolumeMount(source="./lighthouse-data", target="/root/.lighthouse"),
                self._secret_mount(inputs),
            ],
            depends_on=[EXECUTION],
            metrics=MetricsEndpoint(job_name="lighthouse", port=5054),
        )

    def _sequencer(self, inputs: ProvisionInputs, execution: ServiceDefinition,
                   consensus: ServiceDefinition) -> ServiceDefinition:
        ports = self._ports(SEQUENCER, host_network=True)
        return ServiceDefinition(
            name=SEQUENCER,
            container_name=SEQUENCER_CONTAINER,
            image_name=self.config.images.sequencer,
            network_mode=NetworkMode.HOST,
            environment={
                "ETHEREUM_HOSTS": f"http://{NetworkManager.endpoint(execution, 8545, from_host=True)}",
                "L1_CONSENSUS_HOST_URLS": f"http://{NetworkManager.endpoint(consensus, 5052, from_host=True)}",
                "VALIDATOR_PRIVATE_KEY": inputs.private_key.get_secret_value(),
                "VALIDATOR_ADDRESS": inputs.address,
                "P2P_IP": inputs.public_ip,
                "AZTEC_PORT": str(ports[0].host),
                "P2P_PORT": str(ports[1].host),
                "LOG_LEVEL": self.config.sequencer_log_level,
            },
            secret_environment=["VALIDATOR_PRIVATE_KEY"],
            entrypoint=[
                "node", "--no-warnings", AZTEC_CLI,
                "start",
                "--network", self.config.aztec_network,
                "--node", "--archiver", "--sequencer",
            ],
            ports=ports,
            volumes=[VolumeMount(source="./aztec-data", target="/root/.aztec")],
            depends_on=[EXECUTION, CONSENSUS],
        )

    def _prometheus(self) -> ServiceDefinition:
        return ServiceDefinition(
            name=PROMETHEUS,
            container_name="prometheus",
            image_name=self.config.images.prometheus,
            ports=self._ports(PROMETHEUS),
            volumes=[VolumeMount(
                source=f"./{PROMETHEUS_CONFIG}",
                target="/etc/prometheus/prometheus.yml",
                read_only=True,
                is_file=True,
            )],
            depends_on=[EXECUTION, CONSENSUS],
        )

    def _grafana(self) -> ServiceDefinition:
        return ServiceDefinition(
            name=GRAFANA,
            container_name="grafana",
            image_name=self.config.images.grafana,
            ports=self._ports(GRAFANA),
            volumes=[VolumeMount(source=GRAFANA_VOLUME, target="/var/lib/grafana")],
            depends_on=[PROMETHEUS],
        )


def _bind_source(root_dir: str, path: str) -> str:
    """
    Expresses a host path relative to the provisioning root when it lies below it.
    """
    root_dir = os.path.abspath(root_dir)
    path = os.path.abspath(path)
    if os.path.commonpath([root_dir, path]) == root_dir:
        return "./" + os.path.relpath(path, root_dir).replace(os.sep, "/")
    return path


def generate(inputs: ProvisionInputs, config: ProvisionConfig) -> TopologyDescription:
    """
    Generates the topology description of the validator stack.
    """
    return TopologyBuilder(config).generate(inputs)
