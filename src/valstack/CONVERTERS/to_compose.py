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
Converters for writing the topology as a docker-compose.yml file.
"""
import os
from typing import Any, Dict
import yaml
from dotenv import set_key
from ..MODELS.orchestration_config import OrchestrationConfig
from ..MODELS.service_definition import ServiceDefinition, NetworkMode
from ..errors import OutputError
from ..UTILS.fs import atomic_write
from ..UTILS.logger import get_logger

COMPOSE_FILE = "docker-compose.yml"
ENV_FILE = ".env"

logger = get_logger(__name__)


def _escape(value: str) -> str:
    """
    Escapes compose variable interpolation in a literal value.
    """
    return value.replace("$", "$$")


class ComposeConverter:
    """
    Converts the topology into a docker-compose.yml file plus a .env file.

    Secret environment values are not written into the compose file; it refers
    to them as ${KEY} and docker compose reads them from the .env file next to it.
    """

    def __init__(self, config: OrchestrationConfig):
        """
        Initializes the compose converter.

        :param config: The generated topology.
        """
        self.config = config

    def to_dict(self) -> Dict[str, Any]:
        """
        Returns the compose document as plain data.
        """
        document: Dict[str, Any] = {"services": {}}
        for name, svc in self.config.services.items():
            document["services"][name] = self._service(svc)
        if self.config.volumes:
            document["volumes"] = {name: {} for name in self.config.volumes}
        return document

    def secret_values(self) -> Dict[str, str]:
        """
        Returns the secret environment values that belong in the .env file.
        """
        values = {}
        for svc in self.config.services.values():
            for key in svc.secret_environment:
                if key in svc.environment:
                    values[key] = svc.environment[key]
        return values

    def render(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False, default_flow_style=False)

    def convert(self, output_dir: str = ".") -> str:
        """
        Writes docker-compose.yml and the .env file.

        :param output_dir: The provisioning root.
        :return: The path to the compose file.
        :raises OutputError: If either file cannot be written.
        """
        compose_path = os.path.join(output_dir, COMPOSE_FILE)
        try:
            os.makedirs(output_dir, exist_ok=True)
            atomic_write(compose_path, self.render())
        except OSError as e:
            raise OutputError(f"cannot write {compose_path}: {e}") from e

        secrets = self.secret_values()
        if secrets:
            env_path = os.path.join(output_dir, ENV_FILE)
            try:
                self._write_env(env_path, secrets)
            except OSError as e:
                raise OutputError(f"cannot write {env_path}: {e}") from e
            logger.info("Wrote %d secret value(s) to %s", len(secrets), env_path)

        logger.info("Wrote %s", compose_path)
        return compose_path

    def _write_env(self, env_path: str, secrets: Dict[str, str]):
        if not os.path.exists(env_path):
            atomic_write(env_path, "", mode=0o600)
        os.chmod(env_path, 0o600)
        for key, value in secrets.items():
            set_key(env_path, key, value, quote_mode="always")
        # set_key may replace the file.
        os.chmod(env_path, 0o600)

    def _service(self, svc: ServiceDefinition) -> Dict[str, Any]:
        spec: Dict[str, Any] = {"image": svc.image_name}
        if svc.container_name:
            spec["container_name"] = svc.container_name
        if svc.network_mode == NetworkMode.HOST:
            spec["network_mode"] = "host"
        if svc.entrypoint:
            spec["entrypoint"] = [_escape(arg) for arg in svc.entrypoint]
        if svc.cmd:
            spec["command"] = [_escape(arg) for arg in svc.cmd]
        if svc.environment:
            spec["environment"] = {
                key: f"${{{key}}}" if key in svc.secret_environment else _escape(value)
                for key, value in svc.environment.items()
            }
        # Host-network services bind their ports directly.
        if svc.ports and svc.network_mode != NetworkMode.HOST:
            spec["ports"] = [p.render() for p in svc.ports]
        if svc.volumes:
            spec["volumes"] = [v.render() for v in svc.volumes]
        if svc.depends_on:
            spec["depends_on"] = list(svc.depends_on)
        spec["restart"] = svc.restart_policy.value
        return spec
