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
Parsers for Docker Compose YAML files, used to check a topology already on disk.
"""
import yaml
from typing import Dict, Any, List
from pydantic import ValidationError
from ..MODELS.orchestration_config import OrchestrationConfig
from ..MODELS.service_definition import (
    ServiceDefinition, RestartPolicyCondition, VolumeMount, PortMapping, NetworkMode
)
from ..errors import TopologyError

class ComposeParser:
    """
    Parser for docker-compose.yml files.

    Variables are not interpolated; ${VAR} references are kept literally.
    """
    def parse(self, compose_path: str) -> OrchestrationConfig:
        """
        Parses a compose file from a path.

        :param compose_path: Path to the compose file.
        :return: Parsed configuration.
        """
        try:
            with open(compose_path, 'r') as f:
                content = f.read()
        except OSError as e:
            raise TopologyError(f"cannot read {compose_path}: {e}") from e
        return self.parse_from_string(content)

    def parse_from_string(self, content: str) -> OrchestrationConfig:
        """
        Parses a compose file from a string.

        :param content: YAML content of the compose file.
        :return: Parsed configuration.
        :raises TopologyError: If the content is not a valid compose document.
        """
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise TopologyError(f"compose file is not valid YAML: {e}") from e
        if not data:
            data = {}
        if not isinstance(data, dict):
            raise TopologyError("compose file must contain a mapping")

        services_spec = data.get('services') or {}
        if not isinstance(services_spec, dict):
            raise TopologyError("'services' must be a mapping")

        services = {}
        for name, spec in services_spec.items():
            if not isinstance(spec, dict):
                raise TopologyError(f"service '{name}' must be a mapping")
            try:
                services[str(name)] = self._parse_service(str(name), spec)
            except (ValidationError, ValueError, KeyError, TypeError, AttributeError) as e:
                raise TopologyError(f"service '{name}' is invalid: {e}") from e

        volumes = data.get('volumes')
        return OrchestrationConfig(
            services=services,
            volumes=[str(v) for v in volumes] if isinstance(volumes, dict) else []
        )

    def _parse_service(self, name: str, spec: Dict[str, Any]) -> ServiceDefinition:
        """
        Parses a single service definition from a compose file.

        :param name: The name of the service.
        :param spec: The service mapping.
        :return: A ServiceDefinition instance.
        """
        return ServiceDefinition(
            name=name,
            image_name=str(spec.get('image') or ''),
            container_name=spec.get('container_name'),
            cmd=self._to_list(spec.get('command')),
            entrypoint=self._to_list(spec.get('entrypoint')),
            environment=self._environment(spec.get('environment')),
            ports=[self._port(p) for p in spec.get('ports') or []],
            network_mode=NetworkMode.HOST if spec.get('network_mode') == 'host' else NetworkMode.BRIDGE,
            volumes=[self._volume(v) for v in spec.get('volumes') or []],
            restart_policy=self._restart(spec.get('restart')),
            depends_on=self._to_list(spec.get('depends_on')),
        )

    def _port(self, entry: Any) -> PortMapping:
        """
        Accepts "[ip:]host:container[/proto]", a bare container port, or the
        long form mapping.
        """
        if isinstance(entry, dict):
            container = int(entry['target'])
            return PortMapping(
                host=int(entry.get('published', container)),
                container=container,
                protocol=str(entry.get('protocol', 'tcp')),
            )
        mapping, _, protocol = str(entry).partition('/')
        fields = mapping.split(':')
        container = int(fields[-1])
        host = int(fields[-2]) if len(fields) > 1 else container
        return PortMapping(host=host, container=container, protocol=protocol or 'tcp')

    def _volume(self, entry: Any) -> VolumeMount:
        if isinstance(entry, dict):
            return VolumeMount(
                source=entry['source'],
                target=entry['target'],
                read_only=bool(entry.get('read_only', False)),
            )
        fields = str(entry).split(':')
        if len(fields) not in (2, 3):
            raise ValueError(f"unsupported volume syntax {entry!r}")
        mode = fields[2] if len(fields) == 3 else 'rw'
        return VolumeMount(source=fields[0], target=fields[1], read_only=mode == 'ro')

    def _environment(self, entries: Any) -> Dict[str, str]:
        # The list form allows bare names, which compose takes from the shell.
        if not entries:
            return {}
        if isinstance(entries, dict):
            return {str(k): '' if v is None else str(v) for k, v in entries.items()}
        environment = {}
        for entry in entries:
            key, _, value = entry.partition('=')
            environment[key] = value
        return environment

    def _restart(self, value: Any) -> RestartPolicyCondition:
        # YAML 1.1 loads an unquoted `no` as False.
        if value is None or value is False:
            return RestartPolicyCondition.NO
        # on-failure[:max-retries]
        condition = str(value).split(':', 1)[0].strip()
        return RestartPolicyCondition(condition)

    def _to_list(self, val: Any) -> List[str]:
        """
        Normalizes a string, list or mapping (depends_on long form) to a list of strings.
        """
        if val is None:
            return []
        if isinstance(val, str):
            return [val]
        return [str(v) for v in val]
