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
Exceptions raised while provisioning the validator stack.

Every failure aborts the provisioning run, so each error carries the name of
the step that failed for the CLI to report.
"""
from typing import Iterable


class ProvisionError(Exception):
    """Base class for all provisioning failures."""

    step = "provision"

    def __str__(self) -> str:
        return f"{self.step}: {super().__str__()}"


class InputError(ProvisionError):
    """A required input is missing or invalid."""

    step = "inputs"


class PublicIPDiscoveryError(ProvisionError):
    """The public IP of the host could not be discovered."""

    step = "public-ip"


class RuntimeInstallError(ProvisionError):
    """The container runtime could not be installed or driven."""

    step = "runtime"


class RegistrationStoreError(ProvisionError):
    """The scheduled-task registration store could not be read or written."""

    step = "schedule"


class VolumeError(ProvisionError):
    """A host path for a volume could not be prepared."""

    step = "volumes"


class SecretError(ProvisionError):
    """The shared secret file is unusable."""

    step = "secret"


class OutputError(ProvisionError):
    """A generated file could not be written."""

    step = "output"


class TopologyError(ProvisionError):
    """The generated or parsed topology is not internally consistent."""

    step = "topology"


class PortCollisionError(TopologyError):
    """Two services claim the same host port."""

    def __init__(self, port: int, first: str, second: str):
        self.port = port
        self.services = (first, second)
        super().__init__(
            f"host port {port} is claimed by both '{first}' and '{second}'"
        )


class DependencyError(TopologyError):
    """The depends_on relation is invalid."""


class UnknownDependencyError(DependencyError):
    """A service depends on a service that is not part of the topology."""

    def __init__(self, service: str, missing: str):
        self.service = service
        self.missing = missing
        super().__init__(f"service '{service}' depends on unknown service '{missing}'")


class CircularDependencyError(DependencyError):
    """The depends_on relation contains a cycle."""

    def __init__(self, cycle: Iterable[str]):
        self.cycle = list(cycle)
        super().__init__(f"circular dependency: {' -> '.join(self.cycle)}")
