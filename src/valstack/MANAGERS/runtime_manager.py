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
Presence check and one-time installation of the Docker container runtime,
plus starting and stopping the compose project.
"""
import os
from typing import Dict, List, Optional

from ..RUNNERS.command_runner import CommandError, CommandRunner
from ..errors import RuntimeInstallError
from ..UTILS.fs import atomic_write
from ..UTILS.logger import get_logger

DOCKER_GPG_URL = "https://download.docker.com/linux/ubuntu/gpg"
DOCKER_REPO_URL = "https://download.docker.com/linux/ubuntu"
PREREQUISITES = ["curl", "gnupg", "apt-transport-https", "ca-certificates", "software-properties-common"]
DOCKER_PACKAGES = ["docker-ce", "docker-ce-cli", "containerd.io", "docker-compose-plugin"]

logger = get_logger(__name__)


class RuntimeManager:
    """
    Manages the container runtime the topology runs on.
    """

    def __init__(self,
                 runner: Optional[CommandRunner] = None,
                 keyring_path: str = "/usr/share/keyrings/docker.gpg",
                 sources_path: str = "/etc/apt/sources.list.d/docker.list"):
        """
        Args:
            runner: Executes host commands.
            keyring_path: Where the Docker repository key is stored.
            sources_path: Where the Docker apt source is registered.
        """
        self.runner = runner or CommandRunner()
        self.keyring_path = keyring_path
        self.sources_path = sources_path
        self._apt_env = dict(os.environ, DEBIAN_FRONTEND="noninteractive")

    def is_present(self) -> bool:
        return self.runner.which("docker") is not None

    def ensure_runtime_present(self) -> bool:
        """
        Installs Docker unless it is already on the PATH.

        Returns:
            True if Docker was installed by this call, False if it was already present.

        Raises:
            RuntimeInstallError: If any installation step fails.
        """
        if self.is_present():
            logger.info("Docker already installed, skipping installation")
            return False

        logger.info("Installing Docker")
        self._step("update package index", ["apt-get", "update"], env=self._apt_env)
        self._step("install prerequisites", ["apt-get", "install", "-y"] + PREREQUISITES, env=self._apt_env)
        self._import_key()
        self._register_repository()
        self._step("update package index", ["apt-get", "update"], env=self._apt_env)
        self._step("install docker packages", ["apt-get", "install", "-y"] + DOCKER_PACKAGES, env=self._apt_env)
        self._step("enable docker service", ["systemctl", "enable", "docker"])
        self._step("start docker service", ["systemctl", "restart", "docker"])

        if not self.is_present():
            raise RuntimeInstallError("docker is still not on the PATH after installation")
        logger.info("Docker installed")
        return True

    def compose_up(self, project_dir: str):
        """
        Starts the compose project in the background.
        """
        logger.info("Starting all containers")
        self._step("start containers", ["docker", "compose", "up", "-d"], cwd=project_dir)

    def compose_down(self, project_dir: str):
        """
        Stops and removes the containers of the compose project; volumes are kept.
        """
        logger.info("Stopping all containers")
        self._step("stop containers", ["docker", "compose", "down"], cwd=project_dir)

    def _import_key(self):
        key = self._step("download repository key", ["curl", "-fsSL", DOCKER_GPG_URL])
        os.makedirs(os.path.dirname(self.keyring_path), exist_ok=True)
        self._step(
            "import repository key",
            ["gpg", "--batch", "--yes", "--dearmor", "-o", self.keyring_path],
            input_text=key,
        )

    def _register_repository(self):
        arch = self._step("detect architecture", ["dpkg", "--print-architecture"]).strip()
        codename = self._step("detect release", ["lsb_release", "-cs"]).strip()
        line = f"deb [arch={arch} signed-by={self.keyring_path}] {DOCKER_REPO_URL} {codename} stable\n"
        try:
            atomic_write(self.sources_path, line, mode=0o644)
        except OSError as e:
            raise RuntimeInstallError(f"register repository failed: {e}") from e

    def _step(self, name: str, command: List[str],
              env: Optional[Dict[str, str]] = None,
              cwd: Optional[str] = None,
              input_text: Optional[str] = None) -> str:
        try:
            return self.runner.run(command, env=env, cwd=cwd, input_text=input_text).stdout
        except CommandError as e:
            raise RuntimeInstallError(f"{name} failed: {e}") from e
