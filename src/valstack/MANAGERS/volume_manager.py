"""
Volume management for services, preparing host paths for bind mounts.
"""
import os
from typing import Iterable, List
from ..MODELS.service_definition import ServiceDefinition, VolumeMount
from ..errors import VolumeError
from ..UTILS.logger import get_logger

logger = get_logger(__name__)

class VolumeManager:
    """
    Creates the host side of bind mounts below the provisioning root.

    Existing paths are left as they are: chain and validator state from earlier
    runs must survive re-provisioning.
    """
    def __init__(self, base_dir: str = "."):
        """
        Initializes the volume manager.

        :param base_dir: The provisioning root that relative sources resolve against.
        """
        self.base_dir = os.path.abspath(base_dir)

    def prepare_services(self, services: Iterable[ServiceDefinition]) -> List[str]:
        """
        Prepares the bind mounts of every service.

        :return: Host paths that were created by this call.
        """
        created = []
        for svc in services:
            created.extend(self.prepare_volumes(svc.volumes))
        return created

    def prepare_volumes(self, mounts: List[VolumeMount]) -> List[str]:
        """
        Prepares volumes for a service.

        Directory mounts get their directory created; file mounts get their
        parent directory created, the file itself is written by whoever owns it.
        Named volumes are left to the container runtime.

        :param mounts: List of volume mounts.
        :return: Host paths that were created.
        :raises VolumeError: If a path cannot be created or has the wrong type.
        """
        created = []
        for mount in mounts:
            if not mount.is_bind:
                continue
            source_path = self.resolve_source(mount.source)
            directory = os.path.dirname(source_path) if mount.is_file else source_path

            if mount.is_file and os.path.isdir(source_path):
                raise VolumeError(f"{source_path} is a directory, expected a file for {mount.target}")
            if os.path.exists(directory):
                if not os.path.isdir(directory):
                    raise VolumeError(f"{directory} exists and is not a directory")
                continue

            try:
                os.makedirs(directory, exist_ok=True)
            except OSError as e:
                raise VolumeError(f"cannot create {directory}: {e}") from e
            logger.info("Created host directory %s", directory)
            created.append(directory)
        return created

    def missing_files(self, services: Iterable[ServiceDefinition]) -> List[str]:
        """
        Lists file mounts whose host file does not exist yet.
        """
        missing = []
        for svc in services:
            for mount in svc.volumes:
                if mount.is_bind and mount.is_file:
                    path = self.resolve_source(mount.source)
                    if not os.path.isfile(path):
                        missing.append(path)
        return missing

    def resolve_source(self, source: str) -> str:
        """
        Resolves the source path of a bind mount.

        :param source: The source path, relative to the root or absolute.
        :return: The absolute path to the source.
        :raises VolumeError: If a relative source escapes the provisioning root.
        """
        if os.path.isabs(source):
            return os.path.normpath(source)
        path = os.path.abspath(os.path.join(self.base_dir, source))
        if os.path.commonpath([path, self.base_dir]) != self.base_dir:
            raise VolumeError(f"volume source {source} escapes {self.base_dir}")
        return path
