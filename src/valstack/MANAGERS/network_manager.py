"""
Network management for services, handling host port allocation and endpoint discovery.
"""
from typing import Dict, Iterable, Optional
from ..MODELS.service_definition import ServiceDefinition, NetworkMode
from ..errors import PortCollisionError

class NetworkManager:
    """
    Tracks which service owns each host port and resolves service endpoints.
    """
    def __init__(self):
        """
        Initializes the network manager.
        """
        self.host_port_to_service: Dict[int, str] = {} # host_port -> service_name

    def allocate_ports(self, service_def: ServiceDefinition) -> Dict[int, int]:
        """
        Claims the fixed host ports of a service.

        Ports are literal; a port already claimed by another service is an error,
        never a reason to pick a different one.

        :param service_def: The service definition.
        :return: Mapping from container port to host port.
        :raises PortCollisionError: If a host port is already claimed.
        """
        mappings = {}
        for mapping in service_def.ports:
            owner = self.host_port_to_service.get(mapping.host)
            if owner is not None and owner != service_def.name:
                raise PortCollisionError(mapping.host, owner, service_def.name)
            if owner == service_def.name and mapping.host in mappings.values():
                raise PortCollisionError(mapping.host, owner, service_def.name)
            mappings[mapping.container] = mapping.host
            self.host_port_to_service[mapping.host] = service_def.name
        return mappings

    def allocate_all(self, services: Iterable[ServiceDefinition]) -> Dict[int, str]:
        """
        Claims the host ports of every service.

        :return: Mapping from host port to owning service.
        """
        for svc in services:
            self.allocate_ports(svc)
        return dict(self.host_port_to_service)

    @staticmethod
    def endpoint(service_def: ServiceDefinition, container_port: int, from_host: bool = False) -> str:
        """
        Returns the "host:port" address another service uses to reach a port.

        Services sharing the host network reach published ports on the loopback
        address; services inside the compose network use the service name.

        :param service_def: The service being addressed.
        :param container_port: The port inside the service.
        :param from_host: Whether the caller runs in the host network.
        """
        if from_host or service_def.network_mode == NetworkMode.HOST:
            host_port: Optional[int] = service_def.host_port_for(container_port)
            if host_port is None:
                raise ValueError(
                    f"port {container_port} of '{service_def.name}' is not published on the host"
                )
            return f"127.0.0.1:{host_port}"
        return f"{service_def.name}:{container_port}"

