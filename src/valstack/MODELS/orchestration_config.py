"""
Models for the overall topology of the validator stack.
"""
from typing import Dict, List
from pydantic import BaseModel
from .service_definition import ServiceDefinition
from .scrape_config import ScrapeConfig

class OrchestrationConfig(BaseModel):
    """
    Complete configuration for a multi-service stack.
    Equivalent to a docker-compose.yml file.
    """
    services: Dict[str, ServiceDefinition]
    volumes: List[str] = []

    def validate_topology(self) -> List[str]:
        """
        Checks host ports and dependency edges.

        :return: Service names in start order.
        :raises PortCollisionError: If two services claim the same host port.
        :raises DependencyError: If a dependency is unknown or circular.
        """
        from ..MANAGERS.network_manager import NetworkManager
        from ..RUNNERS.dependency_resolver import DependencyResolver

        NetworkManager().allocate_all(self.services.values())
        return DependencyResolver().resolve_order(self)

class TopologyDescription(BaseModel):
    """
    The generated topology together with its companion scrape configuration.
    """
    topology: OrchestrationConfig
    scrape: ScrapeConfig
