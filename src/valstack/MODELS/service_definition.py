"""
Models for defining services, including restart policies, ports, mounts and metrics endpoints.
"""
from typing import List, Dict, Optional
from pydantic import BaseModel, Field, field_validator
from enum import Enum

class RestartPolicyCondition(str, Enum):
    """
    Conditions under which a service should be restarted.
    """
    NO = "no"
    ALWAYS = "always"
    ON_FAILURE = "on-failure"
    UNLESS_STOPPED = "unless-stopped"

class NetworkMode(str, Enum):
    """
    Network modes a service can run in.
    """
    BRIDGE = "bridge"
    HOST = "host"

class PortMapping(BaseModel):
    """
    Exposes a container port on a fixed host port.
    """
    host: int = Field(ge=1, le=65535)
    container: int = Field(ge=1, le=65535)
    protocol: str = "tcp"

    def render(self) -> str:
        suffix = "" if self.protocol == "tcp" else f"/{self.protocol}"
        return f"{self.host}:{self.container}{suffix}"

class VolumeMount(BaseModel):
    """
    Defines a mapping between a host path (or named volume) and a service path.
    """
    source: str
    target: str
    read_only: bool = False
    is_file: bool = False

    @property
    def is_bind(self) -> bool:
        return self.source.startswith(".") or self.source.startswith("/")

    def render(self) -> str:
        spec = f"{self.source}:{self.target}"
        return f"{spec}:ro" if self.read_only else spec

class MetricsEndpoint(BaseModel):
    """
    A metrics endpoint served by a service, scraped from inside the compose network.
    """
    job_name: str
    port: int

class ServiceDefinition(BaseModel):
    """
    The full definition of a single service of the validator stack.
    """
    name: str
    image_name: str
    container_name: Optional[str] = None

    # Execution
    cmd: List[str] = []
    entrypoint: List[str] = []

    # Environment
    environment: Dict[str, str] = {}
    secret_environment: List[str] = []

    # Networking
    ports: List[PortMapping] = []
    network_mode: NetworkMode = NetworkMode.BRIDGE

    # Storage
    volumes: List[VolumeMount] = []

    # Lifecycle
    restart_policy: RestartPolicyCondition = RestartPolicyCondition.UNLESS_STOPPED
    depends_on: List[str] = []

    # Monitoring
    metrics: Optional[MetricsEndpoint] = None

    @field_validator("name")
    @classmethod
    def _name_not_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("service name must not be empty")
        return value

    @property
    def host_ports(self) -> List[int]:
        """
        Host ports bound by the service, whichever network mode it runs in.
        """
        return [p.host for p in self.ports]

    def host_port_for(self, container_port: int) -> Optional[int]:
        """
        Returns the host port a container port is published on.
        """
        for p in self.ports:
            if p.container == container_port:
                return p.host
        return None
