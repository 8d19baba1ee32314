"""
Static defaults for the validator stack, overridable from a YAML file.
"""
import os
from typing import Annotated, Any, Dict, Optional
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from ..errors import InputError
from .scheduled_task import CronSchedule

Port = Annotated[int, Field(ge=1, le=65535)]

class ImageSet(BaseModel):
    """
    Image references for every service of the stack.
    """
    execution: str = "ethereum/client-go:stable"
    consensus: str = "sigp/lighthouse:latest"
    sequencer: str = "aztecprotocol/aztec:0.85.0-alpha-testnet.8"
    prometheus: str = "prom/prometheus:latest"
    grafana: str = "grafana/grafana:latest"

class ValidatorRegistration(BaseModel):
    """
    Constants of the recurring add-l1-validator call.
    """
    schedule: str = "49 21 * * *"
    identity: str = "validator_cron.sh"
    log_file: str = "validator_cron.log"
    staking_asset_handler: str = "0xF739D03e98e23A7B65940848aBA8921fF3bAc4b2"
    l1_chain_id: int = 11155111

    @field_validator("schedule")
    @classmethod
    def _check_schedule(cls, value: str) -> str:
        try:
            return CronSchedule.parse(value).render()
        except ValidationError as e:
            raise ValueError(f"invalid schedule {value!r}: {e.errors()[0]['msg']}") from None

class ProvisionConfig(BaseModel):
    """
    Everything about the stack that is not an input of a single run.
    """
    install_dir: str = "aztec-sequencer"
    l1_network: str = "sepolia"
    aztec_network: str = "alpha-testnet"
    checkpoint_sync_url: str = "https://sepolia.beaconstate.info"
    sequencer_log_level: str = "debug"
    scrape_interval: str = "15s"
    images: ImageSet = Field(default_factory=ImageSet)
    registration: ValidatorRegistration = Field(default_factory=ValidatorRegistration)

    # Public IP discovery
    ip_lookup_url: str = "https://ipv4.icanhazip.com"
    ip_lookup_timeout: float = 10.0
    ip_lookup_attempts: int = Field(default=3, ge=1)

    # {service: {container_port: host_port}}
    port_overrides: Dict[str, Dict[Port, Port]] = {}

    @classmethod
    def load(cls, path: Optional[str] = None) -> "ProvisionConfig":
        """
        Loads the configuration from a YAML file merged over the defaults.

        :param path: Path to the YAML file, or None for defaults only.
        :return: The configuration.
        :raises InputError: If the file cannot be read or is invalid.
        """
        if path is None:
            return cls()
        if not os.path.exists(path):
            raise InputError(f"config file {path} not found")
        try:
            with open(path, 'r') as f:
                data: Any = yaml.safe_load(f)
        except OSError as e:
            raise InputError(f"cannot read config file {path}: {e}") from e
        except yaml.YAMLError as e:
            raise InputError(f"config file {path} is not valid YAML: {e}") from e
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise InputError(f"config file {path} must contain a mapping")
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise InputError(f"config file {path} is invalid: {e}") from e
