"""
Builds the recurring validator registration task.
"""
import os

from pydantic import ValidationError

from ..MODELS.provision_config import ProvisionConfig
from ..MODELS.provision_inputs import Credentials
from ..MODELS.scheduled_task import CronSchedule, ScheduledTask
from ..errors import InputError
from .topology_builder import AZTEC_CLI, EXECUTION, SEQUENCER_CONTAINER, TopologyBuilder

def build_registration_task(credentials: Credentials, root_dir: str,
                            config: ProvisionConfig) -> ScheduledTask:
    """
    Builds the task that registers the validator on L1 through the running sequencer container.

    The sequencer shares the host network, so the L1 RPC is reached on the
    loopback address at the execution client's published port.

    :param credentials: Validator key and address; captured in the task script.
    :param root_dir: Provisioning root holding the script and its log.
    :param config: Schedule, registration constants and port overrides.
    :return: The scheduled task.
    :raises InputError: If the task cannot be expressed as a cron registration.
    """
    registration = config.registration
    root_dir = os.path.abspath(root_dir)
    private_key = credentials.private_key.get_secret_value()
    rpc_port = TopologyBuilder(config).host_port(EXECUTION, 8545)

    # No -t: cron runs without a terminal.
    command = [
        "docker", "exec", SEQUENCER_CONTAINER,
        "node", AZTEC_CLI, "add-l1-validator",
        "--l1-rpc-urls", f"http://127.0.0.1:{rpc_port}",
        "--private-key", private_key,
        "--attester", credentials.address,
        "--proposer-eoa", credentials.address,
        "--staking-asset-handler", registration.staking_asset_handler,
        "--l1-chain-id", str(registration.l1_chain_id),
    ]

    try:
        return ScheduledTask(
            identity=registration.identity,
            schedule=CronSchedule.parse(registration.schedule),
            command=command,
            script_path=os.path.join(root_dir, registration.identity),
            log_path=os.path.join(root_dir, registration.log_file),
            working_dir=root_dir,
            environment={
                "VALIDATOR_PRIVATE_KEY": private_key,
                "VALIDATOR_ADDRESS": credentials.address,
            },
        )
    except ValidationError as e:
        # Only locations and messages; the command holds the private key.
        reasons = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
        raise InputError(f"cannot register the validator task: {reasons}") from None
