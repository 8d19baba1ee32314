"""
Command Line Interface for valstack.
"""
import functools
import os
import click
from dotenv import dotenv_values
from ..MODELS.provision_config import ProvisionConfig
from ..MODELS.provision_inputs import Credentials, ProvisionInputs
from ..BUILDERS.task_builder import build_registration_task
from ..MANAGERS.provisioner import Provisioner, install_registration
from ..MANAGERS.runtime_manager import RuntimeManager
from ..MANAGERS.schedule_manager import CrontabStore, FileRegistrationStore, ScheduledTaskInstaller
from ..PARSERS.compose_parser import ComposeParser
from ..CONVERTERS.to_compose import COMPOSE_FILE
from ..UTILS.logger import configure_logging, register_secret
from ..UTILS.public_ip import discover_public_ip
from ..errors import InputError, ProvisionError

def _handle_errors(f):
    """
    Turns a ProvisionError into an error message and exit status 1.
    """
    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except ProvisionError as e:
            click.echo(f"Error: {e}", err=True)
            raise SystemExit(1)
    return wrapper

def _credential_options(f):
    """
    Options for the validator credentials.
    """
    options = [
        click.option('--private-key', envvar='VALIDATOR_PRIVATE_KEY', help='Validator private key (0x...)'),
        click.option('--address', envvar='VALIDATOR_ADDRESS', help='Validator address (0x...)'),
        click.option('--no-input', is_flag=True, help='Fail instead of prompting for missing credentials'),
    ]
    for option in reversed(options):
        f = option(f)
    return f

def _input_options(f):
    """
    Options for the credentials and host facts of a run.
    """
    f = click.option('--public-ip', envvar='P2P_IP',
                     help='Public IP advertised to peers; discovered if omitted')(f)
    return _credential_options(f)

def _store_option(f):
    return click.option('--cron-file', default=None,
                        help='Register into this cron file instead of the user crontab')(f)

@click.group()
@click.option('--dir', '-d', 'root', default=None, help='Provisioning root directory')
@click.option('--config', '-c', 'config_path', default=None, help='YAML file overriding stack defaults')
@click.option('--env-file', default=None, help='Env file to read credentials from')
@click.option('--log-level', default='INFO',
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False))
@click.pass_context
def cli(ctx, root, config_path, env_file, log_level):
    """
    valstack - validator stack provisioning.

    Provisions the Sepolia execution and consensus clients, the Aztec
    sequencer node, Prometheus and Grafana as one docker compose project.
    """
    configure_logging(log_level)
    ctx.ensure_object(dict)
    try:
        config = ProvisionConfig.load(config_path)
        file_env = {}
        if env_file:
            if not os.path.exists(env_file):
                raise InputError(f"env file {env_file} not found")
            file_env = {k: v for k, v in dotenv_values(env_file).items() if v}
    except ProvisionError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)
    ctx.obj['config'] = config
    ctx.obj['root'] = os.path.abspath(root or config.install_dir)
    ctx.obj['file_env'] = file_env

def _collect_credentials(ctx, private_key, address, no_input) -> Credentials:
    """
    Resolves the validator credentials: options and environment first, then
    the env file, then interactive prompts.
    """
    file_env = ctx.obj['file_env']
    private_key = private_key or file_env.get('VALIDATOR_PRIVATE_KEY')
    address = address or file_env.get('VALIDATOR_ADDRESS')

    if not no_input and not (private_key and address):
        click.echo("Please provide the following information:")
    if not private_key and not no_input:
        private_key = click.prompt("Enter Ethereum PRIVATE KEY", hide_input=True, default='', show_default=False)
    if not address and not no_input:
        address = click.prompt("Enter Ethereum ADDRESS (0x...)", default='', show_default=False)
    if private_key:
        register_secret(private_key.strip())

    return Credentials.check(private_key, address)

def _collect_inputs(ctx, private_key, address, public_ip, no_input) -> ProvisionInputs:
    """
    Resolves every input before anything is written. Credentials are checked
    before the public IP lookup.
    """
    credentials = _collect_credentials(ctx, private_key, address, no_input)
    config = ctx.obj['config']
    public_ip = public_ip or ctx.obj['file_env'].get('P2P_IP')
    if not public_ip:
        public_ip = discover_public_ip(
            config.ip_lookup_url,
            timeout=config.ip_lookup_timeout,
            attempts=config.ip_lookup_attempts,
        )
    return ProvisionInputs.build(
        credentials.private_key.get_secret_value(), credentials.address, public_ip, ctx.obj['root']
    )

def _installer(cron_file):
    store = FileRegistrationStore(cron_file) if cron_file else CrontabStore()
    return ScheduledTaskInstaller(store)

@cli.command()
@_input_options
@_store_option
@click.option('--rotate-secret', is_flag=True, help='Replace the existing shared JWT secret')
@click.option('--skip-runtime', is_flag=True, help='Do not install Docker')
@click.option('--skip-cron', is_flag=True, help='Do not register the validator task')
@click.option('--no-start', is_flag=True, help='Write everything but do not start containers')
@click.pass_context
@_handle_errors
def up(ctx, private_key, address, public_ip, no_input, cron_file, rotate_secret, skip_runtime, skip_cron, no_start):
    """Provision the stack and start all containers."""
    inputs = _collect_inputs(ctx, private_key, address, public_ip, no_input)
    click.echo(f"Your public IP: {inputs.public_ip}")
    provisioner = Provisioner(inputs, ctx.obj['config'], installer=_installer(cron_file))
    result = provisioner.up(
        rotate_secret=rotate_secret,
        install_runtime=not skip_runtime,
        install_task=not skip_cron,
        start=not no_start,
    )

    click.echo("Setup completed!")
    if result.task:
        click.echo(f"Cron job set to '{result.task.schedule.render()}' (UTC)")
    click.echo("")
    click.echo(f"Prometheus: {result.urls['Prometheus']}")
    click.echo(f"Grafana: {result.urls['Grafana']} (login: admin / admin)")
    click.echo(f"To check logs: cd {result.root_dir} && docker compose logs --tail 100 -f")

@cli.command()
@_input_options
@click.option('--rotate-secret', is_flag=True, help='Replace the existing shared JWT secret')
@click.pass_context
@_handle_errors
def render(ctx, private_key, address, public_ip, no_input, rotate_secret):
    """Write the configuration files without touching the host."""
    inputs = _collect_inputs(ctx, private_key, address, public_ip, no_input)
    result = Provisioner(inputs, ctx.obj['config']).render(rotate_secret=rotate_secret)
    click.echo(f"Wrote {result.compose_path}")
    click.echo(f"Wrote {result.prometheus_path}")

@cli.command()
@click.argument('compose_file', required=False)
@click.pass_context
@_handle_errors
def check(ctx, compose_file):
    """Validate ports and dependencies of a compose file."""
    path = compose_file or os.path.join(ctx.obj['root'], COMPOSE_FILE)
    if not os.path.exists(path):
        raise InputError(f"{path} not found")
    config = ComposeParser().parse(path)
    order = config.validate_topology()
    click.echo(f"{'SERVICE':15} {'PORTS':20}")
    click.echo("-" * 35)
    for name in order:
        ports = ", ".join(p.render() for p in config.services[name].ports)
        click.echo(f"{name:15} {ports:20}")
    click.echo(f"OK: start order {' -> '.join(order)}")

@cli.command()
@click.pass_context
@_handle_errors
def down(ctx):
    """Stop all containers; data volumes are kept."""
    RuntimeManager().compose_down(ctx.obj['root'])
    click.echo("Services stopped.")

@cli.group()
def cron():
    """Manage the recurring validator registration."""

@cron.command('install')
@_credential_options
@_store_option
@click.pass_context
@_handle_errors
def cron_install(ctx, private_key, address, no_input, cron_file):
    """Write the task script and register it."""
    credentials = _collect_credentials(ctx, private_key, address, no_input)
    task = build_registration_task(credentials, ctx.obj['root'], ctx.obj['config'])
    install_registration(task, _installer(cron_file))
    click.echo(f"Registered {task.script_path} ({task.schedule.render()})")

@cron.command('remove')
@_store_option
@click.pass_context
@_handle_errors
def cron_remove(ctx, cron_file):
    """Remove every registration of the validator task."""
    identity = ctx.obj['config'].registration.identity
    removed = _installer(cron_file).uninstall(identity)
    click.echo(f"Removed {removed} registration(s) of {identity}")

def main():
    """
    Main entry point for the CLI.
    """
    cli(obj={})

if __name__ == '__main__':
    main()
