import os
import pytest
from click.testing import CliRunner
from valstack.CLI.main import cli

def test_cli_help():
    runner = CliRunner()
    result = runner.invoke(cli, ['--help'])
    assert result.exit_code == 0
    assert 'Provision the stack' in result.output

def test_cli_up_help():
    runner = CliRunner()
    result = runner.invoke(cli, ['up', '--help'])
    assert result.exit_code == 0
    assert '--rotate-secret' in result.output

def test_cli_render(tmp_path):
    runner = CliRunner()
    root = tmp_path / "stack"
    result = runner.invoke(cli, [
        '-d', str(root), 'render',
        '--private-key', '0xabc', '--address', '0x123', '--public-ip', '1.2.3.4',
    ])
    assert result.exit_code == 0, result.output
    assert (root / 'docker-compose.yml').exists()
    assert (root / 'prometheus.yml').exists()
    assert '0xabc' not in result.output

def test_cli_render_prompts(tmp_path):
    runner = CliRunner()
    root = tmp_path / "stack"
    result = runner.invoke(cli, ['-d', str(root), 'render', '--public-ip', '1.2.3.4'],
                           input='0xabc\n0x123\n', env={'VALIDATOR_PRIVATE_KEY': '', 'VALIDATOR_ADDRESS': ''})
    assert result.exit_code == 0, result.output
    assert 'Enter Ethereum PRIVATE KEY' in result.output
    assert '0xabc' not in result.output

def test_cli_env_file(tmp_path):
    env_file = tmp_path / "secrets.env"
    env_file.write_text("VALIDATOR_PRIVATE_KEY=0xabc\nVALIDATOR_ADDRESS=0x123\nP2P_IP=1.2.3.4\n")
    runner = CliRunner()
    result = runner.invoke(cli, ['-d', str(tmp_path / "stack"), '--env-file', str(env_file), 'render', '--no-input'],
                           env={'VALIDATOR_PRIVATE_KEY': '', 'VALIDATOR_ADDRESS': '', 'P2P_IP': ''})
    assert result.exit_code == 0, result.output

def test_cli_missing_credentials_writes_nothing(tmp_path):
    runner = CliRunner()
    root = tmp_path / "stack"
    result = runner.invoke(cli, ['-d', str(root), 'render', '--no-input', '--public-ip', '1.2.3.4'],
                           env={'VALIDATOR_PRIVATE_KEY': '', 'VALIDATOR_ADDRESS': ''})
    assert result.exit_code == 1
    assert 'Error: inputs: missing required input' in result.output
    assert not root.exists()

def test_cli_check(tmp_path):
    runner = CliRunner()
    root = tmp_path / "stack"
    runner.invoke(cli, ['-d', str(root), 'render',
                        '--private-key', '0xabc', '--address', '0x123', '--public-ip', '1.2.3.4'])
    result = runner.invoke(cli, ['-d', str(root), 'check'])
    assert result.exit_code == 0, result.output
    assert 'OK: start order execution' in result.output

def test_cli_check_collision(tmp_path):
    compose = tmp_path / "docker-compose.yml"
    compose.write_text("services:\n  a:\n    image: x\n    ports: ['3000:3000']\n  b:\n    image: y\n    ports: ['3000:80']\n")
    runner = CliRunner()
    result = runner.invoke(cli, ['check', str(compose)])
    assert result.exit_code == 1
    assert "host port 3000" in result.output

def test_cli_cron_install_and_remove(tmp_path):
    runner = CliRunner()
    cron_file = tmp_path / "cron.d" / "valstack"
    args = ['-d', str(tmp_path / "stack"), 'cron', 'install', '--cron-file', str(cron_file),
            '--private-key', '0xabc', '--address', '0x123']
    assert runner.invoke(cli, args).exit_code == 0
    assert runner.invoke(cli, args).exit_code == 0
    assert cron_file.read_text().count('validator_cron.sh') == 1
    assert '0xabc' not in cron_file.read_text()

    result = runner.invoke(cli, ['cron', 'remove', '--cron-file', str(cron_file)])
    assert result.exit_code == 0
    assert 'Removed 1 registration(s)' in result.output

def test_cli_root_with_space_rejected_up_front(tmp_path):
    runner = CliRunner()
    root = tmp_path / "my stack"
    result = runner.invoke(cli, ['-d', str(root), 'up', '--skip-runtime', '--no-start',
                                 '--cron-file', str(tmp_path / "cron"),
                                 '--private-key', '0xabc', '--address', '0x123', '--public-ip', '1.2.3.4'])
    assert result.exit_code == 1
    assert 'Error: inputs:' in result.output
    assert 'whitespace' in result.output
    assert not root.exists()

def test_cli_port_override_out_of_range(tmp_path):
    config = tmp_path / "valstack.yml"
    config.write_text("port_overrides:\n  grafana:\n    3000: 70000\n")
    root = tmp_path / "stack"
    runner = CliRunner()
    result = runner.invoke(cli, ['-d', str(root), '-c', str(config), 'render',
                                 '--private-key', '0xabc', '--address', '0x123', '--public-ip', '1.2.3.4'])
    assert result.exit_code == 1
    assert 'Error: inputs:' in result.output
    assert not root.exists()

def test_cli_cron_install_skips_ip_lookup(tmp_path, monkeypatch):
    def no_network(*args, **kwargs):
        raise AssertionError("public IP lookup is not needed")
    monkeypatch.setattr('valstack.CLI.main.discover_public_ip', no_network)
    cron_file = tmp_path / "valstack.cron"
    runner = CliRunner()
    result = runner.invoke(cli, ['-d', str(tmp_path / "stack"), 'cron', 'install', '--cron-file', str(cron_file),
                                 '--private-key', '0xabc', '--address', '0x123'],
                           env={'P2P_IP': ''})
    assert result.exit_code == 0, result.output
    assert 'validator_cron.sh' in cron_file.read_text()
