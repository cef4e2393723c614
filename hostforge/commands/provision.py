import logging
from typing import List, Optional

import paramiko
import typer
from pydantic import ValidationError

from hostforge.config import Config
from hostforge.logging import get_history
from hostforge.modules.provision import ProvisionError, RemoteHost, load_provisioning_config
from hostforge.modules.ssh import SSHConnection
from hostforge.registry import detect_provisioner

app = typer.Typer()

logger = logging.getLogger("hostforge.commands.provision")

# Log lines echoed with a provisioning failure
HISTORY_TAIL = 20


def open_channel(address: str, name: Optional[str], user: str, port: int, key: Optional[str]) -> SSHConnection:
    host = RemoteHost(name=name or address, address=address, user=user, port=port, key_path=key)
    return SSHConnection(host)


def fail(message: str, history_tail: int = 0) -> None:
    """Print the error, and optionally the last recorded log lines, then exit 1."""
    typer.echo(f"❌ {message}", err=True)
    if history_tail:
        recent = get_history()[-history_tail:]
        if recent:
            typer.echo("Last log messages:", err=True)
            typer.echo("\n".join(recent), err=True)
    raise typer.Exit(code=1)


def _is_set(value) -> bool:
    return value not in (None, [], ()) and value is not False


def _overrides(**sections) -> dict:
    """Drop unset CLI values so they don't mask the options file.

    Flags can only switch options on; an options file setting stays in effect
    when its flag is not given.
    """
    result = {}
    for section, values in sections.items():
        if isinstance(values, dict):
            values = {k: v for k, v in values.items() if _is_set(v)}
            if values:
                result[section] = values
        elif _is_set(values):
            result[section] = values
    return result


@app.command("host")
def provision_host(
    address: str = typer.Option(..., "--address", "-a", help="Address the host is reachable at"),
    name: str = typer.Option(..., "--name", "-n", help="Machine name, also set as hostname"),
    user: str = typer.Option(Config.SSH_USER, "--user", "-u", help="SSH username"),
    port: int = typer.Option(Config.SSH_PORT, "--port", "-p", help="SSH port"),
    key: Optional[str] = typer.Option(Config.SSH_KEY_PATH, "--key", "-k", help="Path to SSH private key"),
    packages: Optional[List[str]] = typer.Option(None, "--package", help="Base package to install (repeatable)"),
    engine_version: Optional[str] = typer.Option(None, "--engine-version", help="Engine version to install"),
    install_url: Optional[str] = typer.Option(None, "--install-url", help="Engine install script URL"),
    storage_driver: Optional[str] = typer.Option(None, "--storage-driver", help="Engine storage driver"),
    ca_cert: Optional[str] = typer.Option(None, "--ca-cert", help="CA certificate path"),
    ca_key: Optional[str] = typer.Option(None, "--ca-key", help="CA private key path"),
    server_cert: Optional[str] = typer.Option(None, "--server-cert", help="Server certificate path"),
    server_key: Optional[str] = typer.Option(None, "--server-key", help="Server private key path"),
    sans: Optional[List[str]] = typer.Option(None, "--san", help="Extra server certificate name (repeatable)"),
    swarm: bool = typer.Option(False, "--swarm", help="Configure swarm membership"),
    swarm_master: bool = typer.Option(False, "--swarm-master", help="Initialise or join as a manager"),
    swarm_discovery: Optional[str] = typer.Option(None, "--swarm-discovery", help="Manager address to join"),
    swarm_token: Optional[str] = typer.Option(None, "--swarm-token", help="Swarm join token"),
    swarm_advertise: Optional[str] = typer.Option(None, "--swarm-advertise", help="Swarm advertise address"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="YAML provisioning options file"),
):
    """Provision a host into a TLS-secured container engine host."""
    try:
        options = load_provisioning_config(config, **_overrides(
            packages=packages,
            engine={
                'version': engine_version,
                'install_url': install_url,
                'storage_driver': storage_driver,
            },
            auth={
                'ca_cert_path': ca_cert,
                'ca_key_path': ca_key,
                'server_cert_path': server_cert,
                'server_key_path': server_key,
                'server_cert_sans': sans,
            },
            swarm={
                'is_swarm': swarm,
                'is_master': swarm_master,
                'discovery': swarm_discovery,
                'join_token': swarm_token,
                'advertise_address': swarm_advertise,
            },
        ))
    except ValidationError as e:
        fail(f"Invalid provisioning options: {e}")
    except ProvisionError as e:
        fail(str(e))

    typer.echo(f"🚀 Provisioning {name} ({address})...")
    try:
        with open_channel(address, name, user, port, key) as channel:
            provisioner = detect_provisioner(channel)
            typer.echo(f"🔍 Detected {provisioner.name}: {provisioner}")
            provisioner.provision(options)
    except ProvisionError as e:
        step = f" at step '{e.step}'" if e.step else ""
        logger.debug("Provisioning failed", exc_info=True)
        fail(f"Provisioning failed{step}: {e}", history_tail=HISTORY_TAIL)
    except (paramiko.SSHException, OSError) as e:
        fail(f"SSH connection to {address} failed: {e}")

    typer.echo(f"✅ {name} is ready on tcp://{address}:{options.engine.port}")
