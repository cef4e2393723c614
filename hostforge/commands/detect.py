from typing import Optional

import paramiko
import typer

from hostforge.config import Config
from hostforge.modules.provision import ProvisionError
from hostforge.registry import detect_provisioner
from . import provision


def detect_host(
    address: str = typer.Option(..., "--address", "-a", help="Address the host is reachable at"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Machine name"),
    user: str = typer.Option(Config.SSH_USER, "--user", "-u", help="SSH username"),
    port: int = typer.Option(Config.SSH_PORT, "--port", "-p", help="SSH port"),
    key: Optional[str] = typer.Option(Config.SSH_KEY_PATH, "--key", "-k", help="Path to SSH private key"),
):
    """Show which provisioner would be used for a host."""
    try:
        with provision.open_channel(address, name, user, port, key) as channel:
            provisioner = detect_provisioner(channel)
    except ProvisionError as e:
        provision.fail(str(e))
    except (paramiko.SSHException, OSError) as e:
        provision.fail(f"SSH connection to {address} failed: {e}")

    identity = provisioner.os_identity
    typer.echo(f"{provisioner.name}: {provisioner}")
    typer.echo(f"  OS: {identity.pretty_name or identity}")
