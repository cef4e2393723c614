"""TLS authentication for the engine daemon."""

import logging
import os
import posixpath
from typing import List, Tuple

from . import certs
from .config import ENGINE_OPTIONS_DIR, AuthOptions
from .engine import ENGINE_SERVICE, wait_for_engine_port, write_engine_options
from .errors import ConfigurationError
from .models import ServiceAction
from .utils import quote

logger = logging.getLogger("provision.auth")


def set_remote_auth_options(provisioner) -> AuthOptions:
    """Point the auth options at the host's engine directory and real address.

    The options given by the caller may carry a placeholder address; the
    certificate has to name the address the host is actually reachable at.
    """
    auth = provisioner.auth_options or AuthOptions()
    return auth.model_copy(update={
        'ca_cert_remote_path': posixpath.join(ENGINE_OPTIONS_DIR, 'ca.pem'),
        'server_cert_remote_path': posixpath.join(ENGINE_OPTIONS_DIR, 'server.pem'),
        'server_key_remote_path': posixpath.join(ENGINE_OPTIONS_DIR, 'server-key.pem'),
        'server_address': provisioner.host.address,
    })


def _server_hosts(provisioner) -> List[str]:
    auth = provisioner.auth_options
    return [auth.server_address or provisioner.host.address, provisioner.host.name, 'localhost',
            *auth.server_cert_sans]


def check_certificates(auth: AuthOptions) -> None:
    """Make sure the certificate material for a run is usable.

    Only local files are inspected. A supplied CA must load with its key, or,
    without its key, come with a readable server certificate and key.

    Raises:
        ConfigurationError: If the material is missing or unreadable
    """
    if certs.can_issue(auth):
        if os.path.exists(auth.ca_cert_path):
            certs.load_ca(auth.ca_cert_path, auth.ca_key_path)
        return
    if not (os.path.exists(auth.server_cert_path) and os.path.exists(auth.server_key_path)):
        raise ConfigurationError(
            f"CA key {auth.ca_key_path} is missing and no server certificate was supplied"
        )
    for path in (auth.ca_cert_path, auth.server_cert_path, auth.server_key_path):
        _read(path)


def _prepare_certificates(provisioner) -> None:
    auth = provisioner.auth_options
    check_certificates(auth)
    if certs.can_issue(auth):
        certs.bootstrap_certificates(auth)
        certs.generate_server_certificate(auth, _server_hosts(provisioner))
        return
    logger.info("[%s] CA key not available, using supplied server certificate %s",
                provisioner.host.name, auth.server_cert_path)


def _read(path: str) -> str:
    try:
        with open(path, 'r') as f:
            return f.read()
    except OSError as e:
        raise ConfigurationError(f"Unable to read certificate material {path}: {e}") from e


def _trust_material(auth: AuthOptions) -> List[Tuple[str, str, int]]:
    return [
        (auth.ca_cert_path, auth.ca_cert_remote_path, 0o644),
        (auth.server_cert_path, auth.server_cert_remote_path, 0o644),
        (auth.server_key_path, auth.server_key_remote_path, 0o600),
    ]


def configure_auth(provisioner) -> None:
    """Install trust material on the host and require TLS client verification.

    Re-running replaces the previously written files.

    Raises:
        ConfigurationError: If certificate material is missing or unreadable
        CommandError: If a remote command fails
        WaitTimeoutError: If the daemon does not come back on its TLS port
    """
    _prepare_certificates(provisioner)
    auth = provisioner.auth_options
    material = [(_read(local), remote, mode) for local, remote, mode in _trust_material(auth)]

    remote_dirs = sorted({posixpath.dirname(remote) for _, remote, _ in material})
    provisioner.ssh_exec(f"sudo mkdir -p {' '.join(quote(d) for d in remote_dirs)}")

    logger.info("[%s] Copying certs to the remote machine...", provisioner.host.name)
    for contents, remote, mode in material:
        provisioner.channel.write_file(remote, contents, mode)

    logger.info("[%s] Setting engine configuration on the remote daemon...", provisioner.host.name)
    write_engine_options(provisioner)
    provisioner.service(ENGINE_SERVICE, ServiceAction.RESTART)
    wait_for_engine_port(provisioner, provisioner.engine_options.port)
