"""The bootstrap sequence run against a detected host.

Steps run strictly in order and each one blocks until it is done. The first
failure aborts the run; nothing already applied is rolled back.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Optional

from .auth import check_certificates, configure_auth, set_remote_auth_options
from .config import ProvisioningConfig
from .engine import (
    ENGINE_SERVICE,
    check_storage_driver,
    decide_storage_driver,
    install_engine,
    wait_for_cloud_init,
    wait_for_engine,
)
from .errors import ProvisionError
from .models import PackageAction, ServiceAction
from .swarm import configure_swarm
from .utils import validate_hostname

logger = logging.getLogger("provision.sequence")

STEPS = (
    'cloud-init',
    'storage-driver',
    'hostname',
    'packages',
    'install-engine',
    'wait-engine',
    'auth-options',
    'configure-auth',
    'configure-swarm',
    'enable-engine',
)


@contextmanager
def _step(provisioner, name: str):
    logger.info("[%s] %s: %s", provisioner.host.name, provisioner.name, name)
    try:
        yield
    except ProvisionError as e:
        if e.step is None:
            e.step = name
        logger.error("[%s] step %s failed: %s", provisioner.host.name, name, e)
        raise


def check_preconditions(provisioner) -> None:
    """Reject configuration errors before the first remote command.

    Each error is tagged with the step that would have hit it.

    Raises:
        ConfigurationError: If the storage driver, hostname or certificate
            material is unusable
    """
    checks = (
        ('storage-driver', lambda: check_storage_driver(provisioner, provisioner.engine_options.storage_driver)),
        ('hostname', lambda: validate_hostname(provisioner.host.name)),
        ('configure-auth', lambda: check_certificates(provisioner.auth_options)),
    )
    for name, check in checks:
        try:
            check()
        except ProvisionError as e:
            e.step = name
            logger.error("[%s] %s: %s", provisioner.host.name, name, e)
            raise


def provision(provisioner, config: ProvisioningConfig, cancel_event: Optional[threading.Event] = None) -> None:
    """Turn the provisioner's host into a TLS-secured engine host.

    Args:
        provisioner: A detected Provisioner that has not run yet
        config: Options for this run
        cancel_event: Stops any bounded wait in progress when set

    Raises:
        ProvisionError: From the failing step, with ``step`` set to its name
    """
    provisioner.begin_run(config, cancel_event)
    host = provisioner.host
    check_preconditions(provisioner)

    with _step(provisioner, 'cloud-init'):
        wait_for_cloud_init(provisioner)

    with _step(provisioner, 'storage-driver'):
        provisioner.storage_driver = decide_storage_driver(provisioner, provisioner.engine_options.storage_driver)

    with _step(provisioner, 'hostname'):
        provisioner.set_hostname(host.name)

    with _step(provisioner, 'packages'):
        for package in provisioner.packages:
            provisioner.package(package, PackageAction.INSTALL)

    with _step(provisioner, 'install-engine'):
        install_engine(provisioner, provisioner.engine_options.install_url, provisioner.engine_options.version)

    with _step(provisioner, 'wait-engine'):
        wait_for_engine(provisioner)

    with _step(provisioner, 'auth-options'):
        provisioner.auth_options = set_remote_auth_options(provisioner)

    with _step(provisioner, 'configure-auth'):
        configure_auth(provisioner)

    with _step(provisioner, 'configure-swarm'):
        configure_swarm(provisioner)

    with _step(provisioner, 'enable-engine'):
        provisioner.service(ENGINE_SERVICE, ServiceAction.ENABLE)

    logger.info("[%s] Provisioned with %s", host.name, provisioner)
