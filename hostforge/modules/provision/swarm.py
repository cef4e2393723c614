"""Swarm cluster membership."""

import logging

from .engine import ENGINE_SERVICE, wait_for_engine, write_engine_options
from .models import ServiceAction
from .utils import quote

logger = logging.getLogger("provision.swarm")


def swarm_state(provisioner) -> str:
    return provisioner.ssh_exec(
        "sudo docker info --format '{{.Swarm.LocalNodeState}}'", check=False
    ).strip()


def _merged_env(engine_env, swarm_env):
    merged = {}
    for item in list(engine_env) + list(swarm_env):
        key, _, _ = item.partition('=')
        merged[key] = item
    return tuple(merged.values())


def configure_swarm(provisioner) -> None:
    """Join the host into a swarm, or initialise one, if requested.

    A no-op when swarm is disabled. A node already active in a swarm is left
    as it is.

    Raises:
        CommandError: If a remote command fails
        WaitTimeoutError: If the daemon does not come back after the restart
    """
    swarm = provisioner.swarm_options
    if not swarm.is_swarm:
        logger.debug("[%s] swarm disabled, skipping", provisioner.host.name)
        return

    engine = provisioner.engine_options
    env = _merged_env(engine.env, swarm.env)
    if env != tuple(engine.env):
        provisioner.engine_options = engine.model_copy(update={'env': env})
        write_engine_options(provisioner)
        provisioner.service(ENGINE_SERVICE, ServiceAction.RESTART)
        wait_for_engine(provisioner)

    if swarm_state(provisioner) == 'active':
        logger.info("[%s] already a swarm member", provisioner.host.name)
        return

    advertise = quote(swarm.advertise_address or provisioner.host.address)
    if swarm.is_master and not swarm.discovery:
        logger.info("[%s] Initialising swarm", provisioner.host.name)
        provisioner.ssh_exec(f"sudo docker swarm init --advertise-addr {advertise}")
        return

    logger.info("[%s] Joining swarm at %s", provisioner.host.name, swarm.discovery)
    provisioner.ssh_exec(
        f"sudo docker swarm join --token {quote(swarm.join_token)} "
        f"--advertise-addr {advertise} {quote(swarm.discovery)}"
    )
