"""Init-system service management.

Each init system knows how to express a ServiceAction and where the engine
daemon reads its startup options from.
"""

import logging
from dataclasses import dataclass
from typing import List

from .models import ServiceAction
from .utils import quote

logger = logging.getLogger("provision.services")


@dataclass(frozen=True)
class InitSystem:
    """Base init system description."""
    name: str
    engine_options_path: str
    engine_options_template: str

    def commands(self, service: str, action: ServiceAction) -> List[str]:
        raise NotImplementedError


@dataclass(frozen=True)
class Systemd(InitSystem):
    name: str = 'systemd'
    engine_options_path: str = '/etc/systemd/system/docker.service.d/10-machine.conf'
    engine_options_template: str = 'systemd-docker.conf.j2'

    def commands(self, service: str, action: ServiceAction) -> List[str]:
        action = ServiceAction(action)
        commands = []
        # Unit files and drop-ins may have changed since the last start
        if action in (ServiceAction.START, ServiceAction.RESTART):
            commands.append('sudo systemctl daemon-reload')
        commands.append(f'sudo systemctl -f {action.value} {quote(service)}')
        return commands


@dataclass(frozen=True)
class Upstart(InitSystem):
    name: str = 'upstart'
    engine_options_path: str = '/etc/default/docker'
    engine_options_template: str = 'upstart-docker.j2'

    def commands(self, service: str, action: ServiceAction) -> List[str]:
        action = ServiceAction(action)
        if action in (ServiceAction.ENABLE, ServiceAction.DISABLE):
            return [f'sudo update-rc.d {quote(service)} {action.value}']
        return [f'sudo service {quote(service)} {action.value}']


SYSTEMD = Systemd()
UPSTART = Upstart()


def service_action(provisioner, name: str, action: ServiceAction) -> None:
    """Run a service action through the provisioner's init system.

    Raises:
        CommandError: If any of the commands exits non-zero
    """
    action = ServiceAction(action)
    logger.debug("service: action=%s name=%s", action.value, name)
    for command in provisioner.init_system.commands(name, action):
        provisioner.ssh_exec(command)
