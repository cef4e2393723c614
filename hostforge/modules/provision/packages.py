"""Package action dispatch.

Maps an abstract PackageAction onto the verbs of the host's package manager
and runs it through the provisioner's channel. Install and upgrade refresh the
metadata cache first, waiting out a lock held by another process (typically
unattended-upgrades or cloud-init on a freshly booted host).
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Tuple

from .errors import CommandError
from .models import PackageAction
from .utils import quote, wait_for

logger = logging.getLogger("provision.packages")


@dataclass(frozen=True)
class PackageManager:
    """Command vocabulary of one package manager."""
    name: str
    verbs: Dict[PackageAction, str]
    command_template: str
    refresh_command: str
    lock_markers: Tuple[str, ...] = field(default_factory=tuple)

    def verb(self, action: PackageAction) -> str:
        return self.verbs[PackageAction(action)]

    def command(self, action: PackageAction, package: str, lock_timeout: int) -> str:
        return self.command_template.format(
            verb=self.verb(action),
            package=quote(package),
            lock_timeout=lock_timeout,
        )

    def is_lock_busy(self, output: str) -> bool:
        return any(marker in output for marker in self.lock_markers)


APT = PackageManager(
    name='apt',
    verbs={
        PackageAction.INSTALL: 'install',
        PackageAction.UPGRADE: 'install',
        PackageAction.REMOVE: 'remove',
        PackageAction.PURGE: 'purge',
    },
    command_template=(
        'DEBIAN_FRONTEND=noninteractive sudo -E apt-get '
        '-o DPkg::Lock::Timeout={lock_timeout} {verb} -y {package}'
    ),
    refresh_command='sudo apt-get update',
    lock_markers=(
        'Could not get lock',
        'Unable to acquire the dpkg frontend lock',
        'Unable to lock directory',
    ),
)

YUM = PackageManager(
    name='yum',
    verbs={
        PackageAction.INSTALL: 'install',
        PackageAction.UPGRADE: 'upgrade',
        PackageAction.REMOVE: 'remove',
        PackageAction.PURGE: 'remove',
    },
    command_template='sudo yum -y {verb} {package}',
    refresh_command='sudo yum -y makecache',
    lock_markers=(
        'Another app is currently holding the yum lock',
        'Existing lock',
    ),
)

DNF = PackageManager(
    name='dnf',
    verbs={
        PackageAction.INSTALL: 'install',
        PackageAction.UPGRADE: 'upgrade',
        PackageAction.REMOVE: 'remove',
        PackageAction.PURGE: 'remove',
    },
    command_template='sudo dnf -y {verb} {package}',
    refresh_command='sudo dnf -y makecache',
    lock_markers=(
        'Waiting for process with pid',
        'Another app is currently holding',
    ),
)

ZYPPER = PackageManager(
    name='zypper',
    verbs={
        PackageAction.INSTALL: 'install',
        PackageAction.UPGRADE: 'update',
        PackageAction.REMOVE: 'remove',
        PackageAction.PURGE: 'remove --clean-deps',
    },
    command_template=(
        'sudo env ZYPP_LOCK_TIMEOUT={lock_timeout} '
        'zypper --non-interactive {verb} {package}'
    ),
    refresh_command='sudo zypper --non-interactive refresh',
    lock_markers=(
        'System management is locked',
    ),
)


def refresh_metadata(provisioner, manager: PackageManager) -> None:
    """Refresh the package metadata cache, waiting while the lock is held.

    Raises:
        CommandError: If the refresh fails for any reason other than a held lock
        WaitTimeoutError: If the lock is not released within the lock-wait policy
    """
    def _refreshed() -> bool:
        command = manager.refresh_command
        exit_status, stdout, stderr = provisioner.channel.execute(command)
        if exit_status == 0:
            return True
        if manager.is_lock_busy(f"{stdout}\n{stderr}"):
            logger.info("[%s] %s lock is held by another process, waiting...",
                        provisioner.host.name, manager.name)
            return False
        raise CommandError(command, exit_status, stdout, stderr)

    wait_for(
        _refreshed,
        provisioner.lock_wait_policy,
        cancel_event=provisioner.cancel_event,
        description=f"{manager.name} lock on {provisioner.host.name}",
    )


def package_action(provisioner, name: str, action: PackageAction) -> None:
    """Run a package action on the provisioner's host.

    Args:
        provisioner: Provisioner bound to the target host
        name: Logical package name, aliased through the distribution traits
        action: What to do with the package

    Raises:
        CommandError: If the package manager exits non-zero
    """
    action = PackageAction(action)
    traits = provisioner.traits
    manager = traits.package_manager
    package = traits.package_name(name)

    if action.needs_metadata_refresh:
        refresh_metadata(provisioner, manager)

    command = manager.command(action, package, provisioner.package_lock_timeout)
    logger.debug("package: action=%s name=%s", action.value, package)
    provisioner.ssh_exec(command)
