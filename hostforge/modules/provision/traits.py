"""Distribution traits.

A DistroTraits value captures everything that differs between distributions
sharing the generic provisioning logic: the os-release identifier and version
window it accepts, its package manager, package name aliases and the storage
drivers its engine packages support.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from .models import OsIdentity
from .packages import APT, DNF, YUM, ZYPPER, PackageManager

logger = logging.getLogger("provision.traits")

DEFAULT_STORAGE_DRIVER = 'overlay2'

DOCKER_CE_ALIASES = {'docker': 'docker-ce'}


@dataclass(frozen=True)
class DistroTraits:
    """Identity-specific pieces of a provisioner."""
    os_id: str
    display_name: str
    package_manager: PackageManager
    min_version: float
    max_version: Optional[float] = None  # exclusive
    package_aliases: Dict[str, str] = field(default_factory=dict)
    default_storage_driver: str = DEFAULT_STORAGE_DRIVER
    storage_drivers: Tuple[str, ...] = ('overlay2', 'btrfs', 'devicemapper', 'vfs')

    def matches(self, identity: Optional[OsIdentity]) -> bool:
        """Whether this distribution accepts the probed identity.

        An unparsable version is treated as incompatible.
        """
        if identity is None or identity.id != self.os_id:
            return False
        try:
            version = float(identity.version_id)
        except (TypeError, ValueError):
            logger.debug("Unparsable VERSION_ID %r for %s", identity.version_id, self.os_id)
            return False
        if version < self.min_version:
            return False
        if self.max_version is not None and version >= self.max_version:
            return False
        return True

    def package_name(self, name: str) -> str:
        return self.package_aliases.get(name, name)

    def supports_storage_driver(self, driver: str) -> bool:
        return driver in self.storage_drivers


UBUNTU = DistroTraits(
    os_id='ubuntu',
    display_name='ubuntu',
    package_manager=APT,
    min_version=15.04,
    package_aliases=DOCKER_CE_ALIASES,
    storage_drivers=('overlay2', 'aufs', 'btrfs', 'zfs', 'devicemapper', 'vfs'),
)

UBUNTU_UPSTART = DistroTraits(
    os_id='ubuntu',
    display_name='ubuntu',
    package_manager=APT,
    min_version=14.04,
    max_version=15.04,
    package_aliases=DOCKER_CE_ALIASES,
    default_storage_driver='aufs',
    storage_drivers=('aufs', 'overlay2', 'btrfs', 'devicemapper', 'vfs'),
)

DEBIAN = DistroTraits(
    os_id='debian',
    display_name='debian',
    package_manager=APT,
    min_version=8,
    package_aliases=DOCKER_CE_ALIASES,
    storage_drivers=('overlay2', 'aufs', 'btrfs', 'devicemapper', 'vfs'),
)

CENTOS = DistroTraits(
    os_id='centos',
    display_name='centos',
    package_manager=YUM,
    min_version=7,
    package_aliases=DOCKER_CE_ALIASES,
)

REDHAT = DistroTraits(
    os_id='rhel',
    display_name='redhat',
    package_manager=YUM,
    min_version=7,
    package_aliases=DOCKER_CE_ALIASES,
)

FEDORA = DistroTraits(
    os_id='fedora',
    display_name='fedora',
    package_manager=DNF,
    min_version=22,
    package_aliases=DOCKER_CE_ALIASES,
)

OPENSUSE = DistroTraits(
    os_id='opensuse-leap',
    display_name='openSUSE',
    package_manager=ZYPPER,
    min_version=15,
)

SLES = DistroTraits(
    os_id='sles',
    display_name='SUSE Linux Enterprise Server',
    package_manager=ZYPPER,
    min_version=12,
)
