"""Provisioner registry and OS detection.

Provisioners are registered in priority order; detection picks the first one
whose distribution traits accept the probed OS identity.
"""
import logging
import threading
from functools import partial
from typing import List, Optional, Tuple

from hostforge.modules.provision.errors import DetectionError
from hostforge.modules.provision.models import ProvisionerDescriptor, RemoteChannel
from hostforge.modules.provision.os_release import probe_os_identity
from hostforge.modules.provision.provisioner import Provisioner
from hostforge.modules.provision.services import SYSTEMD, UPSTART
from hostforge.modules.provision.traits import (
    CENTOS,
    DEBIAN,
    FEDORA,
    OPENSUSE,
    REDHAT,
    SLES,
    UBUNTU,
    UBUNTU_UPSTART,
)

logger = logging.getLogger("provision.registry")


class ProvisionerRegistry:
    """Ordered, append-only collection of provisioner descriptors."""

    def __init__(self):
        self._descriptors: List[ProvisionerDescriptor] = []
        self._lock = threading.Lock()

    def register(self, name: str, factory) -> ProvisionerDescriptor:
        """Append a provisioner variant.

        Raises:
            ValueError: If a variant with the same name is already registered
        """
        with self._lock:
            if any(d.name == name for d in self._descriptors):
                raise ValueError(f"provisioner {name!r} is already registered")
            descriptor = ProvisionerDescriptor(name=name, factory=factory)
            self._descriptors.append(descriptor)
        logger.debug("Registered provisioner %s", name)
        return descriptor

    @property
    def descriptors(self) -> Tuple[ProvisionerDescriptor, ...]:
        with self._lock:
            return tuple(self._descriptors)

    def names(self) -> List[str]:
        return [d.name for d in self.descriptors]

    def __len__(self) -> int:
        return len(self.descriptors)

    def detect(self, channel: RemoteChannel) -> Provisioner:
        """Select the provisioner for the host behind ``channel``.

        The OS identity is probed once. Candidates are built in registration
        order and the first compatible one is returned.

        Raises:
            ProbeError: If the OS identity cannot be read
            DetectionError: If no registered provisioner accepts the identity
        """
        identity = probe_os_identity(channel)
        logger.info("Detected OS on %s: %s", channel.host.name, identity.pretty_name or identity)
        for descriptor in self.descriptors:
            provisioner = descriptor.factory(channel)
            provisioner.bind_os_identity(identity)
            if provisioner.compatible_with_host():
                logger.info("Selected provisioner %s for %s", descriptor.name, channel.host.name)
                return provisioner
            logger.debug("Provisioner %s does not match %s", descriptor.name, identity)
        raise DetectionError(identity)


DEFAULT_PROVISIONERS = (
    ('Ubuntu-SystemD', UBUNTU, SYSTEMD),
    ('Ubuntu-Upstart', UBUNTU_UPSTART, UPSTART),
    ('Debian', DEBIAN, SYSTEMD),
    ('Centos', CENTOS, SYSTEMD),
    ('RedHat', REDHAT, SYSTEMD),
    ('Fedora', FEDORA, SYSTEMD),
    ('openSUSE', OPENSUSE, SYSTEMD),
    ('SLES', SLES, SYSTEMD),
)


def register_default_provisioners(registry: ProvisionerRegistry) -> ProvisionerRegistry:
    for name, traits, init_system in DEFAULT_PROVISIONERS:
        registry.register(name, partial(_build, name, traits, init_system))
    return registry


def _build(name, traits, init_system, channel: RemoteChannel) -> Provisioner:
    return Provisioner(name, channel, traits=traits, init_system=init_system)


# Global registry
_registry: Optional[ProvisionerRegistry] = None
_registry_lock = threading.Lock()


def get_registry() -> ProvisionerRegistry:
    """Get the process-wide registry, populated with the default provisioners."""
    global _registry
    with _registry_lock:
        if _registry is None:
            _registry = register_default_provisioners(ProvisionerRegistry())
        return _registry


def detect_provisioner(channel: RemoteChannel, registry: Optional[ProvisionerRegistry] = None) -> Provisioner:
    """Detect the provisioner for a host using ``registry`` or the global one."""
    if registry is None:
        registry = get_registry()
    return registry.detect(channel)
