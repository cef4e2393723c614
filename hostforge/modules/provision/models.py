"""
Data models for host provisioning.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol, Tuple


class PackageAction(str, Enum):
    """Abstract package operations."""
    INSTALL = 'install'
    UPGRADE = 'upgrade'
    REMOVE = 'remove'
    PURGE = 'purge'

    @property
    def needs_metadata_refresh(self) -> bool:
        return self in (PackageAction.INSTALL, PackageAction.UPGRADE)


class ServiceAction(str, Enum):
    """Abstract init-system operations."""
    START = 'start'
    STOP = 'stop'
    RESTART = 'restart'
    ENABLE = 'enable'
    DISABLE = 'disable'


@dataclass(frozen=True)
class OsIdentity:
    """Facts read from /etc/os-release on the remote host."""
    id: str
    version_id: str
    codename: Optional[str] = None
    pretty_name: Optional[str] = None

    def __str__(self) -> str:
        return f"{{ID: {self.id!r}, VersionID: {self.version_id!r}}}"


@dataclass(frozen=True)
class RemoteHost:
    """A machine reachable over SSH."""
    name: str
    address: str
    user: str = 'ubuntu'
    port: int = 22
    key_path: Optional[str] = None


class RemoteChannel(Protocol):
    """What a provisioner needs from the transport to the host."""
    host: RemoteHost

    def execute(self, command: str, timeout: Optional[int] = None) -> Tuple[int, str, str]:
        """Run a shell command and return (exit_status, stdout, stderr)."""
        ...

    def write_file(self, remote_path: str, contents: str, mode: int = 0o644) -> None:
        """Create or overwrite a file on the host."""
        ...


@dataclass(frozen=True)
class ProvisionerDescriptor:
    """Registry entry: a unique name and a factory bound to a channel."""
    name: str
    factory: Callable[[RemoteChannel], "Provisioner"]  # noqa: F821
