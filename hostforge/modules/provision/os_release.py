"""Remote OS identification from /etc/os-release."""
import logging
from typing import Dict

from .errors import ProbeError
from .models import OsIdentity, RemoteChannel

logger = logging.getLogger("provision.os_release")

OS_RELEASE_PATH = "/etc/os-release"


def parse_os_release(content: str) -> Dict[str, str]:
    """Parse KEY=VALUE lines into a dictionary.

    Blank lines, comments and lines without '=' are skipped. Surrounding
    single or double quotes are removed from values.
    """
    fields: Dict[str, str] = {}
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith('#') or '=' not in line:
            continue
        key, _, value = line.partition('=')
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
            value = value[1:-1]
        fields[key.strip()] = value
    return fields


def identity_from_os_release(content: str) -> OsIdentity:
    fields = parse_os_release(content)
    return OsIdentity(
        id=fields.get('ID', ''),
        version_id=fields.get('VERSION_ID', ''),
        codename=fields.get('VERSION_CODENAME') or fields.get('UBUNTU_CODENAME'),
        pretty_name=fields.get('PRETTY_NAME'),
    )


def probe_os_identity(channel: RemoteChannel) -> OsIdentity:
    """Read and parse the remote os-release file.

    Raises:
        ProbeError: If the file is missing or unreadable
    """
    exit_status, stdout, stderr = channel.execute(f"cat {OS_RELEASE_PATH}")
    if exit_status != 0:
        raise ProbeError(
            f"unable to read {OS_RELEASE_PATH} on {channel.host.name}: {(stderr or stdout).strip()}"
        )
    identity = identity_from_os_release(stdout)
    logger.debug("Probed OS identity on %s: %s", channel.host.name, identity)
    return identity
