"""
Host provisioning: detect the remote distribution and turn the host into a
TLS-secured container engine host.
"""
from .config import AuthOptions, EngineOptions, ProvisioningConfig, SwarmOptions, load_provisioning_config
from .errors import (
    CommandError,
    ConfigurationError,
    DetectionError,
    ProbeError,
    ProvisionError,
    WaitTimeoutError,
)
from .models import (
    OsIdentity,
    PackageAction,
    ProvisionerDescriptor,
    RemoteChannel,
    RemoteHost,
    ServiceAction,
)
from .os_release import probe_os_identity
from .provisioner import Provisioner
from .sequence import provision
from .utils import WaitPolicy, wait_for

__all__ = [
    'AuthOptions',
    'CommandError',
    'ConfigurationError',
    'DetectionError',
    'EngineOptions',
    'OsIdentity',
    'PackageAction',
    'ProbeError',
    'ProvisionError',
    'Provisioner',
    'ProvisionerDescriptor',
    'ProvisioningConfig',
    'RemoteChannel',
    'RemoteHost',
    'ServiceAction',
    'SwarmOptions',
    'WaitPolicy',
    'WaitTimeoutError',
    'load_provisioning_config',
    'probe_os_identity',
    'provision',
    'wait_for',
]
