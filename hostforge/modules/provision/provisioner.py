"""Generic provisioner.

A Provisioner is one bootstrap strategy: a DistroTraits value (what differs
between distributions) combined with an InitSystem (how services are driven).
Every registered variant is an instance of this class with a different pair.
"""

import logging
import threading
from typing import Optional

from hostforge.config import Config
from .config import AuthOptions, EngineOptions, ProvisioningConfig, SwarmOptions
from .errors import CommandError, ProvisionError
from .models import OsIdentity, PackageAction, RemoteChannel, RemoteHost, ServiceAction
from .packages import package_action
from .sequence import provision
from .services import InitSystem, service_action
from .traits import DistroTraits
from .utils import WaitPolicy, quote, validate_hostname

logger = logging.getLogger("provision.provisioner")

class Provisioner:
    """Bootstraps a container engine on one host."""

    def __init__(
        self,
        name: str,
        channel: RemoteChannel,
        traits: DistroTraits,
        init_system: InitSystem,
        wait_policy: Optional[WaitPolicy] = None,
        lock_wait_policy: Optional[WaitPolicy] = None,
        package_lock_timeout: Optional[int] = None,
    ):
        """Initialize the provisioner.

        Args:
            name: Registered name of this variant (e.g. 'Ubuntu-SystemD')
            channel: Transport to the target host
            traits: Distribution specifics
            init_system: Service manager specifics
            wait_policy: Bounds for cloud-init and daemon polling
            lock_wait_policy: Bounds for package manager lock polling
            package_lock_timeout: Lock timeout passed to each package command
        """
        self.name = name
        self.channel = channel
        self.traits = traits
        self.init_system = init_system
        self.wait_policy = wait_policy or WaitPolicy.default()
        self.lock_wait_policy = lock_wait_policy or WaitPolicy.lock_default()
        self.package_lock_timeout = (
            package_lock_timeout if package_lock_timeout is not None else Config.PACKAGE_LOCK_TIMEOUT
        )
        self.cancel_event: Optional[threading.Event] = None

        # Per-run state
        self.storage_driver: Optional[str] = None
        self.engine_options = EngineOptions()
        self.auth_options: Optional[AuthOptions] = None
        self.swarm_options = SwarmOptions()
        self.packages = ()
        self._os_identity: Optional[OsIdentity] = None
        self._run_started = False

    def __str__(self) -> str:
        return f"{self.traits.display_name}({self.init_system.name})"

    def __repr__(self) -> str:
        return f"<Provisioner {self.name} host={self.host.name}>"

    @property
    def host(self) -> RemoteHost:
        return self.channel.host

    @property
    def os_identity(self) -> Optional[OsIdentity]:
        return self._os_identity

    def bind_os_identity(self, identity: OsIdentity) -> None:
        """Attach the probed identity. It can only be set once."""
        if self._os_identity is not None and self._os_identity != identity:
            raise ProvisionError(f"{self.name}: OS identity is already bound to {self._os_identity}")
        self._os_identity = identity

    def compatible_with_host(self) -> bool:
        return self.traits.matches(self._os_identity)

    def ssh_exec(self, command: str, check: bool = True, timeout: Optional[int] = None) -> str:
        """Execute a command on the host and return its stdout.

        Args:
            command: Shell command, including sudo where elevation is needed
            check: Raise CommandError on a non-zero exit status
            timeout: Per-command timeout in seconds

        Raises:
            CommandError: If the command fails and ``check`` is set
        """
        logger.debug("[%s] $ %s", self.host.name, command)
        exit_status, stdout, stderr = self.channel.execute(command, timeout=timeout)
        if exit_status != 0:
            logger.debug("[%s] exit status %d: %s", self.host.name, exit_status, (stderr or stdout).strip())
            if check:
                raise CommandError(command, exit_status, stdout, stderr)
        return stdout

    def set_hostname(self, hostname: str) -> None:
        validate_hostname(hostname)
        name = quote(hostname)
        self.ssh_exec(f"sudo hostname {name} && echo {name} | sudo tee /etc/hostname")
        self.ssh_exec(
            "if grep -xq '127.0.1.1.*' /etc/hosts; then "
            f"sudo sed -i 's/^127.0.1.1.*/127.0.1.1 {hostname}/g' /etc/hosts; "
            f"else echo '127.0.1.1 {hostname}' | sudo tee -a /etc/hosts; fi"
        )

    def package(self, name: str, action: PackageAction) -> None:
        package_action(self, name, action)

    def service(self, name: str, action: ServiceAction) -> None:
        service_action(self, name, action)

    def begin_run(self, config: ProvisioningConfig, cancel_event: Optional[threading.Event] = None) -> None:
        """Load the run's options into this instance.

        Raises:
            ProvisionError: If this instance was already used for a run
        """
        if self._run_started:
            raise ProvisionError(f"{self.name} provisioner for {self.host.name} has already been used")
        self._run_started = True
        self.cancel_event = cancel_event
        self.engine_options = config.engine
        self.auth_options = config.auth
        swarm = config.swarm
        if not swarm.env:
            swarm = swarm.model_copy(update={'env': config.engine.env})
        self.swarm_options = swarm
        self.packages = config.packages

    def provision(self, config: ProvisioningConfig, cancel_event: Optional[threading.Event] = None) -> None:
        """Run the full bootstrap sequence against the host."""
        provision(self, config, cancel_event=cancel_event)
