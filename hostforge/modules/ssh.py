"""
SSH connection management using paramiko.
"""
import itertools
import logging
import os
import socket
import threading
from typing import Optional, Tuple

import paramiko
from paramiko.ssh_exception import NoValidConnectionsError
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from hostforge.config import Config
from hostforge.modules.provision.errors import CommandError
from hostforge.modules.provision.models import RemoteHost
from hostforge.modules.provision.utils import quote

logger = logging.getLogger("ssh")

_counter = itertools.count()

# Errors a freshly booted host produces while sshd is not up yet
TRANSIENT_ERRORS = (NoValidConnectionsError, ConnectionError, socket.timeout, EOFError)


class SSHConnection:
    """Remote command channel over a single paramiko SSH session."""

    def __init__(
        self,
        host: RemoteHost,
        timeout: Optional[int] = None,
        command_timeout: Optional[int] = None,
        retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ):
        """Initialize the connection. Connecting happens lazily on first use.

        Args:
            host: Machine to connect to
            timeout: Connection timeout in seconds (default: Config.SSH_TIMEOUT)
            command_timeout: Default per-command timeout (default: Config.COMMAND_TIMEOUT)
            retries: Connection attempts before giving up (default: Config.CONNECT_RETRIES)
            retry_delay: Seconds between connection attempts (default: Config.RETRY_DELAY)
        """
        self.host = host
        self.key_path = os.path.expanduser(host.key_path) if host.key_path else None
        self.timeout = timeout if timeout is not None else Config.SSH_TIMEOUT
        self.command_timeout = command_timeout if command_timeout is not None else Config.COMMAND_TIMEOUT
        self.retries = retries if retries is not None else Config.CONNECT_RETRIES
        self.retry_delay = retry_delay if retry_delay is not None else Config.RETRY_DELAY
        self._client: Optional[paramiko.SSHClient] = None
        self._lock = threading.Lock()

    def __enter__(self):
        """Context manager entry point."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit point."""
        self.close()

    def __repr__(self) -> str:
        return f"<SSHConnection {self.host.user}@{self.host.address}:{self.host.port}>"

    def _open_client(self) -> paramiko.SSHClient:
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                hostname=self.host.address,
                port=self.host.port,
                username=self.host.user,
                key_filename=self.key_path,
                timeout=self.timeout,
                banner_timeout=self.timeout,
                auth_timeout=self.timeout,
                allow_agent=self.key_path is None,
                look_for_keys=self.key_path is None,
            )
        except Exception:
            client.close()
            raise
        return client

    def _connect(self) -> paramiko.SSHClient:
        """Establish the SSH session, retrying while the host is not reachable yet."""
        logger.info(f"Connecting to {self.host.user}@{self.host.address}:{self.host.port}")

        def _log_retry(retry_state):
            logger.debug(f"SSH connection attempt {retry_state.attempt_number}/{self.retries} "
                         f"to {self.host.address} failed: {retry_state.outcome.exception()}")

        retrying = Retrying(
            stop=stop_after_attempt(max(self.retries, 1)),
            wait=wait_fixed(self.retry_delay),
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            before_sleep=_log_retry,
            reraise=True,
        )
        return retrying(self._open_client)

    @property
    def client(self) -> paramiko.SSHClient:
        with self._lock:
            if self._client is None:
                self._client = self._connect()
            return self._client

    def execute(self, command: str, timeout: Optional[int] = None) -> Tuple[int, str, str]:
        """Execute a command on the remote host.

        Args:
            command: Shell command to run
            timeout: Command timeout in seconds (default: self.command_timeout)

        Returns:
            tuple: (exit_status, stdout, stderr)
        """
        timeout = timeout or self.command_timeout
        logger.debug(f"[{self.host.name}] exec: {command}")
        _, stdout, stderr = self.client.exec_command(command, timeout=timeout)
        out = stdout.read().decode('utf-8', errors='replace')
        err = stderr.read().decode('utf-8', errors='replace')
        exit_status = stdout.channel.recv_exit_status()
        return exit_status, out, err

    def write_file(self, remote_path: str, contents: str, mode: int = 0o644) -> None:
        """Create or overwrite a root-owned file on the remote host.

        The contents are uploaded to a temporary path over SFTP, then moved
        into place with sudo so the target directory may be root-owned.

        Raises:
            CommandError: If moving the file into place fails
        """
        tmp_remote = f"/tmp/.hostforge_{os.getpid()}_{next(_counter)}"
        sftp = self.client.open_sftp()
        try:
            with sftp.file(tmp_remote, 'w') as f:
                # Restrict the upload before any content lands in /tmp
                f.chmod(mode)
                f.write(contents)
        finally:
            sftp.close()

        command = (
            f"sudo install -m {oct(mode)[2:]} -o root -g root {quote(tmp_remote)} {quote(remote_path)}"
            f" ; rc=$? ; rm -f {quote(tmp_remote)} ; exit $rc"
        )
        exit_status, stdout, stderr = self.execute(command)
        if exit_status != 0:
            raise CommandError(command, exit_status, stdout, stderr)
        logger.debug(f"[{self.host.name}] wrote {remote_path} (mode {oct(mode)})")

    def close(self):
        """Close the SSH session."""
        with self._lock:
            if self._client is not None:
                self._client.close()
                self._client = None
