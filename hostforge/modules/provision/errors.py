"""Exceptions raised while detecting and provisioning a host."""
from typing import Optional


class ProvisionError(Exception):
    """Base class for provisioning failures.

    ``step`` is filled in by the orchestration sequence with the name of the
    step that was running when the error surfaced.
    """
    step: Optional[str] = None


class ConfigurationError(ProvisionError):
    """Raised when the caller asked for an unsupported combination."""
    pass


class ProbeError(ProvisionError):
    """Raised when the remote OS identity cannot be read."""
    pass


class DetectionError(ProvisionError):
    """Raised when no registered provisioner matches the probed identity."""

    def __init__(self, identity):
        self.identity = identity
        super().__init__(f"no provisioner found for {identity}")


class CommandError(ProvisionError):
    """Raised when a remote command exits with a non-zero status."""

    def __init__(self, command: str, exit_status: int, stdout: str = "", stderr: str = ""):
        self.command = command
        self.exit_status = exit_status
        self.stdout = stdout
        self.stderr = stderr
        message = f"command failed (exit status {exit_status}): {command}"
        if self.output:
            message = f"{message}\n{self.output}"
        super().__init__(message)

    @property
    def output(self) -> str:
        return "\n".join(part.strip() for part in (self.stdout, self.stderr) if part and part.strip())


class WaitTimeoutError(ProvisionError):
    """Raised when a bounded poll runs out of attempts, time or is cancelled."""

    def __init__(self, description: str, attempts: int, cancelled: bool = False):
        self.description = description
        self.attempts = attempts
        self.cancelled = cancelled
        reason = "cancelled" if cancelled else "timed out"
        super().__init__(f"{reason} waiting for {description} after {attempts} attempt(s)")
