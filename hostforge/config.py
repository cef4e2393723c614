"""Configuration management for the hostforge application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()

class Config:
    """Application configuration with sensible defaults."""

    # SSH access to the target host
    SSH_USER: str = os.getenv("HOSTFORGE_SSH_USER", "ubuntu")
    SSH_PORT: int = int(os.getenv("HOSTFORGE_SSH_PORT", "22"))
    SSH_KEY_PATH: str = os.path.expanduser(os.getenv("HOSTFORGE_SSH_KEY", "~/.ssh/id_rsa"))

    # Timeouts (in seconds)
    SSH_TIMEOUT: int = int(os.getenv("HOSTFORGE_SSH_TIMEOUT", "30"))
    COMMAND_TIMEOUT: int = int(os.getenv("HOSTFORGE_COMMAND_TIMEOUT", "900"))  # 15 minutes

    # Connection retries for hosts that are still booting
    CONNECT_RETRIES: int = int(os.getenv("HOSTFORGE_CONNECT_RETRIES", "10"))
    RETRY_DELAY: float = float(os.getenv("HOSTFORGE_RETRY_DELAY", "3.0"))

    # Bounded polling for cloud-init and the engine daemon
    WAIT_INTERVAL: float = float(os.getenv("HOSTFORGE_WAIT_INTERVAL", "3.0"))
    WAIT_MAX_ATTEMPTS: int = int(os.getenv("HOSTFORGE_WAIT_MAX_ATTEMPTS", "60"))

    # Package manager lock handling
    LOCK_WAIT_INTERVAL: float = float(os.getenv("HOSTFORGE_LOCK_WAIT_INTERVAL", "5.0"))
    LOCK_WAIT_TIMEOUT: float = float(os.getenv("HOSTFORGE_LOCK_WAIT_TIMEOUT", "600"))
    PACKAGE_LOCK_TIMEOUT: int = int(os.getenv("HOSTFORGE_PACKAGE_LOCK_TIMEOUT", "300"))

    # Local certificate store
    CERTS_DIR: str = os.path.expanduser(os.getenv("HOSTFORGE_CERTS_DIR", "~/.hostforge/certs"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT: str = os.getenv(
        "LOG_FORMAT",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    LOG_FILE: str = os.path.expanduser(os.getenv("HOSTFORGE_LOG_FILE", "~/.hostforge/hostforge.log"))
    LOG_MAX_SIZE_MB: int = int(os.getenv("HOSTFORGE_LOG_MAX_SIZE_MB", "100"))
    LOG_BACKUP_COUNT: int = int(os.getenv("HOSTFORGE_LOG_BACKUP_COUNT", "5"))

    @classmethod
    def validate(cls) -> None:
        """Validate the polling and timeout settings."""
        positive = {
            "HOSTFORGE_WAIT_MAX_ATTEMPTS": cls.WAIT_MAX_ATTEMPTS,
            "HOSTFORGE_CONNECT_RETRIES": cls.CONNECT_RETRIES,
            "HOSTFORGE_LOCK_WAIT_TIMEOUT": cls.LOCK_WAIT_TIMEOUT,
        }
        invalid = [k for k, v in positive.items() if v <= 0]
        if cls.WAIT_INTERVAL < 0 or cls.LOCK_WAIT_INTERVAL < 0:
            invalid.append("wait intervals must not be negative")
        if invalid:
            raise ValueError(f"Invalid configuration: {', '.join(invalid)}")

# Don't validate on import; the CLI validates before running a command
