"""Provisioning options.

Options for one provisioning run come from the following sources, in order of
precedence:
1. Explicitly passed overrides (usually CLI flags)
2. A YAML options file
3. Default values (some of which read hostforge.config.Config)
"""
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from hostforge.config import Config
from .errors import ConfigurationError

logger = logging.getLogger("provision.config")

DEFAULT_INSTALL_URL = "https://get.docker.com"
DEFAULT_ENGINE_PORT = 2376
ENGINE_OPTIONS_DIR = "/etc/docker"


class EngineOptions(BaseModel):
    """Container engine installation and daemon options."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    version: str = Field(default="", description="Engine version passed to the install script")
    install_url: str = Field(default=DEFAULT_INSTALL_URL, description="Install script URL")
    storage_driver: Optional[str] = Field(default=None, description="Preferred storage driver")
    port: int = Field(default=DEFAULT_ENGINE_PORT, description="TLS port the daemon listens on")
    env: Tuple[str, ...] = Field(default=(), description="KEY=VALUE environment for the daemon")
    labels: Tuple[str, ...] = ()
    insecure_registries: Tuple[str, ...] = ()
    registry_mirrors: Tuple[str, ...] = ()
    arbitrary_flags: Tuple[str, ...] = Field(default=(), description="Extra daemon flags without leading dashes")

    @field_validator('env')
    @classmethod
    def check_env(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        for item in v:
            if '=' not in item:
                raise ValueError(f"environment entry must be KEY=VALUE, got {item!r}")
        return v


class AuthOptions(BaseModel):
    """Certificate material and where it ends up on the host.

    Local paths default to files inside ``certs_dir``. ``server_address`` may be
    a placeholder until the orchestration sequence rewrites it with the host's
    reachable address.
    """
    model_config = ConfigDict(frozen=True, extra="ignore")

    certs_dir: str = Field(default_factory=lambda: Config.CERTS_DIR)
    ca_cert_path: str = ""
    ca_key_path: str = ""
    client_cert_path: str = ""
    client_key_path: str = ""
    server_cert_path: str = ""
    server_key_path: str = ""
    server_cert_sans: Tuple[str, ...] = ()
    ca_cert_remote_path: str = f"{ENGINE_OPTIONS_DIR}/ca.pem"
    server_cert_remote_path: str = f"{ENGINE_OPTIONS_DIR}/server.pem"
    server_key_remote_path: str = f"{ENGINE_OPTIONS_DIR}/server-key.pem"
    server_address: str = ""

    @model_validator(mode='before')
    @classmethod
    def default_local_paths(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        certs_dir = os.path.expanduser(data.get('certs_dir') or Config.CERTS_DIR)
        data['certs_dir'] = certs_dir
        defaults = {
            'ca_cert_path': 'ca.pem',
            'ca_key_path': 'ca-key.pem',
            'client_cert_path': 'cert.pem',
            'client_key_path': 'key.pem',
            'server_cert_path': 'server.pem',
            'server_key_path': 'server-key.pem',
        }
        for key, filename in defaults.items():
            if not data.get(key):
                data[key] = os.path.join(certs_dir, filename)
        return data

    @field_validator('ca_cert_path', 'ca_key_path', 'client_cert_path', 'client_key_path',
                     'server_cert_path', 'server_key_path')
    @classmethod
    def expand_path(cls, v: str) -> str:
        """Expand the user home directory in local paths."""
        return os.path.expanduser(v)


class SwarmOptions(BaseModel):
    """Cluster membership options."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    is_swarm: bool = False
    is_master: bool = False
    discovery: str = Field(default="", description="Manager address (host:port) to join")
    join_token: str = ""
    advertise_address: str = Field(default="", description="Defaults to the host address")
    env: Tuple[str, ...] = ()

    @model_validator(mode='after')
    def check_membership(self) -> 'SwarmOptions':
        if self.is_swarm and not self.is_master and not (self.discovery and self.join_token):
            raise ValueError("joining a swarm as a worker requires both discovery and join_token")
        if self.is_swarm and self.discovery and not self.join_token:
            raise ValueError("joining an existing swarm requires join_token")
        return self


class ProvisioningConfig(BaseModel):
    """Everything one orchestration run needs besides the host itself."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    swarm: SwarmOptions = Field(default_factory=SwarmOptions)
    auth: AuthOptions = Field(default_factory=AuthOptions)
    engine: EngineOptions = Field(default_factory=EngineOptions)
    packages: Tuple[str, ...] = Field(default=("curl",), description="Installed before the engine")


def _merge_dicts(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge two dictionaries, ``override`` winning."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _merge_dicts(result[key], value)
        else:
            result[key] = value
    return result


def _load_config_file(path: Path) -> Dict[str, Any]:
    """Load options from a YAML file."""
    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to load provisioning options from {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Provisioning options in {path} must be a mapping")
    return data


def load_provisioning_config(
    config_path: Optional[Union[str, Path]] = None,
    **overrides: Any,
) -> ProvisioningConfig:
    """Build a ProvisioningConfig from an optional YAML file and overrides.

    Args:
        config_path: Optional YAML file with ``swarm``, ``auth``, ``engine`` and
            ``packages`` keys
        **overrides: Values merged over the file contents (nested dicts merge)

    Raises:
        ConfigurationError: If the file cannot be read or parsed
        pydantic.ValidationError: If the options are invalid
    """
    data: Dict[str, Any] = {}
    if config_path:
        path = Path(config_path).expanduser().absolute()
        if not path.exists():
            raise ConfigurationError(f"Provisioning options file not found: {path}")
        data = _load_config_file(path)
        logger.debug("Loaded provisioning options from %s", path)
    return ProvisioningConfig(**_merge_dicts(data, overrides))
