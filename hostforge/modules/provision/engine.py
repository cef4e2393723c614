"""Container engine installation and daemon configuration.

Daemon startup options are rendered from Jinja2 templates in templates/,
selected by the provisioner's init system, with the following context:
- engine: EngineOptions of the run
- auth: finalized AuthOptions (remote certificate paths)
- storage_driver: the resolved storage driver
- port: TCP port the daemon listens on with TLS
- env: KEY=VALUE environment entries for the daemon
"""

import json
import logging
import os
import posixpath
from typing import Optional

from jinja2 import (
    Environment,
    FileSystemLoader,
    StrictUndefined,
    TemplateNotFound,
    TemplateSyntaxError,
    UndefinedError,
)

from .config import DEFAULT_INSTALL_URL
from .errors import ConfigurationError
from .utils import quote, wait_for

logger = logging.getLogger("provision.engine")

ENGINE_SERVICE = 'docker'
CLOUD_INIT_BOOT_FINISHED = '/var/lib/cloud/instance/boot-finished'


def get_template_path() -> str:
    """Get the absolute path to the templates directory."""
    return os.path.join(os.path.dirname(os.path.abspath(__file__)), 'templates')


def _template_environment() -> Environment:
    env = Environment(
        loader=FileSystemLoader(get_template_path()),
        trim_blocks=True,
        lstrip_blocks=True,
        undefined=StrictUndefined,
        keep_trailing_newline=True,
    )
    env.filters['quote'] = json.dumps
    return env


def cloud_init_finished(provisioner) -> bool:
    """Whether cloud-init is done. Hosts without cloud-init count as done."""
    command = (
        'if command -v cloud-init >/dev/null 2>&1; then '
        f'test -f {CLOUD_INIT_BOOT_FINISHED}; fi'
    )
    exit_status, _, _ = provisioner.channel.execute(command)
    return exit_status == 0


def wait_for_cloud_init(provisioner) -> None:
    wait_for(
        lambda: cloud_init_finished(provisioner),
        provisioner.wait_policy,
        cancel_event=provisioner.cancel_event,
        description=f"cloud-init on {provisioner.host.name}",
    )


def get_filesystem_type(provisioner, path: str) -> str:
    return provisioner.ssh_exec(f"stat -f -c %T {quote(path)}").strip()


def check_storage_driver(provisioner, supplied: Optional[str]) -> None:
    """Raise ConfigurationError when an explicit storage driver is not supported."""
    traits = provisioner.traits
    if supplied and not traits.supports_storage_driver(supplied):
        raise ConfigurationError(
            f"storage driver {supplied!r} is not supported by {provisioner.name}; "
            f"choose one of: {', '.join(traits.storage_drivers)}"
        )


def decide_storage_driver(provisioner, supplied: Optional[str] = None) -> str:
    """Pick the storage driver for the daemon.

    An explicit choice must be supported by the distribution. Without one the
    distribution default is used, except that a btrfs /var/lib gets btrfs.

    Raises:
        ConfigurationError: If the explicit choice is not supported
    """
    traits = provisioner.traits
    if supplied:
        check_storage_driver(provisioner, supplied)
        return supplied

    driver = traits.default_storage_driver
    if traits.supports_storage_driver('btrfs') and get_filesystem_type(provisioner, '/var/lib') == 'btrfs':
        driver = 'btrfs'
    logger.debug("[%s] Using storage driver %s", provisioner.host.name, driver)
    return driver


def install_engine(provisioner, install_url: str = DEFAULT_INSTALL_URL, version: str = '') -> None:
    """Install the engine with the install script unless it is already present.

    Raises:
        CommandError: If the install script fails
    """
    url = install_url or DEFAULT_INSTALL_URL
    env = f"VERSION={quote(version)} " if version else ''
    logger.info("[%s] Installing container engine from %s%s",
                provisioner.host.name, url, f" (version {version})" if version else '')
    provisioner.ssh_exec(
        f"if ! type docker >/dev/null 2>&1; then curl -sSL {quote(url)} | sudo {env}sh -; fi"
    )


def engine_responding(provisioner) -> bool:
    logger.debug("[%s] checking engine daemon", provisioner.host.name)
    exit_status, stdout, stderr = provisioner.channel.execute("sudo docker version")
    if exit_status != 0:
        logger.warning("[%s] Engine daemon is not responding yet", provisioner.host.name)
        logger.debug("'sudo docker version' output:\n%s%s", stdout, stderr)
        return False
    return True


def wait_for_engine(provisioner) -> None:
    wait_for(
        lambda: engine_responding(provisioner),
        provisioner.wait_policy,
        cancel_event=provisioner.cancel_event,
        description=f"engine daemon on {provisioner.host.name}",
    )


def engine_port_listening(provisioner, port: int) -> bool:
    output = provisioner.ssh_exec(
        "if ! type netstat >/dev/null 2>&1; then ss -tln; else netstat -tln; fi",
        check=False,
    )
    return f":{port} " in output or output.rstrip().endswith(f":{port}")


def wait_for_engine_port(provisioner, port: int) -> None:
    wait_for(
        lambda: engine_port_listening(provisioner, port),
        provisioner.wait_policy,
        cancel_event=provisioner.cancel_event,
        description=f"engine TLS port {port} on {provisioner.host.name}",
    )


def render_engine_options(provisioner) -> str:
    """Render the daemon startup options for the provisioner's init system.

    Raises:
        ConfigurationError: If the template is missing or cannot be rendered
    """
    engine = provisioner.engine_options
    try:
        template = _template_environment().get_template(provisioner.init_system.engine_options_template)
        return template.render(
            engine=engine,
            auth=provisioner.auth_options,
            storage_driver=provisioner.storage_driver or provisioner.traits.default_storage_driver,
            port=engine.port,
            env=list(engine.env),
        )
    except TemplateNotFound as e:
        raise ConfigurationError(f"Engine options template not found: {e}") from e
    except TemplateSyntaxError as e:
        raise ConfigurationError(f"Template syntax error: {e}") from e
    except UndefinedError as e:
        raise ConfigurationError(f"Missing required template variable: {e}") from e


def write_engine_options(provisioner) -> str:
    """Render and write the daemon options file, returning its remote path."""
    path = provisioner.init_system.engine_options_path
    content = render_engine_options(provisioner)
    provisioner.ssh_exec(f"sudo mkdir -p {quote(posixpath.dirname(path))}")
    provisioner.channel.write_file(path, content, 0o644)
    logger.debug("[%s] Wrote engine options to %s", provisioner.host.name, path)
    return path
