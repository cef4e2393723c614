import os

import pytest

from hostforge.modules.provision import ConfigurationError, ProvisioningConfig, WaitTimeoutError
from hostforge.modules.provision import certs
from hostforge.modules.provision.auth import configure_auth, set_remote_auth_options

OPTIONS_FILE = '/etc/systemd/system/docker.service.d/10-machine.conf'


def prepared(provisioner, config):
    provisioner.begin_run(config)
    provisioner.storage_driver = 'overlay2'
    provisioner.auth_options = set_remote_auth_options(provisioner)
    return provisioner


def test_remote_options_use_host_address(provisioner, tmp_path):
    config = ProvisioningConfig(auth={
        'certs_dir': str(tmp_path),
        'server_address': 'placeholder',
        'ca_cert_remote_path': '/somewhere/else.pem',
    })
    provisioner.begin_run(config)
    auth = set_remote_auth_options(provisioner)
    assert auth.server_address == '10.0.0.5'
    assert auth.ca_cert_remote_path == '/etc/docker/ca.pem'
    assert auth.server_cert_remote_path == '/etc/docker/server.pem'
    assert auth.server_key_remote_path == '/etc/docker/server-key.pem'
    assert auth.certs_dir == str(tmp_path)


def test_configure_auth_installs_trust_material(provisioner, ready_conn, config):
    configure_auth(prepared(provisioner, config))

    assert ready_conn.files['/etc/docker/ca.pem'][1] == 0o644
    assert ready_conn.files['/etc/docker/server.pem'][1] == 0o644
    assert ready_conn.files['/etc/docker/server-key.pem'][1] == 0o600
    assert 'BEGIN CERTIFICATE' in ready_conn.files['/etc/docker/ca.pem'][0]
    assert '--tlsverify' in ready_conn.files[OPTIONS_FILE][0]

    assert ready_conn.commands[0] == 'sudo mkdir -p /etc/docker'
    assert ready_conn.ran('sudo systemctl -f restart docker')
    assert ready_conn.ran('netstat -tln')
    writes = [path for kind, path in ready_conn.events if kind == 'write']
    assert writes == ['/etc/docker/ca.pem', '/etc/docker/server.pem', '/etc/docker/server-key.pem', OPTIONS_FILE]


def test_rerun_overwrites_files(provisioner, ready_conn, config):
    prepared(provisioner, config)
    configure_auth(provisioner)
    first = ready_conn.files['/etc/docker/server.pem'][0]
    configure_auth(provisioner)

    assert ready_conn.files['/etc/docker/server.pem'][0] != first
    assert len(ready_conn.files) == 4
    assert len(ready_conn.ran('sudo systemctl -f restart docker')) == 2


def test_supplied_ca_without_key_needs_server_certificate(provisioner, ready_conn, tmp_path):
    ca_dir = tmp_path / 'ca'
    certs.generate_ca(str(ca_dir / 'ca.pem'), str(ca_dir / 'ca-key.pem'))
    os.remove(ca_dir / 'ca-key.pem')
    config = ProvisioningConfig(auth={
        'certs_dir': str(tmp_path / 'certs'),
        'ca_cert_path': str(ca_dir / 'ca.pem'),
        'ca_key_path': str(ca_dir / 'ca-key.pem'),
    })

    with pytest.raises(ConfigurationError, match='no server certificate'):
        configure_auth(prepared(provisioner, config))
    assert ready_conn.files == {}


def test_daemon_not_listening_times_out(provisioner, ready_conn, config):
    ready_conn.on('netstat -tln', (0, 'tcp 0 0 0.0.0.0:22 0.0.0.0:* LISTEN\n', ''))
    with pytest.raises(WaitTimeoutError, match='2376'):
        configure_auth(prepared(provisioner, config))
