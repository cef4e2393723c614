import pytest

from hostforge.modules.provision import ConfigurationError, ProvisioningConfig, WaitTimeoutError
from hostforge.modules.provision.auth import set_remote_auth_options
from hostforge.modules.provision.engine import (
    cloud_init_finished,
    decide_storage_driver,
    engine_responding,
    install_engine,
    render_engine_options,
    wait_for_cloud_init,
    write_engine_options,
)
from hostforge.modules.provision.services import UPSTART
from hostforge.modules.provision.traits import CENTOS, UBUNTU_UPSTART


def prepared(provisioner, config):
    provisioner.begin_run(config)
    provisioner.auth_options = set_remote_auth_options(provisioner)
    provisioner.storage_driver = 'overlay2'
    return provisioner


def test_explicit_unsupported_driver_is_rejected(conn, make_provisioner):
    provisioner = make_provisioner(conn, traits=CENTOS, name='Centos')
    with pytest.raises(ConfigurationError, match='aufs'):
        decide_storage_driver(provisioner, 'aufs')
    assert conn.commands == []


def test_explicit_supported_driver_is_used(provisioner, ready_conn):
    assert decide_storage_driver(provisioner, 'devicemapper') == 'devicemapper'
    assert not ready_conn.ran('stat -f')


def test_default_driver(provisioner):
    assert decide_storage_driver(provisioner) == 'overlay2'


def test_btrfs_var_lib_selects_btrfs(provisioner, ready_conn):
    ready_conn.on('stat -f -c %T', (0, 'btrfs\n', ''))
    assert decide_storage_driver(provisioner) == 'btrfs'
    assert ready_conn.ran('stat -f -c %T /var/lib')


def test_cloud_init_wait_polls_until_finished(provisioner, ready_conn):
    ready_conn.on('boot-finished', (1, '', ''), (1, '', ''), (0, '', ''))
    wait_for_cloud_init(provisioner)
    assert len(ready_conn.ran('boot-finished')) == 3


def test_cloud_init_never_finishing_times_out(provisioner, ready_conn):
    ready_conn.on('boot-finished', (1, '', ''))
    assert cloud_init_finished(provisioner) is False
    with pytest.raises(WaitTimeoutError, match='cloud-init'):
        wait_for_cloud_init(provisioner)


def test_install_engine_skips_when_present(provisioner, ready_conn):
    install_engine(provisioner, 'https://get.docker.com', '24.0.7')
    assert ready_conn.commands == [
        'if ! type docker >/dev/null 2>&1; then curl -sSL https://get.docker.com | sudo VERSION=24.0.7 sh -; fi'
    ]


def test_install_engine_without_version(provisioner, ready_conn):
    install_engine(provisioner, 'https://test.docker.com')
    assert 'curl -sSL https://test.docker.com | sudo sh -' in ready_conn.commands[0]


def test_engine_responding(provisioner, ready_conn):
    assert engine_responding(provisioner) is True
    ready_conn.on('sudo docker version', (1, '', 'Cannot connect to the Docker daemon'))
    assert engine_responding(provisioner) is False


def test_render_systemd_options(provisioner, tmp_path):
    config = ProvisioningConfig(
        auth={'certs_dir': str(tmp_path)},
        engine={
            'labels': ['zone=a'],
            'insecure_registries': ['registry.local:5000'],
            'registry_mirrors': ['https://mirror.local'],
            'arbitrary_flags': ['debug'],
            'env': ['HTTP_PROXY=http://proxy:3128'],
        },
    )
    content = render_engine_options(prepared(provisioner, config))
    lines = content.splitlines()
    assert lines[0] == '[Service]'
    assert lines[1] == 'ExecStart='
    exec_start = lines[2]
    assert exec_start.startswith('ExecStart=/usr/bin/dockerd -H tcp://0.0.0.0:2376 -H unix:///var/run/docker.sock')
    assert '--storage-driver overlay2' in exec_start
    assert '--tlsverify --tlscacert /etc/docker/ca.pem' in exec_start
    assert '--tlscert /etc/docker/server.pem --tlskey /etc/docker/server-key.pem' in exec_start
    assert '--label zone=a' in exec_start
    assert '--insecure-registry registry.local:5000' in exec_start
    assert '--registry-mirror https://mirror.local' in exec_start
    assert exec_start.endswith('--debug')
    assert 'Environment="HTTP_PROXY=http://proxy:3128" ' in lines


def test_render_upstart_options(conn, make_provisioner, tmp_path):
    provisioner = make_provisioner(conn, traits=UBUNTU_UPSTART, init_system=UPSTART, name='Ubuntu-Upstart')
    config = ProvisioningConfig(auth={'certs_dir': str(tmp_path)}, engine={'env': ['FOO=bar']})
    content = render_engine_options(prepared(provisioner, config))
    assert content.startswith("DOCKER_OPTS='\n-H tcp://0.0.0.0:2376\n")
    assert '--tlsverify\n' in content
    assert 'export "FOO=bar"' in content


def test_render_without_auth_is_a_configuration_error(provisioner):
    with pytest.raises(ConfigurationError):
        render_engine_options(provisioner)


def test_write_engine_options(provisioner, ready_conn, config):
    path = write_engine_options(prepared(provisioner, config))
    assert path == '/etc/systemd/system/docker.service.d/10-machine.conf'
    assert ready_conn.commands == ['sudo mkdir -p /etc/systemd/system/docker.service.d']
    contents, mode = ready_conn.files[path]
    assert mode == 0o644
    assert '--tlsverify' in contents
