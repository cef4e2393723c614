import pytest

from hostforge.modules.provision import CommandError, PackageAction, WaitTimeoutError
from hostforge.modules.provision.services import SYSTEMD
from hostforge.modules.provision.traits import CENTOS, FEDORA, OPENSUSE

APT_INSTALL_DOCKER = 'DEBIAN_FRONTEND=noninteractive sudo -E apt-get -o DPkg::Lock::Timeout=300 install -y docker-ce'
APT_LOCKED = (100, '', 'E: Could not get lock /var/lib/apt/lists/lock. It is held by process 1234 (apt-get)')


def test_install_refreshes_then_installs_aliased_package(provisioner, ready_conn):
    provisioner.package('docker', PackageAction.INSTALL)
    assert ready_conn.commands == ['sudo apt-get update', APT_INSTALL_DOCKER]


def test_remove_does_not_refresh(provisioner, ready_conn):
    provisioner.package('curl', PackageAction.REMOVE)
    assert ready_conn.commands == [
        'DEBIAN_FRONTEND=noninteractive sudo -E apt-get -o DPkg::Lock::Timeout=300 remove -y curl'
    ]


def test_purge_maps_to_apt_purge(provisioner, ready_conn):
    provisioner.package('curl', PackageAction.PURGE)
    assert ready_conn.ran('purge -y curl')
    assert not ready_conn.ran('apt-get update')


def test_waits_for_held_lock(provisioner, ready_conn):
    ready_conn.on('sudo apt-get update', APT_LOCKED, APT_LOCKED, (0, '', ''))
    provisioner.package('curl', PackageAction.INSTALL)
    assert len(ready_conn.ran('sudo apt-get update')) == 3
    assert ready_conn.commands[-1].endswith('install -y curl')


def test_lock_never_released_times_out(provisioner, ready_conn):
    ready_conn.on('sudo apt-get update', APT_LOCKED)
    with pytest.raises(WaitTimeoutError) as exc:
        provisioner.package('curl', PackageAction.INSTALL)
    assert exc.value.attempts == 3
    assert not ready_conn.ran('install -y curl')


def test_other_refresh_failure_is_raised(provisioner, ready_conn):
    ready_conn.on('sudo apt-get update', (100, '', 'E: The repository is not signed.'))
    with pytest.raises(CommandError) as exc:
        provisioner.package('curl', PackageAction.INSTALL)
    assert exc.value.command == 'sudo apt-get update'
    assert len(ready_conn.ran('sudo apt-get update')) == 1
    assert not ready_conn.ran('install -y curl')


def test_install_failure_carries_output(provisioner, ready_conn):
    ready_conn.on('install -y nosuchpkg', (100, '', 'E: Unable to locate package nosuchpkg'))
    with pytest.raises(CommandError) as exc:
        provisioner.package('nosuchpkg', PackageAction.INSTALL)
    assert exc.value.exit_status == 100
    assert 'Unable to locate package' in exc.value.output
    assert 'Unable to locate package' in str(exc.value)


def test_yum_commands(conn, make_provisioner):
    provisioner = make_provisioner(conn, traits=CENTOS, name='Centos')
    provisioner.package('docker', PackageAction.INSTALL)
    provisioner.package('docker', PackageAction.PURGE)
    assert conn.commands == [
        'sudo yum -y makecache',
        'sudo yum -y install docker-ce',
        'sudo yum -y remove docker-ce',
    ]


def test_dnf_upgrade(conn, make_provisioner):
    provisioner = make_provisioner(conn, traits=FEDORA, name='Fedora')
    provisioner.package('curl', PackageAction.UPGRADE)
    assert conn.commands == ['sudo dnf -y makecache', 'sudo dnf -y upgrade curl']


def test_zypper_passes_lock_timeout(conn, make_provisioner):
    provisioner = make_provisioner(conn, traits=OPENSUSE, init_system=SYSTEMD, name='openSUSE')
    provisioner.package('docker', PackageAction.INSTALL)
    assert conn.commands == [
        'sudo zypper --non-interactive refresh',
        'sudo env ZYPP_LOCK_TIMEOUT=300 zypper --non-interactive install docker',
    ]


def test_package_names_are_quoted(provisioner, ready_conn):
    provisioner.package('curl; reboot', PackageAction.REMOVE)
    assert ready_conn.commands[-1].endswith("remove -y 'curl; reboot'")
