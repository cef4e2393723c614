import pytest

from hostforge.modules.provision import Provisioner, ProvisioningConfig, RemoteHost, WaitPolicy
from hostforge.modules.provision.services import SYSTEMD
from hostforge.modules.provision.traits import UBUNTU

UBUNTU_2004 = """NAME="Ubuntu"
VERSION="20.04.6 LTS (Focal Fossa)"
ID=ubuntu
ID_LIKE=debian
PRETTY_NAME="Ubuntu 20.04.6 LTS"
VERSION_ID="20.04"
VERSION_CODENAME=focal
UBUNTU_CODENAME=focal
"""

NETSTAT_LISTENING = "tcp6       0      0 :::2376                 :::*                    LISTEN\n"

FAST = WaitPolicy(interval=0, max_attempts=3)


def os_release(os_id, version_id):
    return f'ID={os_id}\nVERSION_ID="{version_id}"\nPRETTY_NAME="{os_id} {version_id}"\n'


class FakeConnection:
    """In-memory remote channel.

    Responses are matched by substring; the most recently registered match
    wins. A response registered with several results returns them in turn and
    then keeps returning the last one.
    """

    def __init__(self, host=None, default=(0, '', '')):
        self.host = host or RemoteHost(name='node1', address='10.0.0.5')
        self.default = default
        self.commands = []
        self.events = []
        self.files = {}
        self._responses = []
        self.closed = False

    def on(self, fragment, *results):
        self._responses.append((fragment, list(results)))
        return self

    def execute(self, command, timeout=None):
        self.commands.append(command)
        self.events.append(('exec', command))
        for fragment, results in reversed(self._responses):
            if fragment in command:
                result = results.pop(0) if len(results) > 1 else results[0]
                if isinstance(result, Exception):
                    raise result
                return result
        return self.default

    def write_file(self, remote_path, contents, mode=0o644):
        self.events.append(('write', remote_path))
        self.files[remote_path] = (contents, mode)

    def ran(self, fragment):
        return [c for c in self.commands if fragment in c]

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.closed = True


@pytest.fixture
def conn():
    return FakeConnection()


@pytest.fixture
def ready_conn(conn):
    """A freshly booted Ubuntu 20.04 host where everything succeeds."""
    conn.on('cat /etc/os-release', (0, UBUNTU_2004, ''))
    conn.on('stat -f -c %T', (0, 'ext2/ext3\n', ''))
    conn.on('netstat -tln', (0, NETSTAT_LISTENING, ''))
    conn.on('docker info --format', (0, 'inactive\n', ''))
    return conn


@pytest.fixture
def make_provisioner():
    def _make(channel, traits=UBUNTU, init_system=SYSTEMD, name='Ubuntu-SystemD'):
        return Provisioner(name, channel, traits=traits, init_system=init_system,
                           wait_policy=FAST, lock_wait_policy=FAST, package_lock_timeout=300)
    return _make


@pytest.fixture
def provisioner(ready_conn, make_provisioner):
    return make_provisioner(ready_conn)


@pytest.fixture
def config(tmp_path):
    return ProvisioningConfig(auth={'certs_dir': str(tmp_path / 'certs')})
