"""Shared test fixtures: an in-memory remote host and a fake local build engine."""

import hashlib
import io
import os
import shlex
import tarfile
from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from ocideploy.config.settings import build_config
from ocideploy.deployment.errors import TransportTimeout
from ocideploy.executors.ssh import RemoteCommandError
from ocideploy.executors.local import LocalCommandError


def make_tar_bytes(files):
    """Build an uncompressed tar archive in memory from {name: bytes}."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode='w') as tar:
        for name, data in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def write_tar(path, files):
    data = make_tar_bytes(files)
    with open(path, 'wb') as f:
        f.write(data)
    return path


class FakeLocal:
    """Stands in for LocalExecutor: build records, save writes a real tar."""

    def __init__(self, programs=('podman', 'rsync')):
        self.programs = set(programs)
        self.commands = []
        self.fail_build = False
        self.saves = 0

    def which(self, program):
        return f"/usr/bin/{program}" if program in self.programs else None

    def run_check(self, argv, cwd=None):
        self.commands.append(list(argv))
        if argv[1] == 'build' and self.fail_build:
            raise LocalCommandError(argv, 1, "STEP 3/5: RUN npm ci: exit status 1")
        if argv[1] == 'save':
            self.saves += 1
            destination = argv[argv.index('-o') + 1]
            write_tar(destination, {
                'index.json': b'{"manifests": []}',
                'oci-layout': b'{"imageLayoutVersion": "1.0.0"}',
                f'blobs/sha256/layer{self.saves}': os.urandom(2048),
            })
        return ''


class FakeRemote:
    """
    Stands in for RemoteExecutor. Keeps a tiny model of the remote host:
    files, podman images and the single app container.
    """

    def __init__(self, config):
        self.config = config
        self.files = {}
        self.mtimes = {}
        self.images = {}
        self.container = None
        self.mutations = []
        self.commands = []
        self.tick = 0
        self.last_run = None

        self.transfer_failures = 0
        self.corrupt_transfer = None
        self.crash_next_load = False
        self.crashing_images = set()
        self.fail_rmi = set()
        self.rootless = 'true'
        self.fail_next_run = False
        # predicates over commands; a match raises TransportTimeout
        self.timeouts = []

    # -- helpers ---------------------------------------------------------

    @property
    def target(self):
        return f"{self.config.remote_user}@{self.config.host}"

    def ssh_options(self, port_flag='-p'):
        return [port_flag, str(self.config.ssh_port)]

    def wrap(self, argv):
        return argv

    def _touch(self, path, data):
        self.tick += 1
        self.files[path] = data
        self.mtimes[path] = self.tick

    def _resolve_image(self, ref):
        for image_id, image in self.images.items():
            if ref == image_id or ref in image['refs'] or image_id.startswith(ref):
                return image_id
        return None

    def add_image(self, ref, image_id=None, crashing=False):
        self.tick += 1
        image_id = image_id or hashlib.sha256(f"{ref}{self.tick}".encode()).hexdigest()
        for image in self.images.values():
            if ref in image['refs']:
                image['refs'].remove(ref)
        self.images[image_id] = {
            'refs': [ref],
            'created': f"2026-01-01 00:{self.tick // 60:02d}:{self.tick % 60:02d} +0000 UTC",
        }
        if crashing:
            self.crashing_images.add(image_id)
        return image_id

    def start_container(self, image_id, label=None):
        self.container = {
            'name': self.config.container_name,
            'image_id': image_id,
            'label': label,
            'running': image_id not in self.crashing_images,
        }

    @property
    def active_image(self):
        if self.container and self.container['running']:
            return self.container['image_id']
        return None

    # -- transport -------------------------------------------------------

    def run(self, argv, description):
        self.commands.append(list(argv))
        if self.transfer_failures > 0:
            self.transfer_failures -= 1
            return SimpleNamespace(stdout='', stderr='connection reset', returncode=12)
        source, destination = argv[-2], argv[-1]
        remote_dir = destination.split(':', 1)[1].rstrip('/')
        with open(source, 'rb') as f:
            data = f.read()
        name = os.path.basename(source)
        if self.corrupt_transfer and name.endswith('.image.tar'):
            data = self.corrupt_transfer(data)
        self.mutations.append(('transfer', name))
        self._touch(f"{remote_dir}/{name}", data)
        return SimpleNamespace(stdout='sent', stderr='', returncode=0)

    def ssh_exec_check(self, command):
        stdout, stderr, returncode = self.ssh_exec(command)
        if returncode != 0:
            raise RemoteCommandError(command, returncode, stderr)
        return stdout

    def ssh_exec(self, command):
        self.commands.append(command)
        if any(matches(command) for matches in self.timeouts):
            raise TransportTimeout(f"ssh: connection to {self.config.host} lost")
        if isinstance(command, str):
            return self._shell(command)
        return self._argv(list(command))

    def _shell(self, command):
        if command.startswith('tar -tf'):
            path = shlex.split(command)[2]
            data = self.files.get(path)
            if data is None:
                return '', 'tar: cannot open', 2
            try:
                with tarfile.open(fileobj=io.BytesIO(data), mode='r:') as tar:
                    for member in tar:
                        if member.isfile():
                            tar.extractfile(member).read()
            except (tarfile.TarError, EOFError) as e:
                return '', f'tar: Unexpected EOF in archive ({e})', 2
            return '', '', 0
        if 'ls -1t' in command:
            app_dir = self.config.remote_app_dir + '/'
            names = [p for p in self.files if p.startswith(app_dir) and p.endswith('.image.tar')]
            names.sort(key=lambda p: self.mtimes[p], reverse=True)
            return '\n'.join(os.path.basename(p) for p in names) + '\n', '', 0
        if command.startswith('set -euo pipefail'):
            self.mutations.append(('systemd', command))
            return 'Active: active (running)\n', '', 0
        return '', f'unexpected command: {command}', 127

    def _argv(self, argv):
        head = argv[0]
        if head == 'mkdir':
            self.mutations.append(('mkdir', argv[-1]))
            return '', '', 0
        if head == 'sha256sum':
            data = self.files.get(argv[1])
            if data is None:
                return '', 'No such file or directory', 1
            return f"{hashlib.sha256(data).hexdigest()}  {argv[1]}\n", '', 0
        if head == 'rm':
            for path in argv[3:]:
                self.files.pop(path, None)
            self.mutations.append(('rm', argv[3]))
            return '', '', 0
        if head == 'loginctl':
            return 'Linger=yes\n', '', 0
        if head == 'sudo':
            self.mutations.append(('sudo', argv))
            return '', '', 0
        if head == 'podman':
            return self._podman(argv[1:])
        return '', f'unexpected argv: {argv}', 127

    def _podman(self, args):
        verb = args[0]
        if verb == 'load':
            path = args[2]
            if path not in self.files:
                return '', 'no such file', 125
            self.mutations.append(('load', path))
            ref = f"localhost/{self.config.image}"
            self.add_image(ref, crashing=self.crash_next_load)
            self.crash_next_load = False
            return f"Loaded image: {ref}\n", '', 0
        if verb == 'image' and args[1] == 'inspect':
            image_id = self._resolve_image(args[-1])
            if not image_id:
                return '', 'image not known', 125
            return image_id + '\n', '', 0
        if verb == 'tag':
            image_id = self._resolve_image(args[1])
            self.images[image_id]['refs'].append(args[2])
            self.mutations.append(('tag', args[2]))
            return '', '', 0
        if verb == 'info':
            return self.rootless + '\n', '', 0
        if verb == 'container' and args[1] == 'inspect':
            if not self.container:
                return '', 'no such container', 125
            label = self.container['label'] or '<no value>'
            return f"{self.container['image_id']}\t{label}\n", '', 0
        if verb == 'rm':
            self.mutations.append(('rm-container', args[-1]))
            self.container = None
            return '', '', 0
        if verb == 'run':
            self.mutations.append(('run', args[-1]))
            if self.fail_next_run:
                self.fail_next_run = False
                return '', 'Error: cannot listen on the TCP port: address already in use', 126
            image_id = self._resolve_image(args[-1])
            if image_id is None:
                return '', 'image not known', 125
            label = None
            if '--label' in args:
                label = args[args.index('--label') + 1].split('=', 1)[1]
            self.start_container(image_id, label)
            self.last_run = args
            return image_id[:12] + '\n', '', 0
        if verb == 'ps' and '-a' in args:
            image = self.container['image_id'] if self.container else ''
            return image + '\n', '', 0
        if verb == 'ps':
            if self.active_image:
                return f"{self.config.container_name} Up 2 seconds\n", '', 0
            return '', '', 0
        if verb == 'images':
            lines = []
            for image_id, image in self.images.items():
                for ref in image['refs']:
                    lines.append(f"{image['created']}\t{ref}\tsha256:{image_id}")
            return '\n'.join(lines) + '\n', '', 0
        if verb == 'rmi':
            image_id = args[-1]
            if image_id in self.fail_rmi:
                return '', 'image is in use by a container', 2
            self.images.pop(image_id, None)
            self.mutations.append(('rmi', image_id))
            return '', '', 0
        return '', f'unexpected podman args: {args}', 125


class Clock:
    """Deterministic clock: one second later on each call."""

    def __init__(self):
        self.now = datetime(2026, 10, 19, 12, 0, 0)

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def app_dir(tmp_path):
    projects = tmp_path / 'projects'
    app = projects / 'api'
    app.mkdir(parents=True)
    (app / 'Containerfile').write_text('FROM scratch\n')
    return app


@pytest.fixture
def make_config(tmp_path, app_dir):
    """Factory fixture: DeploymentConfig with test-friendly defaults."""

    def _factory(**overrides):
        values = {
            'app': 'api',
            'host': 'rhel9',
            'remote_user': 'deploy',
            'projects_dir': str(app_dir.parent),
            'remote_dir': '/srv/node',
            'local_archive_dir': str(tmp_path),
            'assume_yes': True,
            'retry_delay': 0,
            'verify_interval': 0,
        }
        values.update(overrides)
        return build_config(values)

    return _factory


@pytest.fixture
def config(make_config):
    return make_config()


@pytest.fixture
def fake_local():
    return FakeLocal()


@pytest.fixture
def make_remote():
    return FakeRemote


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def tar_bytes():
    """make_tar_bytes as a fixture, for tests that craft archives by hand."""
    return make_tar_bytes
