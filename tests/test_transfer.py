"""Tests for transfer backends and the retry policy."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from ocideploy.deployment.errors import TransferError
from ocideploy.executors.ssh import RemoteExecutor
from ocideploy.transfer import (
    RetryPolicy, RsyncTransfer, ScpTransfer, Transfer, get_transfer_backend,
)


class TestRetryPolicy:
    def test_returns_first_success(self):
        sleeps = []
        policy = RetryPolicy(3, delay=3, sleep=sleeps.append)

        assert policy.run(lambda: 'ok', 'copy') == 'ok'
        assert sleeps == []

    def test_retries_with_fixed_delay(self):
        sleeps = []
        outcomes = iter([RuntimeError('reset'), RuntimeError('reset'), 'done'])

        def operation():
            value = next(outcomes)
            if isinstance(value, Exception):
                raise value
            return value

        policy = RetryPolicy(3, delay=3, sleep=sleeps.append)

        assert policy.run(operation, 'copy') == 'done'
        assert sleeps == [3, 3]

    def test_raises_after_exact_attempts(self):
        calls = []

        def operation():
            calls.append(1)
            raise RuntimeError('connection reset')

        with pytest.raises(TransferError, match='after 2 attempts'):
            RetryPolicy(2, delay=0, sleep=lambda s: None).run(operation, 'copy')
        assert len(calls) == 2

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(0)


@pytest.fixture
def ssh(make_config):
    return RemoteExecutor(make_config(ssh_port=2222, identity_file='/home/me/.ssh/id_ed25519'))


class TestBackends:
    def test_rsync_command_is_resumable(self, ssh):
        argv = RsyncTransfer(ssh).build_cmd('/tmp/a.image.tar', '/srv/node/api')

        assert argv[:3] == ['rsync', '-avP', '--inplace']
        assert argv[3] == '-e'
        assert argv[4].startswith('ssh -p 2222 ')
        assert 'ServerAliveInterval=20' in argv[4]
        assert argv[-2:] == ['/tmp/a.image.tar', 'deploy@rhel9:/srv/node/api/']

    def test_scp_uses_capital_port_flag(self, ssh):
        argv = ScpTransfer(ssh).build_cmd('/tmp/a.image.tar', '/srv/node/api/')

        assert argv[:3] == ['scp', '-P', '2222']
        assert ['-i', '/home/me/.ssh/id_ed25519'] == argv[argv.index('-i'):argv.index('-i') + 2]
        assert argv[-1] == 'deploy@rhel9:/srv/node/api/'

    def test_falls_back_to_scp_without_rsync(self, config, fake_local, capsys):
        fake_local.programs.discard('rsync')

        backend = get_transfer_backend(config, MagicMock(), fake_local)

        assert isinstance(backend, ScpTransfer)
        assert 'falling back to scp' in capsys.readouterr().out

    def test_configured_scp(self, make_config, fake_local):
        backend = get_transfer_backend(make_config(transfer='scp'), MagicMock(), fake_local)
        assert isinstance(backend, ScpTransfer)

    def test_send_raises_on_nonzero_exit(self, ssh):
        ssh.run = MagicMock(return_value=SimpleNamespace(stdout='', stderr='broken pipe', returncode=12))

        with pytest.raises(RuntimeError, match='broken pipe'):
            RsyncTransfer(ssh).send('/tmp/a.image.tar', '/srv/node/api')


class TestTransfer:
    def test_attempts_override(self):
        backend = MagicMock()
        backend.name = 'rsync'
        backend.send.side_effect = [RuntimeError('reset'), RuntimeError('reset'), 'ok']
        transfer = Transfer(MagicMock(), backend, RetryPolicy(1, delay=0, sleep=lambda s: None))

        transfer.transfer('/tmp/a.image.tar', '/srv/node/api', attempts=3)

        assert backend.send.call_count == 3

    def test_prepare_creates_remote_dir(self):
        ssh = MagicMock()
        Transfer(ssh, MagicMock(), RetryPolicy(1)).prepare('/srv/node/api')
        ssh.ssh_exec_check.assert_called_once_with(['mkdir', '-p', '/srv/node/api'])
