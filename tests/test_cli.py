"""Tests for the command line entry point."""

from unittest.mock import MagicMock, patch

import pytest

from ocideploy.deployment import orchestrator
from ocideploy.deployment.models import DeploymentResult, Outcome, Stage


@pytest.fixture
def no_default_config(tmp_path, monkeypatch):
    monkeypatch.setattr('ocideploy.config.settings.DEFAULT_CONFIG_PATH', tmp_path / 'absent.yaml')


def run_main(argv):
    with pytest.raises(SystemExit) as exc_info:
        orchestrator.main(argv)
    return exc_info.value.code


class TestParser:
    def test_flags_default_to_none(self):
        args = orchestrator.build_parser().parse_args(['deploy', '--app', 'api'])

        assert args.rollback is None
        assert args.dry_run is None
        assert args.assume_yes is None

    def test_yes_flag(self):
        args = orchestrator.build_parser().parse_args(['--app', 'api', '--yes'])
        assert args.command == 'deploy'
        assert args.assume_yes is True


class TestMain:
    def test_validate(self, no_default_config, capsys):
        assert run_main(['validate', '--app', 'api', '--host', 'rhel9']) == 0
        assert 'Configuration is valid' in capsys.readouterr().out

    def test_invalid_config_aborts(self, no_default_config, capsys):
        assert run_main(['validate', '--app', 'api']) == Outcome.ABORTED.exit_code
        assert 'host' in capsys.readouterr().out

    @pytest.mark.parametrize('outcome', list(Outcome))
    def test_deploy_exit_code_follows_outcome(self, no_default_config, outcome, capsys):
        result = DeploymentResult(outcome, None if outcome == Outcome.SUCCEEDED else 'boom',
                                  Stage.ACTIVATING)
        with patch.object(orchestrator, 'Pipeline') as pipeline_cls:
            pipeline_cls.return_value.run.return_value = result
            code = run_main(['deploy', '--app', 'api', '--host', 'rhel9', '--yes'])

        assert code == outcome.exit_code
        assert f"Outcome: {outcome.label}" in capsys.readouterr().out
        config = pipeline_cls.call_args[0][0]
        assert config.assume_yes is True

    def test_exit_codes_are_distinct(self):
        codes = [outcome.exit_code for outcome in Outcome]
        assert len(set(codes)) == len(codes)
        assert Outcome.SUCCEEDED.exit_code == 0

    def test_prune_uses_running_container(self, no_default_config, make_config, make_remote):
        remote = make_remote(make_config())
        image_id = remote.add_image('local/api:latest_20261019_120000')
        remote.start_container(image_id, 'api_latest_20261019_120000.image.tar')

        with patch.object(orchestrator, 'get_executors', return_value=(MagicMock(), remote)):
            code = run_main(['prune', '--app', 'api', '--host', 'rhel9', '--keep-images', '1'])

        assert code == 0
        assert image_id in remote.images
