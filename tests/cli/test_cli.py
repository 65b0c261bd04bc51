import json

import pytest
from typer.testing import CliRunner

from tfsweeper import settings
from tfsweeper.cli import app
from tests.consts import TF_STATE_V2_PATH, TF_STATE_V4_PATH

runner = CliRunner()


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in ('STATE_PATH', 'PROFILE', 'REGION', 'PLUGIN_DIR', 'WORK_DIR', 'LOG_LEVEL'):
        monkeypatch.delenv(f'TFSWEEPER_{name}', raising=False)
    monkeypatch.setattr(settings, '_settings', None)


class TestSweepCommand:
    def test_sweep(self, fake_terraform, tmp_path):
        r = runner.invoke(app, ['sweep', '--state', TF_STATE_V4_PATH, '--work-dir', str(tmp_path / 'work')])
        assert r.exit_code == 0, r.output
        assert '6 found, 0 failed, 2 skipped' in r.output

        assert len(fake_terraform.calls_of('import')) == 6

    def test_sweep_settings_from_env(self, fake_terraform, tmp_path, monkeypatch):
        monkeypatch.setenv('TFSWEEPER_STATE_PATH', TF_STATE_V4_PATH)
        monkeypatch.setenv('TFSWEEPER_REGION', 'eu-west-1')
        monkeypatch.setenv('TFSWEEPER_WORK_DIR', str(tmp_path / 'work'))
        r = runner.invoke(app, ['sweep'])
        assert r.exit_code == 0, r.output
        assert (tmp_path / 'work' / 'provider.tf.json').read_text().count('eu-west-1') == 1

    def test_sweep_failures_are_not_fatal(self, fake_terraform, tmp_path):
        fake_terraform.missing_ids = {'tfsweeper-logs'}
        r = runner.invoke(app, ['sweep', '--state', TF_STATE_V4_PATH, '--work-dir', str(tmp_path / 'work')])
        assert r.exit_code == 0, r.output
        assert '5 found, 1 failed, 2 skipped' in r.output

    def test_sweep_strict(self, fake_terraform, tmp_path):
        fake_terraform.missing_ids = {'tfsweeper-logs'}
        r = runner.invoke(app, ['sweep', '--strict', '--state', TF_STATE_V4_PATH,
                                '--work-dir', str(tmp_path / 'work')])
        assert r.exit_code == 1

    def test_sweep_bad_state(self, fake_terraform, tmp_path):
        r = runner.invoke(app, ['sweep', '--state', TF_STATE_V2_PATH, '--work-dir', str(tmp_path / 'work')])
        assert r.exit_code == 1
        assert fake_terraform.calls_of('import') == []

    def test_sweep_configure_error(self, fake_terraform, tmp_path):
        fake_terraform.results['validate'] = (1, json.dumps({
            'valid': False,
            'diagnostics': [{'severity': 'error', 'summary': 'Invalid AWS Region: mars-1'}],
        }), '')
        r = runner.invoke(app, ['sweep', '--state', TF_STATE_V4_PATH, '--region', 'mars-1',
                                '--work-dir', str(tmp_path / 'work')])
        assert r.exit_code == 1
        assert fake_terraform.calls_of('import') == []

    def test_sweep_load_error(self, fake_terraform, tmp_path):
        fake_terraform.results['init'] = (1, '', 'Error: Failed to install provider')
        r = runner.invoke(app, ['sweep', '--state', TF_STATE_V4_PATH, '--work-dir', str(tmp_path / 'work')])
        assert r.exit_code == 1

    def test_sweep_schema_error(self, fake_terraform, tmp_path):
        fake_terraform.results['providers schema'] = (1, '', 'Error: Failed to load plugin schemas')
        r = runner.invoke(app, ['sweep', '--state', TF_STATE_V4_PATH, '--work-dir', str(tmp_path / 'work')])
        assert r.exit_code == 1
        assert 'failed to load Terraform AWS resource provider' in r.output
        assert fake_terraform.calls_of('import') == []

    def test_sweep_credentials_error(self, fake_terraform, tmp_path):
        fake_terraform.results['plan'] = (1, '', 'Error: No valid credential sources found for AWS Provider.')
        r = runner.invoke(app, ['sweep', '--state', TF_STATE_V4_PATH, '--profile', 'nobody',
                                '--work-dir', str(tmp_path / 'work')])
        assert r.exit_code == 1
        assert 'failed to configure Terraform provider' in r.output
        assert fake_terraform.calls_of('import') == []

    def test_sweep_error_shown_without_logging(self, fake_terraform, tmp_path):
        r = runner.invoke(app, ['sweep', '--state', TF_STATE_V2_PATH, '--log-level', 'CRITICAL',
                                '--work-dir', str(tmp_path / 'work')])
        assert r.exit_code == 1
        assert 'failed to read tfstate from local file' in r.output


class TestListCommand:
    def test_list(self):
        r = runner.invoke(app, ['list', '--state', TF_STATE_V4_PATH])
        assert r.exit_code == 0, r.output
        lines = [line for line in r.stdout.splitlines() if '\t' in line]
        assert lines == [
            'aws_iam_role.noid\t-',
            'aws_instance.web[2]\ti-00000000000000002',
            'aws_instance.web[10]\ti-0000000000000000a',
            'aws_s3_bucket.logs\ttfsweeper-logs',
            'random_id.suffix\tq2w3',
            'module.network.aws_subnet.private["a"]\tsubnet-0000000a',
            'module.network.aws_subnet.private["b"]\tsubnet-0000000b',
            'module.network.aws_vpc.main\tvpc-00000001',
        ]

    def test_list_all(self):
        r = runner.invoke(app, ['list', '--all', '--state', TF_STATE_V4_PATH])
        assert r.exit_code == 0, r.output
        assert 'data.aws_ami.ubuntu\tami-0a1b2c3d4e5f67890' in r.stdout
        assert 'aws_instance.old\t-' in r.stdout

    def test_list_missing_state(self):
        r = runner.invoke(app, ['list', '--state', 'not-exists.tfstate'])
        assert r.exit_code == 1
