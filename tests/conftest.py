import json
import os

import pytest
from libterraform import TerraformCommand

from tests.consts import AWS_PROVIDER_KEY, AWS_PROVIDER_SCHEMA, IMPORT_NOT_FOUND_ERROR, TF_STATE_V4_PATH


class FakeTerraformCommand(TerraformCommand):
    """TerraformCommand whose run() answers from a script instead of calling into Terraform.

    Only run() is replaced, so every command method still builds its options and decodes
    stdout exactly as libterraform does. Class attributes script the behaviour; the
    fake_terraform fixture resets them.

    results maps a command ("init", "providers schema", "validate", "plan", "import",
    "show") to a fixed (retcode, stdout, stderr).
    """
    results = {}
    schema = None
    missing_ids = set()
    unreadable_ids = set()
    extra_imported = {}
    calls = []

    @classmethod
    def run(cls, cmd, args=None, options=None, chdir=None, check=False, json=False):
        name = ' '.join(cmd) if isinstance(cmd, (list, tuple)) else cmd
        args = list(args or ())
        options = dict(options or {})
        cls.calls.append((name, args, options, chdir))
        if name in cls.results:
            return cls.results[name]
        handler = getattr(cls, '_' + name.replace(' ', '_'))
        return handler(args, options, chdir)

    @classmethod
    def calls_of(cls, name):
        return [c for c in cls.calls if c[0] == name]

    @classmethod
    def _init(cls, args, options, chdir):
        return 0, 'Terraform has been successfully initialized!', ''

    @classmethod
    def _providers_schema(cls, args, options, chdir):
        return 0, json.dumps({'format_version': '0.1', 'provider_schemas': cls.schema}), ''

    @classmethod
    def _validate(cls, args, options, chdir):
        return 0, json.dumps({'valid': True, 'error_count': 0, 'warning_count': 0, 'diagnostics': []}), ''

    @classmethod
    def _plan(cls, args, options, chdir):
        return 0, 'No changes. Your infrastructure matches the configuration.', ''

    @classmethod
    def _import(cls, args, options, chdir):
        addr, id = args
        if id in cls.missing_ids:
            return 1, '', IMPORT_NOT_FOUND_ERROR
        type_name = addr.split('.')[0]
        imported = [(type_name, {'id': id})]
        imported.extend(cls.extra_imported.get(type_name, ()))
        with open(os.path.join(chdir, options['state']), 'w') as f:
            json.dump({'id': id, 'imported': imported}, f)
        return 0, 'Import successful!', ''

    @classmethod
    def _show(cls, args, options, chdir):
        path = os.path.join(chdir, args[0])
        if not os.path.exists(path):
            return 1, '', 'Error: Failed to load state: no such file'
        with open(path) as f:
            value = json.load(f)
        if value['id'] in cls.unreadable_ids:
            return 1, '', 'Error: Failed to load state: unsupported checkable object kind'
        resources = [
            {'address': f'{t}.sweep', 'mode': 'managed', 'type': t, 'name': 'sweep', 'values': values}
            for t, values in value['imported']
        ]
        return 0, json.dumps({'format_version': '0.1', 'values': {'root_module': {'resources': resources}}}), ''


@pytest.fixture
def fake_terraform(monkeypatch):
    FakeTerraformCommand.results = {}
    FakeTerraformCommand.schema = {AWS_PROVIDER_KEY: AWS_PROVIDER_SCHEMA}
    FakeTerraformCommand.missing_ids = set()
    FakeTerraformCommand.unreadable_ids = set()
    FakeTerraformCommand.extra_imported = {}
    FakeTerraformCommand.calls = []
    monkeypatch.setattr('tfsweeper.provider.TerraformCommand', FakeTerraformCommand)
    return FakeTerraformCommand


@pytest.fixture
def provider(fake_terraform, tmp_path):
    from tfsweeper.provider import PluginMeta, load_aws_provider

    p = load_aws_provider(PluginMeta(), work_dir=tmp_path / 'work')
    diags = p.configure('tfsweeper', 'us-west-2')
    assert not diags.has_errors(), diags.err()
    yield p
    p.close()


@pytest.fixture
def state_file():
    from tfsweeper.state import read_state_file

    return read_state_file(TF_STATE_V4_PATH)
