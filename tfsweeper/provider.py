import logging
import os
import shutil
import tempfile
from typing import Iterator, List, Optional, Tuple

from libterraform import TerraformCommand

from tfsweeper.common import PathType, json_dump
from tfsweeper.diagnostics import Diagnostics
from tfsweeper.exceptions import ProviderConfigureError, ProviderLoadError

logger = logging.getLogger(__name__)

PROVIDER_CONFIG_FILENAME = 'provider.tf.json'
IMPORT_CONFIG_FILENAME = 'import.tf.json'
IMPORT_STATE_FILENAME = 'import.tfstate'
IMPORT_RESOURCE_NAME = 'sweep'
CONFIGURE_CONFIG_FILENAME = 'configure.tf.json'
CONFIGURE_STATE_FILENAME = 'configure.tfstate'
CONFIGURE_DATA_SOURCE = 'aws_caller_identity'


class PluginMeta:
    """Where to find the provider plugin.

    :param name: Plugin executable name, used in log output only.
    :param version: Exact provider version to install.
    :param source: Provider source address, e.g. "hashicorp/aws".
    :param plugin_dir: Local directory holding the plugin binary in Terraform's
        filesystem mirror layout. When unset the provider is installed from its registry.
    """
    __slots__ = ('name', 'version', 'source', 'plugin_dir')

    def __init__(
            self,
            name: str = 'terraform-provider-aws',
            version: str = '2.33.0',
            source: str = 'hashicorp/aws',
            plugin_dir: Optional[PathType] = None,
    ):
        self.name = name
        self.version = version
        self.source = source
        self.plugin_dir = plugin_dir

    @property
    def type(self) -> str:
        return self.source.rsplit('/', 1)[-1]

    def __repr__(self):
        return f'<PluginMeta source={self.source!r} version={self.version!r}>'


class ImportedResource:
    __slots__ = ('type_name', 'state')

    def __init__(self, type_name: str, state: dict):
        self.type_name = type_name
        self.state = state

    def __repr__(self):
        return f'<ImportedResource type_name={self.type_name!r} state={self.state!r}>'


class TerraformProvider:
    """A provider plugin driven through Terraform.

    Terraform runs in-process against a private working directory that holds the
    provider requirement, the provider configuration and a throwaway state for each
    import, so nothing is ever written next to the state file being swept.

    The expected call order is load(), configure(), then import_resource() any
    number of times. Use load_aws_provider() for the first step.
    """

    def __init__(self, meta: PluginMeta, work_dir: Optional[PathType] = None):
        self.meta = meta
        self._owns_work_dir = work_dir is None
        if work_dir is None:
            work_dir = tempfile.mkdtemp(prefix='tfsweeper-')
        self.work_dir = os.fspath(work_dir)
        self.cli = TerraformCommand(self.work_dir)
        self.schema = None
        self.config = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _path(self, filename: str) -> str:
        return os.path.join(self.work_dir, filename)

    def _config_document(self, config: dict = None) -> dict:
        doc = {
            'terraform': {
                'required_providers': {
                    self.meta.type: {
                        'source': self.meta.source,
                        'version': self.meta.version,
                    },
                },
            },
        }
        if config is not None:
            doc['provider'] = {self.meta.type: config}
        return doc

    def load(self):
        """
        load installs the provider into the working directory and starts it once to
        read its schema. Any failure raises ProviderLoadError.
        """
        os.makedirs(self.work_dir, exist_ok=True)
        json_dump(self._config_document(), self._path(PROVIDER_CONFIG_FILENAME))

        logger.debug('loading %s %s in %s', self.meta.name, self.meta.version, self.work_dir)
        plugin_dirs = [os.fspath(self.meta.plugin_dir)] if self.meta.plugin_dir else None
        r = self.cli.init(plugin_dirs=plugin_dirs)
        if r.retcode != 0:
            raise ProviderLoadError(self.meta.source, r.error)

        try:
            r = self.cli.providers_schema()
        except ValueError as e:
            # libterraform decodes stdout before the exit status can be checked.
            raise ProviderLoadError(self.meta.source, f'Unreadable provider schema output: {e}') from e
        if r.retcode != 0:
            raise ProviderLoadError(self.meta.source, r.error)
        self.schema = self._find_schema(r.value)
        if self.schema is None:
            raise ProviderLoadError(self.meta.source, 'The provider did not report a schema.')
        return self

    def _find_schema(self, value) -> Optional[dict]:
        schemas = (value or {}).get('provider_schemas') or {}
        for key, schema in schemas.items():
            # Keys are "registry.terraform.io/hashicorp/aws" since 0.13, "aws" before.
            if key == self.meta.type or key == self.meta.source or key.endswith(f'/{self.meta.source}'):
                return schema
        return None

    @property
    def resource_types(self) -> List[str]:
        if not self.schema:
            return []
        return sorted(self.schema.get('resource_schemas') or {})

    def build_config(self, profile: str, region: str) -> dict:
        """
        build_config returns the provider configuration: the given profile and region,
        and every other argument the provider accepts left null so that the provider
        picks its own default for it.
        """
        config = {}
        block = self.schema['provider']['block'] if self.schema else {}
        for name, attr in (block.get('attributes') or {}).items():
            if attr.get('computed') and not attr.get('optional') and not attr.get('required'):
                continue
            config[name] = None
        config.update(profile=profile, region=region)
        return config

    def configure(self, profile: str, region: str) -> Diagnostics:
        """
        configure checks the provider configuration against the provider schema, writes
        it to the working directory, has the provider validate it and then has Terraform
        configure the provider once, which checks the credentials.

        :param profile: AWS shared credentials profile.
        :param region: AWS region.
        :return: Diagnostics of the configuration. The configuration is kept only when
            there are no errors.
        """
        if self.schema is None:
            raise ProviderConfigureError('the provider must be loaded before it is configured')

        diags = Diagnostics()
        config = self.build_config(profile, region)
        block = self.schema['provider']['block']
        attributes = block.get('attributes') or {}
        block_types = block.get('block_types') or {}
        for name in config:
            if name not in attributes and name not in block_types:
                diags.append_error('Unsupported argument', f'An argument named {name!r} is not expected here.')
        for name, attr in attributes.items():
            if attr.get('required') and config.get(name) is None:
                diags.append_error(
                    'Missing required argument',
                    f'The argument {name!r} is required, but no definition was found.',
                )
        if diags.has_errors():
            return diags

        json_dump(self._config_document(config), self._path(PROVIDER_CONFIG_FILENAME))
        try:
            r = self.cli.validate()
        except ValueError as e:
            diags.append_error('Invalid provider configuration', f'Unreadable validate output: {e}')
            return diags

        if isinstance(r.value, dict):
            diags.extend(Diagnostics.from_json(r.value.get('diagnostics')))
        if r.retcode != 0 and not diags.has_errors():
            diags.extend(Diagnostics.from_text(r.error))
            if not diags.has_errors():
                diags.append_error('Invalid provider configuration', f'validate exited with status {r.retcode}')
        if diags.has_errors():
            return diags

        diags.extend(self._configure_provider())
        if not diags.has_errors():
            self.config = config
            logger.debug('configured %s with profile=%s region=%s', self.meta.source, profile, region)
        return diags

    def _configure_provider(self) -> Diagnostics:
        """
        _configure_provider plans a single read of CONFIGURE_DATA_SOURCE. Reading a data
        source makes Terraform configure the provider, which is where credentials, profile
        and region are checked against the cloud API.
        """
        diags = Diagnostics()
        if CONFIGURE_DATA_SOURCE not in (self.schema.get('data_source_schemas') or {}):
            logger.debug('%s has no %s data source, provider configuration is not checked remotely',
                         self.meta.source, CONFIGURE_DATA_SOURCE)
            return diags

        config_path = self._path(CONFIGURE_CONFIG_FILENAME)
        json_dump({'data': {CONFIGURE_DATA_SOURCE: {IMPORT_RESOURCE_NAME: {}}}}, config_path)
        try:
            r = self.cli.plan(json=False, lock=False, state=CONFIGURE_STATE_FILENAME)
        finally:
            self._remove(config_path)
            self._remove(self._path(CONFIGURE_STATE_FILENAME))

        if r.retcode != 0:
            diags.extend(Diagnostics.from_text(r.error or r.value))
            if not diags.has_errors():
                diags.append_error('Failed to configure provider', f'plan exited with status {r.retcode}')
        return diags

    def import_resource(self, type_name: str, id: str) -> Tuple[List[ImportedResource], Diagnostics]:
        """
        import_resource asks the provider to import the remote object with the given id.

        The object is imported into a fresh throwaway state which is removed again
        afterwards.

        :param type_name: Resource type, e.g. "aws_instance".
        :param id: Resource-specific import id.
        :return: A tuple (imported resources, diagnostics).
        """
        if self.config is None:
            raise ProviderConfigureError('the provider must be configured before importing resources')

        diags = Diagnostics()
        if self.schema.get('resource_schemas') and type_name not in self.schema['resource_schemas']:
            diags.append_error(
                'Invalid resource type',
                f'The provider {self.meta.source} does not support resource type {type_name!r}.',
            )
            return [], diags

        config_path = self._path(IMPORT_CONFIG_FILENAME)
        state_path = self._path(IMPORT_STATE_FILENAME)
        json_dump({'resource': {type_name: {IMPORT_RESOURCE_NAME: {}}}}, config_path)
        self._remove(state_path)
        try:
            r = self.cli.import_resource(
                f'{type_name}.{IMPORT_RESOURCE_NAME}',
                id,
                lock=False,
                state=IMPORT_STATE_FILENAME,
                backup='-',
            )
            if r.retcode != 0:
                diags.extend(Diagnostics.from_text(r.error or r.value))
                if not diags.has_errors():
                    diags.append_error('Import failed', f'import exited with status {r.retcode}')
                return [], diags

            try:
                r = self.cli.show(IMPORT_STATE_FILENAME)
            except ValueError as e:
                diags.append_error('Unreadable import result', f'show output is not JSON: {e}')
                return [], diags
            if r.retcode != 0:
                diags.extend(Diagnostics.from_text(r.error))
                if not diags.has_errors():
                    diags.append_error('Unreadable import result', f'show exited with status {r.retcode}')
                return [], diags

            imported = [
                ImportedResource(rv['type'], rv.get('values') or {})
                for rv in iter_shown_resources(r.value)
                if rv.get('mode', 'managed') == 'managed'
            ]
            return imported, diags
        finally:
            self._remove(state_path)
            self._remove(config_path)

    @staticmethod
    def _remove(path: str):
        if os.path.exists(path):
            os.remove(path)

    def close(self):
        if self._owns_work_dir and os.path.isdir(self.work_dir):
            shutil.rmtree(self.work_dir, ignore_errors=True)


def iter_shown_resources(value: dict) -> Iterator[dict]:
    """Yield every resource of the JSON form of a state, as printed by 'terraform show -json'."""
    modules = [((value or {}).get('values') or {}).get('root_module') or {}]
    while modules:
        module = modules.pop(0)
        yield from module.get('resources') or ()
        modules.extend(module.get('child_modules') or ())


def load_aws_provider(meta: PluginMeta = None, work_dir: Optional[PathType] = None) -> TerraformProvider:
    """
    load_aws_provider starts the AWS provider plugin described by meta and returns it,
    ready to be configured.
    """
    provider = TerraformProvider(meta or PluginMeta(), work_dir=work_dir)
    try:
        return provider.load()
    except BaseException:
        provider.close()
        raise
