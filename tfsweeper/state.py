import json
import logging
import re
from typing import Dict, List, Optional, Tuple

from tfsweeper.addrs import (
    ModuleInstance,
    ModuleStep,
    ResourceInstanceAddr,
    ResourceMode,
    module_string,
    parse_module_instance,
)
from tfsweeper.common import InstanceKey, PathType, SUPPORTED_STATE_VERSIONS
from tfsweeper.diagnostics import Diagnostics
from tfsweeper.exceptions import StateFileError

logger = logging.getLogger(__name__)

_legacy_provider_re = re.compile(r'(?:^|\.)provider\.([A-Za-z0-9_-]+)')
_provider_re = re.compile(r'(?:^|\.)provider\["([^"]+)"\]')
_v3_resource_key_re = re.compile(r'^(data\.)?([^.]+)\.([^.]+)(?:\.(\d+))?$')


def provider_type(provider: str) -> Optional[str]:
    """
    provider_type extracts the provider type name from a provider address as stored
    in state, e.g. 'provider["registry.terraform.io/hashicorp/aws"].west' or the
    legacy 'provider.aws' both give 'aws'.
    """
    if not provider:
        return None
    m = _provider_re.search(provider)
    if m:
        return m.group(1).rsplit('/', 1)[-1]
    m = _legacy_provider_re.search(provider)
    if m:
        return m.group(1)
    return None


class ResourceInstanceObject:
    __slots__ = ('attributes', 'attributes_flat', 'schema_version', 'status', 'dependencies')

    def __init__(
            self,
            attributes: dict = None,
            attributes_flat: Dict[str, str] = None,
            schema_version: int = 0,
            status: str = None,
            dependencies: List[str] = None,
    ):
        self.attributes = attributes
        self.attributes_flat = attributes_flat
        self.schema_version = schema_version
        self.status = status
        self.dependencies = dependencies or []

    @property
    def id(self) -> Optional[str]:
        """The 'id' attribute, from the JSON attributes or else the legacy flat ones."""
        for attrs in (self.attributes, self.attributes_flat):
            if attrs and attrs.get('id') is not None:
                return str(attrs['id'])
        return None

    @property
    def tainted(self) -> bool:
        return self.status == 'tainted'

    def __repr__(self):
        return f'<ResourceInstanceObject id={self.id!r} status={self.status!r}>'


class ResourceInstance:
    __slots__ = ('current', 'deposed')

    def __init__(self, current: ResourceInstanceObject = None, deposed: Dict[str, ResourceInstanceObject] = None):
        self.current = current
        self.deposed = deposed if deposed is not None else {}

    def has_current(self) -> bool:
        return self.current is not None

    def has_deposed(self) -> bool:
        return bool(self.deposed)


class Resource:
    __slots__ = ('module', 'mode', 'type', 'name', 'provider', 'each', 'instances')

    def __init__(
            self,
            module: ModuleInstance,
            mode: ResourceMode,
            type: str,
            name: str,
            provider: str = None,
            each: str = None,
    ):
        self.module = module
        self.mode = mode
        self.type = type
        self.name = name
        self.provider = provider
        self.each = each
        self.instances: Dict[InstanceKey, ResourceInstance] = {}

    @property
    def provider_type(self) -> Optional[str]:
        return provider_type(self.provider)

    def instance_addr(self, key: InstanceKey) -> ResourceInstanceAddr:
        return ResourceInstanceAddr(self.type, self.name, key=key, mode=self.mode, module=self.module)

    def instance(self, key: InstanceKey) -> ResourceInstance:
        if key not in self.instances:
            self.instances[key] = ResourceInstance()
        return self.instances[key]

    def __repr__(self):
        return f'<Resource {self.instance_addr(None)} instances={len(self.instances)}>'


class Module:
    __slots__ = ('addr', 'resources')

    def __init__(self, addr: ModuleInstance):
        self.addr = addr
        self.resources: Dict[Tuple[ResourceMode, str, str], Resource] = {}

    def resource(self, mode: ResourceMode, type: str, name: str, provider: str = None, each: str = None) -> Resource:
        k = (mode, type, name)
        rs = self.resources.get(k)
        if rs is None:
            rs = self.resources[k] = Resource(self.addr, mode, type, name, provider=provider, each=each)
        return rs

    def __repr__(self):
        return f'<Module {module_string(self.addr) or "root"} resources={len(self.resources)}>'


class State:
    """State is the in-memory form of the resources recorded in a state file."""

    def __init__(self):
        self.modules: Dict[ModuleInstance, Module] = {(): Module(())}

    def module(self, addr: ModuleInstance) -> Module:
        addr = tuple(addr)
        if addr not in self.modules:
            self.modules[addr] = Module(addr)
        return self.modules[addr]

    def resource(self, addr: ResourceInstanceAddr) -> Optional[Resource]:
        ms = self.modules.get(addr.module)
        if ms is None:
            return None
        return ms.resources.get((addr.mode, addr.type, addr.name))

    def resource_instance(self, addr: ResourceInstanceAddr) -> Optional[ResourceInstance]:
        rs = self.resource(addr)
        if rs is None:
            return None
        return rs.instances.get(addr.key)

    def __len__(self):
        return sum(len(rs.instances) for ms in self.modules.values() for rs in ms.resources.values())


class StateFile:
    __slots__ = ('version', 'terraform_version', 'serial', 'lineage', 'state')

    def __init__(self, version: int, state: State, terraform_version: str = None, serial: int = 0, lineage: str = None):
        self.version = version
        self.state = state
        self.terraform_version = terraform_version
        self.serial = serial
        self.lineage = lineage

    def __repr__(self):
        return f'<StateFile version={self.version!r} serial={self.serial!r} lineage={self.lineage!r}>'


# ===================================================================
# reading
# ===================================================================

def read_state_file(path: PathType) -> StateFile:
    """
    read_state_file opens the state file at the given path and decodes it.

    Version 4 files are read as is. Version 3 files, written by Terraform 0.11 and
    earlier, are upgraded in memory. The file itself is never modified.
    """
    try:
        with open(path, encoding='utf-8') as f:
            src = f.read()
    except OSError as e:
        raise StateFileError(f'failed loading statefile: {e}') from e

    try:
        return read_state(src)
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        raise StateFileError(f'failed reading {path} as a statefile: {e}') from e


def read_state(src: str) -> StateFile:
    """read_state decodes state file content. Malformed content raises ValueError, KeyError or TypeError."""
    if not src or not src.strip():
        raise ValueError('the state file is empty')
    raw = json.loads(src)
    if not isinstance(raw, dict):
        raise ValueError('the state file must contain a JSON object')

    version = raw.get('version')
    if version not in SUPPORTED_STATE_VERSIONS:
        raise ValueError(f'unsupported state format version {version!r}')

    if version == 4:
        state = _read_state_v4(raw)
    else:
        state = _read_state_v3(raw)

    logger.debug('read state format version %s with %d resource instances', version, len(state))
    return StateFile(
        version,
        state,
        terraform_version=raw.get('terraform_version'),
        serial=raw.get('serial', 0),
        lineage=raw.get('lineage'),
    )


def _read_state_v4(raw: dict) -> State:
    state = State()
    for rsv in raw.get('resources') or ():
        module = parse_module_instance(rsv.get('module', ''))
        mode = ResourceMode(rsv['mode'])
        rs = state.module(module).resource(mode, rsv['type'], rsv['name'], provider=rsv.get('provider'),
                                          each=rsv.get('each'))
        for isv in rsv.get('instances') or ():
            key = isv.get('index_key')
            if key is not None and (isinstance(key, bool) or not isinstance(key, (int, str))):
                raise ValueError(f'invalid instance key {key!r} for {rs.instance_addr(None)}')
            obj = ResourceInstanceObject(
                attributes=isv.get('attributes'),
                attributes_flat=isv.get('attributes_flat'),
                schema_version=isv.get('schema_version', 0),
                status=isv.get('status'),
                dependencies=isv.get('dependencies'),
            )
            inst = rs.instance(key)
            deposed_key = isv.get('deposed')
            if deposed_key:
                inst.deposed[deposed_key] = obj
            else:
                inst.current = obj
    return state


def _read_state_v3(raw: dict) -> State:
    state = State()
    for msv in raw.get('modules') or ():
        path = msv.get('path') or ['root']
        if path[0] != 'root':
            raise ValueError(f'invalid module path {path!r}')
        module = tuple(ModuleStep(name) for name in path[1:])
        ms = state.module(module)

        for rs_key, rsv in (msv.get('resources') or {}).items():
            m = _v3_resource_key_re.match(rs_key)
            if not m:
                raise ValueError(f'invalid resource key {rs_key!r}')
            mode = ResourceMode.DATA if m.group(1) else ResourceMode.MANAGED
            type_name, name, index = m.group(2), m.group(3), m.group(4)
            key = int(index) if index is not None else None
            rs = ms.resource(mode, type_name, name, provider=rsv.get('provider'),
                             each='list' if key is not None else None)
            inst = rs.instance(key)

            primary = rsv.get('primary')
            if primary:
                inst.current = _read_object_v3(primary, rsv)
            for i, dsv in enumerate(rsv.get('deposed') or ()):
                inst.deposed[f'{i:08x}'] = _read_object_v3(dsv, rsv)
    return state


def _read_object_v3(isv: dict, rsv: dict) -> ResourceInstanceObject:
    attrs = dict(isv.get('attributes') or {})
    if isv.get('id') and 'id' not in attrs:
        attrs['id'] = isv['id']
    schema_version = (isv.get('meta') or {}).get('schema_version', 0)
    return ResourceInstanceObject(
        attributes_flat=attrs,
        schema_version=int(schema_version),
        status='tainted' if isv.get('tainted') else None,
        dependencies=rsv.get('depends_on'),
    )


# ===================================================================
# address lookup
# ===================================================================

def lookup_all_resource_instance_addrs(state: State) -> Tuple[List[ResourceInstanceAddr], Diagnostics]:
    """
    lookup_all_resource_instance_addrs returns the address of every resource instance
    in every module of the state, in address order.
    """
    ret = []
    diags = Diagnostics()
    for ms in state.modules.values():
        ret.extend(collect_module_resource_instances(ms))
    ret.sort()
    return ret, diags


def collect_module_resource_instances(ms: Module) -> List[ResourceInstanceAddr]:
    ret = []
    for rs in ms.resources.values():
        ret.extend(collect_resource_instances(rs))
    return ret


def collect_resource_instances(rs: Resource) -> List[ResourceInstanceAddr]:
    return [rs.instance_addr(key) for key in rs.instances]
