import json
import re
from enum import Enum
from functools import total_ordering
from typing import Tuple

from tfsweeper.common import InstanceKey

_module_step_re = re.compile(r'module\.([A-Za-z0-9_-]+)(?:\[(\d+|"(?:[^"\\]|\\.)*")\])?(?:\.|$)')


class ResourceMode(str, Enum):
    MANAGED = 'managed'
    DATA = 'data'


def key_string(key: InstanceKey) -> str:
    """Render an instance key the way it appears in an address: [0] or ["name"]."""
    if key is None:
        return ''
    if isinstance(key, int):
        return f'[{key}]'
    return f'[{json.dumps(key)}]'


def _key_sort_value(key: InstanceKey):
    # No key sorts first, then int keys numerically, then string keys lexically.
    if key is None:
        return (0, 0, '')
    if isinstance(key, int):
        return (1, key, '')
    return (2, 0, key)


class ModuleStep:
    __slots__ = ('name', 'key')

    def __init__(self, name: str, key: InstanceKey = None):
        self.name = name
        self.key = key

    def _cmp_key(self):
        return self.name, _key_sort_value(self.key)

    def __eq__(self, other):
        if not isinstance(other, ModuleStep):
            return NotImplemented
        return (self.name, self.key) == (other.name, other.key)

    def __hash__(self):
        return hash((self.name, self.key))

    def __repr__(self):
        return f'<ModuleStep {self}>'

    def __str__(self):
        return f'module.{self.name}{key_string(self.key)}'


ModuleInstance = Tuple[ModuleStep, ...]

ROOT_MODULE: ModuleInstance = ()


def module_string(module: ModuleInstance) -> str:
    return '.'.join(str(step) for step in module)


def parse_module_instance(value: str) -> ModuleInstance:
    """
    parse_module_instance parses a module instance address as written in a version 4
    state file, for example 'module.network[0].module.subnets["a"]'.

    An empty string is the root module.
    """
    if not value:
        return ROOT_MODULE
    steps = []
    pos = 0
    while pos < len(value):
        m = _module_step_re.match(value, pos)
        if not m:
            raise ValueError(f'invalid module instance address {value!r}')
        name, raw_key = m.group(1), m.group(2)
        key = None
        if raw_key is not None:
            key = json.loads(raw_key)
        steps.append(ModuleStep(name, key))
        pos = m.end()
    if value.endswith('.'):
        raise ValueError(f'invalid module instance address {value!r}')
    return tuple(steps)


@total_ordering
class ResourceInstanceAddr:
    """Absolute address of a single resource instance.

    Ordering matches Terraform's own sorting of resource instance addresses, which is
    the order 'terraform state list' prints them in.
    """
    __slots__ = ('module', 'mode', 'type', 'name', 'key')

    def __init__(
            self,
            type: str,
            name: str,
            key: InstanceKey = None,
            mode: ResourceMode = ResourceMode.MANAGED,
            module: ModuleInstance = ROOT_MODULE,
    ):
        self.type = type
        self.name = name
        self.key = key
        self.mode = ResourceMode(mode)
        self.module = tuple(module)

    @property
    def managed(self) -> bool:
        return self.mode is ResourceMode.MANAGED

    def resource_string(self) -> str:
        """The address without its module path."""
        prefix = 'data.' if self.mode is ResourceMode.DATA else ''
        return f'{prefix}{self.type}.{self.name}{key_string(self.key)}'

    def _identity(self):
        return self.module, self.mode, self.type, self.name, self.key

    def _cmp_key(self):
        return (
            len(self.module),
            tuple(step._cmp_key() for step in self.module),
            0 if self.mode is ResourceMode.DATA else 1,
            self.type,
            self.name,
            _key_sort_value(self.key),
        )

    def __eq__(self, other):
        if not isinstance(other, ResourceInstanceAddr):
            return NotImplemented
        return self._identity() == other._identity()

    def __lt__(self, other):
        if not isinstance(other, ResourceInstanceAddr):
            return NotImplemented
        return self._cmp_key() < other._cmp_key()

    def __hash__(self):
        return hash(self._identity())

    def __repr__(self):
        return f'<ResourceInstanceAddr {self}>'

    def __str__(self):
        if self.module:
            return f'{module_string(self.module)}.{self.resource_string()}'
        return self.resource_string()
