import logging
from typing import List, Optional

from libterraform.exceptions import LibTerraformError

from tfsweeper.addrs import ResourceInstanceAddr
from tfsweeper.state import State, lookup_all_resource_instance_addrs

logger = logging.getLogger(__name__)


class SweepResult:
    __slots__ = ('address', 'type', 'id', 'ok', 'error', 'imported')

    def __init__(self, address: ResourceInstanceAddr, id: str, ok: bool, error: str = None, imported=None):
        self.address = address
        self.type = address.type
        self.id = id
        self.ok = ok
        self.error = error
        self.imported = imported if imported is not None else []

    def __repr__(self):
        return f'<SweepResult address={str(self.address)!r} ok={self.ok!r}>'


class SweepReport:
    def __init__(self):
        self.results: List[SweepResult] = []
        self.skipped = 0

    @property
    def succeeded(self) -> List[SweepResult]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> List[SweepResult]:
        return [r for r in self.results if not r.ok]

    @property
    def ok(self) -> bool:
        return not self.failed

    def __len__(self):
        return len(self.results)

    def __repr__(self):
        return f'<SweepReport checked={len(self.results)} failed={len(self.failed)} skipped={self.skipped}>'


def sweep(
        provider,
        state: State,
        addrs: Optional[List[ResourceInstanceAddr]] = None,
        provider_type: Optional[str] = None,
) -> SweepReport:
    """
    sweep imports every managed resource instance of the state through the provider,
    one at a time, and reports which ones the provider could still find.

    A failed import is logged and the sweep moves on to the next resource.

    :param provider: A configured TerraformProvider.
    :param state: The state to sweep.
    :param addrs: Resource instance addresses to sweep, in order. Defaults to every
        address in the state.
    :param provider_type: Only resources tracked by this provider type are swept.
        Defaults to the type of the given provider.
    """
    if provider_type is None:
        provider_type = provider.meta.type

    report = SweepReport()
    if addrs is None:
        addrs, _ = lookup_all_resource_instance_addrs(state)
    for addr in addrs:
        if not addr.managed:
            continue
        instance = state.resource_instance(addr)
        if instance is None or not instance.has_current():
            continue

        rs_provider = state.resource(addr).provider_type
        if rs_provider is not None and rs_provider != provider_type:
            logger.debug('skipping %s: tracked by provider %s', addr, rs_provider)
            report.skipped += 1
            continue

        res_id = instance.current.id
        if not res_id:
            logger.warning('skipping %s: no id recorded in state', addr)
            report.skipped += 1
            continue

        logger.info('%s id=%s', addr, res_id)
        try:
            imported, diags = provider.import_resource(addr.type, res_id)
            err = diags.err()
        except (LibTerraformError, ValueError) as e:
            imported, err = [], e
        if err is not None:
            logger.info('failed to import resource (type=%s, id=%s): %s', addr.type, res_id, err)
            report.results.append(SweepResult(addr, res_id, False, error=str(err)))
            continue

        for r in imported:
            logger.debug('imported resource (type=%s, id=%s): %r', r.type_name, res_id, r.state)
        report.results.append(SweepResult(addr, res_id, True, imported=imported))

    return report
