from tfsweeper.addrs import ResourceInstanceAddr, ResourceMode
from tfsweeper.diagnostics import Diagnostic, Diagnostics
from tfsweeper.state import StateFile, lookup_all_resource_instance_addrs, read_state_file
from tfsweeper.sweeper import SweepReport, SweepResult, sweep

__version__ = '0.1.0'

__all__ = [
    'Diagnostic',
    'Diagnostics',
    'ResourceInstanceAddr',
    'ResourceMode',
    'StateFile',
    'SweepReport',
    'SweepResult',
    'lookup_all_resource_instance_addrs',
    'read_state_file',
    'sweep',
]
