class TfSweeperError(Exception):
    pass


class StateFileError(TfSweeperError):
    """Raised when the state file cannot be opened or is not a valid state file."""


class ProviderLoadError(TfSweeperError):
    """Raised when the provider plugin cannot be installed or started.

    Attributes:
      source, detail
    """
    def __init__(self, source, detail=None):
        self.source = source
        self.detail = detail

    def __str__(self):
        msg = f'Provider {self.source!r} could not be loaded.'
        if self.detail:
            msg = f'{msg}\n{self.detail.strip()}'
        return msg


class ProviderConfigureError(TfSweeperError):
    """Raised when an import is requested before the provider was configured."""


class DiagnosticsError(TfSweeperError):
    """Error form of a set of diagnostics with error severity.

    Attributes:
      diagnostics
    """
    def __init__(self, diagnostics):
        self.diagnostics = list(diagnostics)

    def __str__(self):
        if len(self.diagnostics) == 1:
            return str(self.diagnostics[0])
        lines = [f'{len(self.diagnostics)} problems:']
        lines.extend(f'- {diag}' for diag in self.diagnostics)
        return '\n'.join(lines)
