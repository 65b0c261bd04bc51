import re
from typing import Iterable, List, Optional

from tfsweeper.exceptions import DiagnosticsError

ERROR = 'error'
WARNING = 'warning'

_diag_header_re = re.compile(r'^(?:[│╷╵]\s*)?(Error|Warning): (.*)$')
_diag_border_re = re.compile(r'^[│╷╵]\s?')


class Diagnostic:
    __slots__ = ('severity', 'summary', 'detail')

    def __init__(self, severity: str, summary: str, detail: str = ''):
        self.severity = severity
        self.summary = summary
        self.detail = detail

    def __eq__(self, other):
        if not isinstance(other, Diagnostic):
            return NotImplemented
        return (self.severity, self.summary, self.detail) == (other.severity, other.summary, other.detail)

    def __repr__(self):
        return f'<Diagnostic severity={self.severity!r} summary={self.summary!r}>'

    def __str__(self):
        if self.detail:
            return f'{self.summary}: {self.detail}'
        return self.summary


class Diagnostics(list):
    """Diagnostics is a list of warnings and errors, in the shape Terraform reports them.

    Operations that talk to the provider return diagnostics instead of raising, so that
    the caller decides whether a problem is fatal.
    """

    def has_errors(self) -> bool:
        return any(diag.severity == ERROR for diag in self)

    def errors(self) -> List[Diagnostic]:
        return [diag for diag in self if diag.severity == ERROR]

    def err(self) -> Optional[DiagnosticsError]:
        errors = self.errors()
        if not errors:
            return None
        return DiagnosticsError(errors)

    def append_error(self, summary: str, detail: str = ''):
        self.append(Diagnostic(ERROR, summary, detail))

    def append_warning(self, summary: str, detail: str = ''):
        self.append(Diagnostic(WARNING, summary, detail))

    @classmethod
    def from_json(cls, values: Iterable[dict]) -> 'Diagnostics':
        """
        from_json builds diagnostics from the "diagnostics" list that Terraform
        prints in its machine-readable output (e.g. validate -json).
        """
        diags = cls()
        for value in values or ():
            diags.append(Diagnostic(
                value.get('severity', ERROR),
                value.get('summary', ''),
                value.get('detail') or '',
            ))
        return diags

    @classmethod
    def from_text(cls, text: str) -> 'Diagnostics':
        """
        from_text builds diagnostics from the human-readable blocks Terraform prints
        on stderr, with or without the box-drawing borders of newer releases:

            Error: Cannot import non-existent remote object

            While attempting to import an existing object to "aws_instance.web"...

        Text that contains no recognizable block is kept as a single error, so that
        a failed command never yields empty diagnostics.
        """
        diags = cls()
        current = None
        detail_lines = []

        def flush():
            if current is not None:
                current.detail = '\n'.join(detail_lines).strip()
                diags.append(current)

        for line in (text or '').splitlines():
            m = _diag_header_re.match(line)
            if m:
                flush()
                severity = ERROR if m.group(1) == 'Error' else WARNING
                current = Diagnostic(severity, m.group(2).strip())
                detail_lines = []
                continue
            if current is not None:
                detail_lines.append(_diag_border_re.sub('', line).rstrip())
        flush()

        if not diags and text and text.strip():
            diags.append_error(text.strip())
        return diags
